"""Unit tests for Stage 0: Case Entry service."""
import random
import re
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from app.core.enums import CasePriority, CaseStatus, ProgramType
from app.core.errors import (
    AuthorizationError,
    ConcurrencyError,
    ConsistencyError,
    NotFoundError,
    ValidationError,
)
from app.models.activity import DomainEvent
from app.models.case import Case
from app.schemas.shared import CaseCreate, CaseUpdate
from app.services.case_lifecycle import CaseLifecycleService
from app.services.stages.stage0_case_entry import CaseEntryService
from app.utils.case_id_generator import generate_case_id, validate_case_id_format


def _case_data(**overrides) -> CaseCreate:
    values = dict(program_type=ProgramType.IA, total_debt=12500.0, tax_years=[2022, 2021, 2022])
    values.update(overrides)
    return CaseCreate(**values)


class TestCaseIDGeneration:
    """Tests for case ID generation."""

    def test_format(self):
        case_id = generate_case_id(now=datetime(2024, 3, 9, tzinfo=timezone.utc), rng=random.Random(1))

        assert case_id.startswith("OT202403")
        assert len(case_id) == 12
        assert validate_case_id_format(case_id)

    def test_every_generated_id_matches_format(self):
        rng = random.Random(2024)
        months = [datetime(year, month, 1, tzinfo=timezone.utc) for year in (1999, 2024) for month in (1, 12)]

        for i in range(10_000):
            case_id = generate_case_id(now=months[i % len(months)], rng=rng)
            assert re.fullmatch(r"OT\d{10}", case_id), case_id

    def test_suffix_is_zero_padded(self):
        class _Zero(random.Random):
            def randint(self, a, b):
                return 7

        assert generate_case_id(now=datetime(2025, 11, 1), rng=_Zero()) == "OT2025110007"

    def test_validate_case_id_format(self):
        assert validate_case_id_format("OT2024030042")
        assert not validate_case_id_format("OT202403004")
        assert not validate_case_id_format("CASE-20240210-0001")
        assert not validate_case_id_format("ot2024030042")
        assert not validate_case_id_format("")


class TestCaseCreation:
    """Tests for case creation."""

    @pytest.mark.asyncio
    async def test_create_case_defaults(self, db_session, test_settings, client_user):
        service = CaseEntryService(db_session, test_settings)

        case = await service.create_case(client_user, _case_data())

        assert validate_case_id_format(case.case_id)
        assert case.status == CaseStatus.INITIAL_ASSESSMENT.value
        assert case.priority == CasePriority.MEDIUM.value
        assert case.user_id == client_user.id
        assert case.tax_years == [2021, 2022]
        assert case.state_history == []
        assert case.version == 1

    @pytest.mark.asyncio
    async def test_create_case_stages_event(self, db_session, test_settings, client_user):
        case = await CaseEntryService(db_session, test_settings).create_case(client_user, _case_data())

        rows = (await db_session.execute(select(DomainEvent))).scalars().all()
        assert [row.kind for row in rows] == ["case.created"]
        assert rows[0].payload["case_number"] == case.case_id

    @pytest.mark.asyncio
    async def test_collision_retries_with_new_id(self, db_session, test_settings, client_user):
        first = await CaseEntryService(db_session, test_settings, rng=random.Random(42)).create_case(
            client_user, _case_data()
        )
        # Same seed: first candidate collides, the next draw is different
        second = await CaseEntryService(db_session, test_settings, rng=random.Random(42)).create_case(
            client_user, _case_data()
        )

        assert first.case_id != second.case_id

    @pytest.mark.asyncio
    async def test_exhausted_ids_raise_consistency_error(self, db_session, test_settings, client_user):
        class _Stuck(random.Random):
            def randint(self, a, b):
                return 1234

        await CaseEntryService(db_session, test_settings, rng=_Stuck()).create_case(client_user, _case_data())

        with pytest.raises(ConsistencyError) as exc_info:
            await CaseEntryService(db_session, test_settings, rng=_Stuck()).create_case(
                client_user, _case_data()
            )
        assert exc_info.value.code == "CASE_ID_EXHAUSTED"

    def test_tax_years_validated(self):
        with pytest.raises(ValueError):
            _case_data(tax_years=[])
        with pytest.raises(ValueError):
            _case_data(tax_years=[1800])
        with pytest.raises(ValueError):
            _case_data(total_debt=0)


class TestCaseAccess:
    """Visibility and ownership rules."""

    @pytest.mark.asyncio
    async def test_get_case_not_found(self, db_session, test_settings, client_user):
        with pytest.raises(NotFoundError):
            await CaseEntryService(db_session, test_settings).get_case("OT2024030000", client_user)

    @pytest.mark.asyncio
    async def test_other_client_denied(self, db_session, test_settings, client_user, other_client):
        service = CaseEntryService(db_session, test_settings)
        case = await service.create_case(client_user, _case_data())

        with pytest.raises(AuthorizationError):
            await service.get_case(case.case_id, other_client)

    @pytest.mark.asyncio
    async def test_assigned_professional_sees_case(
        self, db_session, test_settings, client_user, tax_pro, admin_user
    ):
        service = CaseEntryService(db_session, test_settings)
        case = await service.create_case(client_user, _case_data())

        with pytest.raises(AuthorizationError):
            await service.get_case(case.case_id, tax_pro)

        await service.assign_case(case, admin_user, tax_pro.id)
        loaded = await service.get_case(case.case_id, tax_pro)
        assert loaded.assigned_to == tax_pro.id

        cases, total = await service.list_cases(tax_pro)
        assert total == 1
        assert cases[0].id == case.id

    @pytest.mark.asyncio
    async def test_only_admin_assigns(self, db_session, test_settings, client_user, tax_pro):
        service = CaseEntryService(db_session, test_settings)
        case = await service.create_case(client_user, _case_data())

        with pytest.raises(AuthorizationError):
            await service.assign_case(case, tax_pro, tax_pro.id)

    @pytest.mark.asyncio
    async def test_assignee_must_be_professional(self, db_session, test_settings, client_user, other_client, admin_user):
        service = CaseEntryService(db_session, test_settings)
        case = await service.create_case(client_user, _case_data())

        with pytest.raises(ValidationError) as exc_info:
            await service.assign_case(case, admin_user, other_client.id)
        assert exc_info.value.code == "INVALID_TAX_PROFESSIONAL"

    @pytest.mark.asyncio
    async def test_list_is_role_scoped(self, db_session, test_settings, client_user, other_client, admin_user):
        service = CaseEntryService(db_session, test_settings)
        await service.create_case(client_user, _case_data())
        await service.create_case(client_user, _case_data(program_type=ProgramType.OIC))
        await service.create_case(other_client, _case_data())

        _, own_total = await service.list_cases(client_user)
        _, filtered_total = await service.list_cases(client_user, program_type=ProgramType.OIC.value)
        _, admin_total = await service.list_cases(admin_user)

        assert own_total == 2
        assert filtered_total == 1
        assert admin_total == 3


class TestCaseUpdate:
    """Partial updates."""

    @pytest.mark.asyncio
    async def test_client_may_edit_notes(self, db_session, test_settings, client_user):
        service = CaseEntryService(db_session, test_settings)
        case = await service.create_case(client_user, _case_data())

        updated = await service.update_case(case, client_user, CaseUpdate(notes="Called the IRS"))
        assert updated.notes == "Called the IRS"

    @pytest.mark.asyncio
    async def test_client_cannot_edit_money_fields(self, db_session, test_settings, client_user):
        service = CaseEntryService(db_session, test_settings)
        case = await service.create_case(client_user, _case_data())

        with pytest.raises(AuthorizationError) as exc_info:
            await service.update_case(case, client_user, CaseUpdate(proposed_amount=100.0))
        assert exc_info.value.code == "FIELD_UPDATE_DENIED"


class TestStatusChange:
    """Persisted transitions."""

    @pytest.mark.asyncio
    async def test_change_status_commits_history_and_event(
        self, db_session, test_settings, client_user, admin_user
    ):
        case = await CaseEntryService(db_session, test_settings).create_case(client_user, _case_data())

        await CaseLifecycleService(db_session, test_settings).change_status(
            case, "DOCUMENT_COLLECTION", admin_user
        )

        assert case.version == 2
        assert case.status == CaseStatus.DOCUMENT_COLLECTION.value
        kinds = (await db_session.execute(select(DomainEvent.kind))).scalars().all()
        assert "case.status_changed" in kinds

    @pytest.mark.asyncio
    async def test_stale_expected_version_conflicts(self, db_session, test_settings, client_user, admin_user):
        case = await CaseEntryService(db_session, test_settings).create_case(client_user, _case_data())
        lifecycle = CaseLifecycleService(db_session, test_settings)
        await lifecycle.change_status(case, "DOCUMENT_COLLECTION", admin_user)

        with pytest.raises(ConcurrencyError) as exc_info:
            await lifecycle.change_status(case, "FORM_PREPARATION", admin_user, expected_version=1)
        assert exc_info.value.code == "CASE_VERSION_CONFLICT"
        assert case.status == CaseStatus.DOCUMENT_COLLECTION.value

    @pytest.mark.asyncio
    async def test_concurrent_writer_loses(self, database, test_settings, client_user, admin_user):
        async with database.session() as setup:
            case = await CaseEntryService(setup, test_settings).create_case(client_user, _case_data())
            case_number = case.case_id

        async with database.session() as first, database.session() as second:
            case_a = (await first.execute(select(Case).where(Case.case_id == case_number))).scalar_one()
            case_b = (await second.execute(select(Case).where(Case.case_id == case_number))).scalar_one()

            await CaseLifecycleService(first, test_settings).change_status(case_a, "DOCUMENT_COLLECTION", admin_user)

            with pytest.raises(ConcurrencyError):
                await CaseLifecycleService(second, test_settings).change_status(case_b, "ON_HOLD", admin_user)


class TestTimeline:
    """Merged history and activity view."""

    @pytest.mark.asyncio
    async def test_timeline_merges_history_and_activity(
        self, db_session, test_settings, client_user, admin_user, dispatcher
    ):
        service = CaseEntryService(db_session, test_settings)
        case = await service.create_case(client_user, _case_data())
        await CaseLifecycleService(db_session, test_settings).change_status(
            case, "DOCUMENT_COLLECTION", admin_user
        )
        await dispatcher.dispatch_pending()

        timeline = await service.get_timeline(case)

        types = [entry.type for entry in timeline]
        assert "status_change" in types
        assert "activity" in types
        timestamps = [entry.timestamp for entry in timeline]
        assert timestamps == sorted(timestamps)

    @pytest.mark.asyncio
    async def test_response_carries_derived_fields(self, db_session, test_settings, client_user):
        service = CaseEntryService(db_session, test_settings)
        case = await service.create_case(
            client_user,
            _case_data(next_deadline=datetime.now(timezone.utc) - timedelta(days=1)),
        )

        response = CaseEntryService.to_response(case)

        assert response.case_id == case.case_id
        assert response.progress == 10
        assert response.is_overdue is True
        assert response.days_in_current_status == 0
        assert response.version == 1
