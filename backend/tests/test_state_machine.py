"""Tests for the case status state machine (pure transitions)."""
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from uuid import uuid4

import pytest

from app.core.enums import CaseStatus, UserRole
from app.core.errors import AuthorizationError, InvalidTransitionError, ValidationError
from app.models.case import Case
from app.services.case_lifecycle import (
    TransitionPolicy,
    allowed_transitions,
    calculate_progress,
    days_in_current_status,
    is_overdue,
    transition,
)

NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


def _actor(role: UserRole = UserRole.TAX_PROFESSIONAL):
    return SimpleNamespace(id=uuid4(), role=role.value)


def _case(status: CaseStatus = CaseStatus.INITIAL_ASSESSMENT, **fields) -> Case:
    return Case(
        id=uuid4(),
        case_id="OT2024030001",
        user_id=uuid4(),
        program_type="IA",
        status=status.value,
        total_debt=12000,
        tax_years=[2022],
        state_history=fields.pop("state_history", []),
        created_at=fields.pop("created_at", NOW - timedelta(days=10)),
        **fields,
    )


# ═══════════════════════════════════════════════════════════════
# TRANSITION RULES
# ═══════════════════════════════════════════════════════════════

class TestTransition:
    """transition() effects and preconditions."""

    def test_forward_step_records_history(self):
        case = _case()
        actor = _actor()

        event = transition(case, "DOCUMENT_COLLECTION", actor, now=NOW, notes="docs next")

        assert case.status == CaseStatus.DOCUMENT_COLLECTION.value
        assert case.state_history == [{
            "from_status": "INITIAL_ASSESSMENT",
            "to_status": "DOCUMENT_COLLECTION",
            "timestamp": NOW.isoformat(),
            "triggered_by": str(actor.id),
            "notes": "docs next",
        }]
        assert event.from_status == "INITIAL_ASSESSMENT"
        assert event.to_status == "DOCUMENT_COLLECTION"
        assert event.owner_id == case.user_id

    def test_unknown_status_is_validation_error(self):
        with pytest.raises(ValidationError) as exc_info:
            transition(_case(), "LIMBO", _actor())
        assert exc_info.value.code == "INVALID_STATUS"

    @pytest.mark.parametrize("role", [UserRole.CLIENT, UserRole.SUPPORT])
    def test_roles_without_capability_are_refused(self, role):
        case = _case()
        with pytest.raises(AuthorizationError):
            transition(case, "DOCUMENT_COLLECTION", _actor(role))
        assert case.status == CaseStatus.INITIAL_ASSESSMENT.value
        assert case.state_history == []

    def test_same_status_rejected(self):
        with pytest.raises(InvalidTransitionError):
            transition(_case(), "INITIAL_ASSESSMENT", _actor())

    def test_skipping_ahead_rejected_under_strict_policy(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            transition(_case(), "SUBMISSION", _actor())
        assert exc_info.value.code == "INVALID_TRANSITION"

    def test_permissive_policy_allows_any_distinct_status(self):
        case = _case()
        transition(case, "SUBMISSION", _actor(), policy=TransitionPolicy.PERMISSIVE, now=NOW)
        assert case.status == CaseStatus.SUBMISSION.value

    def test_submission_sets_submission_fields(self):
        case = _case(CaseStatus.REVIEW)
        transition(case, "SUBMISSION", _actor(), now=NOW)

        assert case.submission_date == NOW
        assert case.submitted_to_irs is True

    def test_outcome_sets_resolution_date(self):
        case = _case(CaseStatus.NEGOTIATION)
        transition(case, "ACCEPTED", _actor(UserRole.ADMIN), now=NOW)
        assert case.resolution_date == NOW

    def test_closed_is_terminal(self):
        case = _case(CaseStatus.CLOSED)
        for target in CaseStatus:
            if target == CaseStatus.CLOSED:
                continue
            with pytest.raises(InvalidTransitionError):
                transition(case, target.value, _actor(UserRole.ADMIN))

    def test_on_hold_returns_to_previous_status(self):
        case = _case(CaseStatus.FORM_PREPARATION)
        actor = _actor()
        transition(case, "ON_HOLD", actor, now=NOW)

        assert CaseStatus.FORM_PREPARATION in allowed_transitions(
            CaseStatus.ON_HOLD, CaseStatus.FORM_PREPARATION
        )
        with pytest.raises(InvalidTransitionError):
            transition(case, "REVIEW", actor)

        transition(case, "FORM_PREPARATION", actor, now=NOW)
        assert case.status == CaseStatus.FORM_PREPARATION.value
        assert len(case.state_history) == 2


class TestAllowedTransitions:
    """Shape of the strict graph."""

    def test_pipeline_neighbours(self):
        allowed = allowed_transitions(CaseStatus.REVIEW)
        assert CaseStatus.FORM_PREPARATION in allowed
        assert CaseStatus.SUBMISSION in allowed
        assert CaseStatus.ACCEPTED not in allowed

    def test_outcomes_only_from_irs_stages(self):
        assert CaseStatus.ACCEPTED in allowed_transitions(CaseStatus.IRS_PROCESSING)
        assert CaseStatus.REJECTED in allowed_transitions(CaseStatus.NEGOTIATION)

    def test_outcomes_only_close(self):
        assert allowed_transitions(CaseStatus.WITHDRAWN) == frozenset({CaseStatus.CLOSED})


# ═══════════════════════════════════════════════════════════════
# DERIVED VALUES
# ═══════════════════════════════════════════════════════════════

class TestDerivedValues:
    """Progress, overdue and time-in-status."""

    @pytest.mark.parametrize("status,expected", [
        (CaseStatus.INITIAL_ASSESSMENT, 10),
        (CaseStatus.REVIEW, 60),
        (CaseStatus.NEGOTIATION, 90),
        (CaseStatus.REJECTED, 100),
        (CaseStatus.ON_HOLD, 0),
    ])
    def test_progress_table(self, status, expected):
        assert calculate_progress(status) == expected

    def test_unknown_status_progress_is_zero(self):
        assert calculate_progress("BOGUS") == 0

    def test_overdue_only_when_strictly_past(self):
        assert not is_overdue(_case(), now=NOW)
        assert is_overdue(_case(next_deadline=NOW - timedelta(seconds=1)), now=NOW)
        assert not is_overdue(_case(next_deadline=NOW), now=NOW)

    def test_naive_deadline_treated_as_utc(self):
        case = _case(next_deadline=datetime(2024, 3, 1))
        assert is_overdue(case, now=NOW)

    def test_days_in_status_from_creation(self):
        assert days_in_current_status(_case(), now=NOW) == 10

    def test_days_in_status_from_last_change(self):
        changed = NOW - timedelta(days=3, hours=5)
        case = _case(state_history=[{
            "from_status": "INITIAL_ASSESSMENT",
            "to_status": "DOCUMENT_COLLECTION",
            "timestamp": changed.isoformat(),
            "triggered_by": str(uuid4()),
        }])
        assert days_in_current_status(case, now=NOW) == 3
