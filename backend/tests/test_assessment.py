"""Tests for Stage 2: assessment intake and the eligibility API."""
import pytest
from sqlalchemy import select

from app.core.enums import AffordabilityRating, AssessmentStatus, AssessmentStep, RiskRating
from app.core.errors import AuthorizationError, NotFoundError
from app.models.activity import DomainEvent
from app.models.assessment import Assessment
from app.schemas.shared import AssessmentSubmit
from app.services.stages.stage2_assessment import (
    AssessmentService,
    apply_derived_fields,
    build_eligibility_input,
    calculate_affordability,
)


def _assessment(**fields) -> Assessment:
    values = dict(unfiled_years=[], special_circumstances=[], completed_steps=[])
    values.update(fields)
    return Assessment(**values)


# ═══════════════════════════════════════════════════════════════
# DERIVED FIELDS
# ═══════════════════════════════════════════════════════════════

class TestDerivedFields:
    """Values computed on every save."""

    def test_disposable_income(self):
        assessment = _assessment(monthly_income=4000, monthly_expenses=3250)
        apply_derived_fields(assessment)
        assert assessment.disposable_income == 750

    def test_disposable_needs_both_numbers(self):
        assessment = _assessment(monthly_income=4000, disposable_income=99)
        apply_derived_fields(assessment)
        assert assessment.disposable_income is None

    def test_progress_from_steps(self):
        assessment = _assessment(completed_steps=["WELCOME", "RETURNS", "DEBT"])
        apply_derived_fields(assessment)

        assert assessment.progress_percentage == 50
        assert assessment.completed_at is None

    def test_all_steps_complete_assessment(self):
        assessment = _assessment(completed_steps=[step.value for step in AssessmentStep])
        apply_derived_fields(assessment)

        assert assessment.progress_percentage == 100
        assert assessment.completed_at is not None
        assert assessment.status == AssessmentStatus.COMPLETED.value

    def test_completed_at_set_once(self):
        assessment = _assessment(completed_steps=[step.value for step in AssessmentStep])
        apply_derived_fields(assessment)
        first = assessment.completed_at

        apply_derived_fields(assessment)
        assert assessment.completed_at == first


class TestAnalysisReadiness:
    """When the eligibility engine may run."""

    def test_unknown_filing_status_is_pending(self):
        assert build_eligibility_input(_assessment(total_tax_debt=1000)) is None

    def test_unfiled_returns_run_without_financials(self):
        data = build_eligibility_input(_assessment(all_returns_filed=False, unfiled_years=[2021]))
        assert data is not None
        assert data.all_returns_filed is False

    def test_filer_needs_debt_income_and_expenses(self):
        partial = _assessment(all_returns_filed=True, total_tax_debt=5000, monthly_income=3000)
        assert build_eligibility_input(partial) is None

        partial.monthly_expenses = 2000
        apply_derived_fields(partial)
        data = build_eligibility_input(partial)
        assert data.effective_disposable_income == 1000


class TestAffordability:
    """Months to pay off and rating."""

    @pytest.mark.parametrize("debt,disposable,rating", [
        (7200, 100, AffordabilityRating.GOOD),
        (12000, 100, AffordabilityRating.FAIR),
        (12100, 100, AffordabilityRating.POOR),
    ])
    def test_rating_bands(self, debt, disposable, rating):
        result = calculate_affordability(_assessment(total_tax_debt=debt, disposable_income=disposable))
        assert result.affordability_rating == rating

    def test_zero_disposable_divides_by_one(self):
        result = calculate_affordability(_assessment(total_tax_debt=500, disposable_income=0))
        assert result.months_to_pay_off == 500.0
        assert result.suggested_monthly_payment == 0

    def test_needs_debt_and_disposable(self):
        assert calculate_affordability(_assessment(total_tax_debt=500)) is None


# ═══════════════════════════════════════════════════════════════
# SERVICE
# ═══════════════════════════════════════════════════════════════

class TestAssessmentService:
    """Submit and read back."""

    @pytest.mark.asyncio
    async def test_submit_runs_engine(self, db_session, test_settings, client_user):
        service = AssessmentService(db_session, test_settings)

        assessment, result = await service.submit(client_user, AssessmentSubmit(
            all_returns_filed=True,
            total_tax_debt=15000,
            monthly_income=2000,
            monthly_expenses=1950,
        ))

        assert result is not None
        assert assessment.disposable_income == 50
        assert assessment.eligibility_score == 78
        assert assessment.risk_rating == RiskRating.LOW.value
        assert assessment.success_probability == 88
        assert assessment.eligibility_results["overall_score"] == 78

    @pytest.mark.asyncio
    async def test_penalty_abatement_scored_when_configured(self, db_session, test_settings, client_user):
        settings = test_settings.model_copy(update={"ELIGIBILITY_SCORE_INCLUDES_PA": True})

        assessment, result = await AssessmentService(db_session, settings).submit(client_user, AssessmentSubmit(
            all_returns_filed=True,
            total_tax_debt=15000,
            monthly_income=2000,
            monthly_expenses=1950,
        ))

        assert assessment.eligibility_score == 80
        assert "PA_EXCLUDED_FROM_SCORE" not in result.flags

    @pytest.mark.asyncio
    async def test_incremental_submits_update_same_assessment(self, db_session, test_settings, client_user):
        service = AssessmentService(db_session, test_settings)

        first, result = await service.submit(client_user, AssessmentSubmit(completed_steps=["WELCOME"]))
        assert result is None
        assert first.eligibility_results is None

        second, _ = await service.submit(client_user, AssessmentSubmit(
            all_returns_filed=False, unfiled_years=[2022, 2021, 2022], completed_steps=["WELCOME", "RETURNS"],
        ))

        assert second.id == first.id
        assert second.unfiled_years == [2021, 2022]
        assert second.eligibility_score == 10
        assert second.progress_percentage == 33

    @pytest.mark.asyncio
    async def test_completion_stages_event_once(self, db_session, test_settings, client_user):
        service = AssessmentService(db_session, test_settings)
        all_steps = [step.value for step in AssessmentStep]

        assessment, _ = await service.submit(client_user, AssessmentSubmit(completed_steps=all_steps))
        assert assessment.status == AssessmentStatus.COMPLETED.value

        # A completed assessment is not reopened; the next submit starts a new one
        follow_up, _ = await service.submit(client_user, AssessmentSubmit(notes="Follow-up"))
        assert follow_up.id != assessment.id

        kinds = (await db_session.execute(select(DomainEvent.kind))).scalars().all()
        assert kinds.count("assessment.completed") == 1

    @pytest.mark.asyncio
    async def test_visibility(self, db_session, test_settings, client_user, other_client, tax_pro):
        service = AssessmentService(db_session, test_settings)
        assessment, _ = await service.submit(client_user, AssessmentSubmit(all_returns_filed=False))

        with pytest.raises(AuthorizationError):
            await service.get_assessment(assessment.id, other_client)
        with pytest.raises(AuthorizationError):
            await service.get_latest_visible(client_user.id, other_client)

        assert (await service.get_assessment(assessment.id, tax_pro)).id == assessment.id

    @pytest.mark.asyncio
    async def test_no_assessment_yet(self, db_session, test_settings, client_user):
        with pytest.raises(NotFoundError):
            await AssessmentService(db_session, test_settings).get_latest_visible(client_user.id, client_user)


# ═══════════════════════════════════════════════════════════════
# API
# ═══════════════════════════════════════════════════════════════

class TestEligibilityAPI:
    """/api/v1/eligibility routes."""

    @pytest.mark.asyncio
    async def test_assess_returns_outcome(self, http_client, client_user, auth_headers):
        response = await http_client.post(
            "/api/v1/eligibility/assess",
            json={
                "all_returns_filed": True,
                "total_tax_debt": 15000,
                "monthly_income": 2000,
                "monthly_expenses": 1950,
            },
            headers=auth_headers(client_user),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["eligibility_results"]["overall_score"] == 78
        assert body["assessment"]["disposable_income"] == 50
        assert body["affordability"]["affordability_rating"] == "POOR"

        latest = await http_client.get(
            f"/api/v1/eligibility/user/{client_user.id}/latest", headers=auth_headers(client_user)
        )
        assert latest.json()["assessment"]["id"] == body["assessment"]["id"]

    @pytest.mark.asyncio
    async def test_pending_analysis_is_null(self, http_client, client_user, auth_headers):
        response = await http_client.post(
            "/api/v1/eligibility/assess",
            json={"total_tax_debt": 15000},
            headers=auth_headers(client_user),
        )
        assert response.json()["eligibility_results"] is None

    @pytest.mark.asyncio
    async def test_public_routes_need_no_token(self, http_client):
        quick = await http_client.post("/api/v1/eligibility/quick-check", json={
            "total_tax_debt": 80000, "monthly_income": 3000, "monthly_expenses": 3200, "all_returns_filed": True,
        })
        programs = await http_client.get("/api/v1/eligibility/programs")
        onboarding = await http_client.post("/api/v1/eligibility/onboarding", json={
            "returns": "yes", "debt": "under10k", "financial": "tight",
        })

        assert quick.status_code == 200
        assert programs.status_code == 200
        assert onboarding.json()[0]["name"] == "Guaranteed Installment Agreement"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field,value", [
        ("total_tax_debt", "inf"),
        ("monthly_income", "Infinity"),
        ("monthly_expenses", "NaN"),
        ("monthly_income", 1e9),
        ("total_tax_debt", 1e10),
    ])
    async def test_quick_check_rejects_unusable_numbers(self, http_client, field, value):
        payload = {"total_tax_debt": 60000, "monthly_income": 3000, "monthly_expenses": 2900, "all_returns_filed": True}
        payload[field] = value

        response = await http_client.post("/api/v1/eligibility/quick-check", json=payload)

        assert response.status_code == 422

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field,value", [
        ("monthly_income", "inf"),
        ("total_tax_debt", "-Infinity"),
        ("liquid_assets", "NaN"),
        ("monthly_income", 1e9),
        ("total_assets", 1e10),
    ])
    async def test_assess_rejects_unusable_numbers(
        self, http_client, db_session, client_user, auth_headers, field, value
    ):
        payload = {"all_returns_filed": True, "total_tax_debt": 15000, "monthly_income": 2000, "monthly_expenses": 1950}
        payload[field] = value

        response = await http_client.post(
            "/api/v1/eligibility/assess", json=payload, headers=auth_headers(client_user)
        )

        assert response.status_code == 422
        # Nothing reached the engine or the database
        assert (await db_session.execute(select(Assessment))).scalars().all() == []
