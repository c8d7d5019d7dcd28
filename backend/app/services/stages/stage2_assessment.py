"""Stage 2: Assessment intake - derived fields, persistence and analysis trigger."""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings
from app.core.enums import AffordabilityRating, AssessmentStatus, AssessmentStep
from app.core.errors import AuthorizationError, NotFoundError
from app.core.permissions import Action, can
from app.models.assessment import Assessment
from app.models.user import User
from app.schemas.shared import (
    Affordability,
    AssessmentSubmit,
    EligibilityInput,
    EligibilityResult,
)
from app.services.events import AssessmentCompleted, EventOutbox
from app.services.stages.stage0_case_entry import CaseEntryService
from app.services.stages.stage3_eligibility import analyze_eligibility
from app.utils.clock import utcnow
from app.utils.numbers import round_half_up

logger = logging.getLogger(__name__)

TOTAL_STEPS = len(AssessmentStep)

# IRS installment agreements run at most 72 months
PAYOFF_HORIZON_MONTHS = 72
FAIR_PAYOFF_MONTHS = 120


def apply_derived_fields(assessment: Assessment) -> None:
    """
    Recompute the fields that are never taken from the client.

    - disposable income = income - expenses (None unless both are known)
    - progress = share of the six wizard steps completed
    - first time progress hits 100: stamp ``completed_at`` and mark COMPLETED
    """
    if assessment.monthly_income is not None and assessment.monthly_expenses is not None:
        assessment.disposable_income = assessment.monthly_income - assessment.monthly_expenses
    else:
        assessment.disposable_income = None

    steps = {AssessmentStep(step) for step in assessment.completed_steps or []}
    assessment.progress_percentage = round_half_up(100 * len(steps) / TOTAL_STEPS)

    if assessment.progress_percentage >= 100 and assessment.completed_at is None:
        assessment.completed_at = utcnow()
        assessment.status = AssessmentStatus.COMPLETED.value


def build_eligibility_input(assessment: Assessment) -> Optional[EligibilityInput]:
    """
    Engine input for an assessment, or None while analysis cannot run yet.

    Unfiled returns trigger the filing gate on their own; otherwise debt,
    income and expenses must all be known.
    """
    if assessment.all_returns_filed is None:
        return None

    if assessment.all_returns_filed:
        if (
            assessment.total_tax_debt is None
            or assessment.monthly_income is None
            or assessment.monthly_expenses is None
        ):
            return None

    return EligibilityInput(
        all_returns_filed=assessment.all_returns_filed,
        unfiled_years=assessment.unfiled_years or [],
        filing_status=assessment.filing_status,
        total_tax_debt=assessment.total_tax_debt or 0.0,
        monthly_income=assessment.monthly_income or 0.0,
        monthly_expenses=assessment.monthly_expenses or 0.0,
        disposable_income=assessment.disposable_income,
    )


def calculate_affordability(assessment: Assessment) -> Optional[Affordability]:
    """How long the debt would take to clear from disposable income."""
    if assessment.total_tax_debt is None or assessment.disposable_income is None:
        return None

    debt = assessment.total_tax_debt
    disposable = assessment.disposable_income
    months = debt / max(disposable, 1)

    if months <= PAYOFF_HORIZON_MONTHS:
        rating = AffordabilityRating.GOOD
    elif months <= FAIR_PAYOFF_MONTHS:
        rating = AffordabilityRating.FAIR
    else:
        rating = AffordabilityRating.POOR

    return Affordability(
        months_to_pay_off=round(months, 1),
        affordability_rating=rating,
        suggested_monthly_payment=round(min(disposable, debt / PAYOFF_HORIZON_MONTHS), 2),
    )


class AssessmentService:
    """Creates, updates and analyses taxpayer assessments."""

    def __init__(self, db: AsyncSession, settings: Settings):
        self.db = db
        self.settings = settings
        self.outbox = EventOutbox(max_attempts=settings.EVENT_QUEUE_MAX_ATTEMPTS)

    async def submit(self, user: User, payload: AssessmentSubmit) -> tuple[Assessment, Optional[EligibilityResult]]:
        """
        Update the user's in-progress assessment (or start a new one) and
        re-run eligibility when enough information is present.
        """
        assessment = await self.get_latest_for_user(user.id)
        if assessment is None or assessment.status != AssessmentStatus.IN_PROGRESS.value:
            assessment = Assessment(
                user_id=user.id,
                status=AssessmentStatus.IN_PROGRESS.value,
                unfiled_years=[],
                special_circumstances=[],
                completed_steps=[],
            )
            self.db.add(assessment)
            logger.info("Starting assessment for user %s", user.id)

        changes = payload.model_dump(exclude_unset=True)
        case_ref = changes.pop("case_id", None)
        if case_ref:
            case = await CaseEntryService(self.db, self.settings).get_case(case_ref, user)
            assessment.case_id = case.id

        for field, value in changes.items():
            if field == "completed_steps" and value is not None:
                value = sorted({AssessmentStep(step).value for step in value})
            elif field == "unfiled_years" and value is not None:
                value = sorted(set(value))
            elif hasattr(value, "value"):
                value = value.value
            setattr(assessment, field, value)

        was_completed = assessment.completed_at is not None
        apply_derived_fields(assessment)

        result = None
        eligibility_input = build_eligibility_input(assessment)
        if eligibility_input is not None:
            result = analyze_eligibility(
                eligibility_input,
                score_unconditional_programs=self.settings.ELIGIBILITY_SCORE_INCLUDES_PA,
            )
            assessment.eligibility_results = result.model_dump(mode="json")
            assessment.eligibility_score = result.overall_score
            assessment.risk_rating = result.risk_rating.value
            assessment.success_probability = result.success_probability

        await self.db.flush()
        if not was_completed and assessment.completed_at is not None:
            self.outbox.stage(
                self.db,
                AssessmentCompleted(
                    actor_id=user.id,
                    owner_id=user.id,
                    assessment_id=assessment.id,
                    overall_score=assessment.eligibility_score,
                ),
            )

        await self.db.commit()
        logger.info(
            "Assessment %s saved (progress=%s%%, score=%s)",
            assessment.id, assessment.progress_percentage, assessment.eligibility_score,
        )
        return assessment, result

    async def get_latest_for_user(self, user_id: UUID) -> Optional[Assessment]:
        result = await self.db.execute(
            select(Assessment)
            .where(Assessment.user_id == user_id)
            .order_by(Assessment.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_assessment(self, assessment_id: UUID, user: User) -> Assessment:
        assessment = await self.db.get(Assessment, assessment_id)
        if assessment is None:
            raise NotFoundError("Assessment not found", "ASSESSMENT_NOT_FOUND")
        if assessment.user_id != user.id and not can(user.role, Action.ASSESSMENT_VIEW_ANY):
            raise AuthorizationError("Access denied to this assessment", "ASSESSMENT_ACCESS_DENIED")
        return assessment

    async def get_latest_visible(self, user_id: UUID, viewer: User) -> Assessment:
        if user_id != viewer.id and not can(viewer.role, Action.ASSESSMENT_VIEW_ANY):
            raise AuthorizationError("Access denied to this assessment", "ASSESSMENT_ACCESS_DENIED")
        assessment = await self.get_latest_for_user(user_id)
        if assessment is None:
            raise NotFoundError("No assessment found for this user", "ASSESSMENT_NOT_FOUND")
        return assessment
