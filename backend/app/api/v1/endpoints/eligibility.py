"""Eligibility assessment and relief program endpoints."""
import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter

from app.core.deps import AppSettings, CurrentUser, DbSession
from app.models.assessment import Assessment
from app.schemas.shared import (
    AssessmentOutcome,
    AssessmentResponse,
    AssessmentSubmit,
    EligibilityResult,
    OnboardingAnswers,
    OnboardingRecommendation,
    QuickCheckRequest,
    QuickCheckResult,
    ReliefProgramInfo,
)
from app.services.stages.stage2_assessment import AssessmentService, calculate_affordability
from app.services.stages.stage3_eligibility import (
    RELIEF_PROGRAMS,
    quick_eligibility_check,
    recommend_onboarding_programs,
)

router = APIRouter(prefix="/eligibility", tags=["eligibility"])
logger = logging.getLogger(__name__)


def _outcome(assessment: Assessment) -> AssessmentOutcome:
    results = None
    if assessment.eligibility_results:
        results = EligibilityResult.model_validate(assessment.eligibility_results)
    return AssessmentOutcome(
        assessment=AssessmentResponse.model_validate(assessment),
        eligibility_results=results,
        affordability=calculate_affordability(assessment),
    )


@router.post("/assess", response_model=AssessmentOutcome)
async def submit_assessment(
    payload: AssessmentSubmit,
    current_user: CurrentUser,
    db: DbSession,
    settings: AppSettings,
):
    """
    Save assessment answers and re-run the eligibility engine.

    ``eligibility_results`` stays null until filing status is known and,
    for filers, debt, income and expenses are all present.
    """
    assessment, _ = await AssessmentService(db, settings).submit(current_user, payload)
    return _outcome(assessment)


@router.get("/assessment/{assessment_id}", response_model=AssessmentOutcome)
async def get_assessment(
    assessment_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
    settings: AppSettings,
):
    assessment = await AssessmentService(db, settings).get_assessment(assessment_id, current_user)
    return _outcome(assessment)


@router.get("/user/{user_id}/latest", response_model=AssessmentOutcome)
async def get_latest_assessment(
    user_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
    settings: AppSettings,
):
    assessment = await AssessmentService(db, settings).get_latest_visible(user_id, current_user)
    return _outcome(assessment)


@router.post("/quick-check", response_model=QuickCheckResult)
async def quick_check(request: QuickCheckRequest):
    """Anonymous pre-screen from four numbers; nothing is stored."""
    return quick_eligibility_check(request)


@router.post("/onboarding", response_model=List[OnboardingRecommendation])
async def onboarding_recommendations(answers: OnboardingAnswers):
    return recommend_onboarding_programs(answers)


@router.get("/programs", response_model=List[ReliefProgramInfo])
async def list_programs():
    return RELIEF_PROGRAMS
