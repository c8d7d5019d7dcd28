"""Stage 3: Relief Program Eligibility Engine

Scores a taxpayer's financial picture against the five IRS relief
programs and turns the result into ranked recommendations.

Architecture:
- Layer 1: Filing Gate - unfiled returns disqualify every program
- Layer 2: Program Predicates - one pure analyzer per program (qualified + confidence)
- Layer 3: Ranking & Output - recommendations, overall score, risk, success probability

Everything here is pure: no database access, no clock, no randomness.
"""

import logging
from typing import Callable, Dict, List

from app.core.enums import (
    FilingStatus,
    Likelihood,
    ProgramType,
    RecommendationPriority,
    RiskRating,
    SCORED_PROGRAMS,
)
from app.schemas.shared import (
    DisqualifiedProgram,
    EligibilityInput,
    EligibilityResult,
    LikelyProgram,
    OnboardingAnswers,
    OnboardingRecommendation,
    ProgramAnalysis,
    ProgramOutcome,
    QualifiedProgram,
    QuickCheckRequest,
    QuickCheckResult,
    Recommendation,
    ReliefProgramInfo,
)
from app.utils.numbers import clamp, round_half_up

logger = logging.getLogger(__name__)


# Behaviours kept as-is pending product review; reported on every result they affect
FLAG_PA_ALWAYS_QUALIFIES = "PA_ALWAYS_QUALIFIES"
FLAG_FILING_RECOMMENDATION_WITHOUT_QUALIFICATION = "FILING_RECOMMENDATION_WITHOUT_QUALIFICATION"
FLAG_PA_EXCLUDED_FROM_SCORE = "PA_EXCLUDED_FROM_SCORE"

FILING_GATE_REASON = "Unfiled tax returns must be filed before any relief program"
GATE_SCORE = 10
NO_PROGRAM_SCORE = 10
MAX_RECOMMENDATIONS = 3
MAX_COUNTED_PROGRAMS = 5

# Programs whose qualification ignores the inputs. They are still reported
# and recommended but do not move the overall score.
UNCONDITIONAL_PROGRAMS = frozenset({ProgramType.PA})


# ═══════════════════════════════════════════════════════════════
# LAYER 2: PROGRAM ANALYZERS
# ═══════════════════════════════════════════════════════════════

def analyze_oic(data: EligibilityInput) -> ProgramAnalysis:
    """Offer in Compromise: large debt the taxpayer cannot realistically pay."""
    disposable = data.effective_disposable_income
    qualified = data.total_tax_debt > 10000 and disposable < 100
    return ProgramAnalysis(
        program=ProgramType.OIC,
        qualified=qualified,
        confidence=75 if qualified else 25,
        estimated_benefit=data.total_tax_debt * 0.6 if qualified else 0.0,
        requirements=["Form 656", "Form 433-A", "Application fee"],
        estimated_days=180,
        disqualification_reasons=[] if qualified else ["Sufficient income to pay debt"],
    )


def analyze_ia(data: EligibilityInput) -> ProgramAnalysis:
    """Installment Agreement: moderate debt and some income left each month."""
    disposable = data.effective_disposable_income
    qualified = data.total_tax_debt <= 50000 and disposable > 0
    return ProgramAnalysis(
        program=ProgramType.IA,
        qualified=qualified,
        confidence=90 if qualified else 10,
        # Interest and penalty savings versus enforced collection
        estimated_benefit=data.total_tax_debt * 0.2 if qualified else 0.0,
        requirements=["Form 9465"],
        estimated_days=30,
        disqualification_reasons=(
            [] if qualified else ["Debt exceeds $50,000 or no disposable income"]
        ),
    )


def analyze_cnc(data: EligibilityInput) -> ProgramAnalysis:
    """Currently Not Collectible: nothing left after necessary expenses."""
    qualified = data.effective_disposable_income <= 0
    return ProgramAnalysis(
        program=ProgramType.CNC,
        qualified=qualified,
        confidence=80 if qualified else 20,
        estimated_benefit=data.total_tax_debt if qualified else 0.0,
        requirements=["Form 433-F", "Financial documentation"],
        estimated_days=90,
        disqualification_reasons=[] if qualified else ["Sufficient income to pay debt"],
    )


def analyze_pa(data: EligibilityInput) -> ProgramAnalysis:
    """Penalty Abatement: qualifies unconditionally (flagged, see FLAG_PA_ALWAYS_QUALIFIES)."""
    return ProgramAnalysis(
        program=ProgramType.PA,
        qualified=True,
        confidence=50,
        # Penalties assumed to be roughly a quarter of the balance
        estimated_benefit=data.total_tax_debt * 0.25,
        requirements=["Form 843", "Reasonable cause documentation"],
        estimated_days=120,
    )


def analyze_isr(data: EligibilityInput) -> ProgramAnalysis:
    """Innocent Spouse Relief: only meaningful for joint filers."""
    qualified = data.filing_status == FilingStatus.MARRIED_JOINT
    return ProgramAnalysis(
        program=ProgramType.ISR,
        qualified=qualified,
        confidence=60 if qualified else 0,
        estimated_benefit=data.total_tax_debt * 0.5 if qualified else 0.0,
        requirements=["Form 8857", "Spouse documentation"],
        estimated_days=365,
        disqualification_reasons=[] if qualified else ["Not applicable - no joint filing"],
    )


PROGRAM_ANALYZERS: Dict[ProgramType, Callable[[EligibilityInput], ProgramAnalysis]] = {
    ProgramType.OIC: analyze_oic,
    ProgramType.IA: analyze_ia,
    ProgramType.CNC: analyze_cnc,
    ProgramType.PA: analyze_pa,
    ProgramType.ISR: analyze_isr,
}


# ═══════════════════════════════════════════════════════════════
# LAYER 3: RANKING & OUTPUT
# ═══════════════════════════════════════════════════════════════

def generate_recommendations(qualified: List[QualifiedProgram]) -> List[Recommendation]:
    """Top programs by estimated benefit; first is HIGH priority, the rest MEDIUM."""
    if not qualified:
        return [
            Recommendation(
                priority=RecommendationPriority.HIGH,
                action="File missing returns",
                description="Complete all unfiled tax returns to qualify for relief programs",
            )
        ]

    # sorted() is stable, so ties keep evaluation order
    ranked = sorted(qualified, key=lambda p: p.estimated_benefit, reverse=True)
    return [
        Recommendation(
            priority=RecommendationPriority.HIGH if idx == 0 else RecommendationPriority.MEDIUM,
            program=program.program,
            action=f"Apply for {program.program.value}",
            description=f"Estimated benefit: ${program.estimated_benefit:,.2f}",
            confidence=program.confidence,
        )
        for idx, program in enumerate(ranked[:MAX_RECOMMENDATIONS])
    ]


def calculate_overall_score(qualified: List[QualifiedProgram]) -> int:
    """0.7 x mean confidence + 10 per qualified program (capped at five)."""
    if not qualified:
        return NO_PROGRAM_SCORE
    average_confidence = sum(p.confidence for p in qualified) / len(qualified)
    program_points = min(len(qualified), MAX_COUNTED_PROGRAMS) * 10
    return round_half_up(average_confidence * 0.7 + program_points)


def rate_risk(score: int) -> RiskRating:
    if score >= 70:
        return RiskRating.LOW
    if score >= 40:
        return RiskRating.MEDIUM
    return RiskRating.HIGH


def success_probability(score: int) -> int:
    return int(clamp(score + 10, 10, 95))


def _filing_gate(data: EligibilityInput) -> EligibilityResult:
    return EligibilityResult(
        disqualified_programs=[
            DisqualifiedProgram(program=program, reasons=[FILING_GATE_REASON])
            for program in SCORED_PROGRAMS
        ],
        recommendations=[
            Recommendation(
                priority=RecommendationPriority.CRITICAL,
                action="File all missing tax returns",
                description=(
                    "You must file all required tax returns before qualifying "
                    "for any relief program"
                ),
                missing_years=sorted(set(data.unfiled_years)),
            )
        ],
        overall_score=GATE_SCORE,
        risk_rating=RiskRating.HIGH,
        success_probability=success_probability(GATE_SCORE),
    )


def analyze_eligibility(
    data: EligibilityInput,
    score_unconditional_programs: bool = False,
) -> EligibilityResult:
    """
    Score every relief program for one taxpayer.

    Steps:
    1. Filing gate: unfiled returns disqualify all five programs, emit one
       CRITICAL recommendation and score 10 / HIGH risk. Nothing else runs.
    2. Run each program analyzer independently.
    3. Rank qualified programs into recommendations.
    4. Score = round(0.7 x mean confidence + 10 x min(count, 5)) over the
       input-driven qualifications, or 10 when there are none.
       Penalty Abatement counts only when ``score_unconditional_programs``
       is set; otherwise the result carries PA_EXCLUDED_FROM_SCORE.
    5. Risk LOW >= 70, MEDIUM >= 40, else HIGH.
    6. Success probability = clamp(score + 10, 10, 95).

    Args:
        data: Pre-validated, finite financial inputs
        score_unconditional_programs: Include always-qualifying programs in
            the overall score average and count

    Returns:
        EligibilityResult with per-program records and flags for preserved quirks
    """
    if not data.all_returns_filed:
        return _filing_gate(data)

    qualified: List[QualifiedProgram] = []
    disqualified: List[DisqualifiedProgram] = []
    outcomes: Dict[ProgramType, ProgramOutcome] = {}

    for program in SCORED_PROGRAMS:
        analysis = PROGRAM_ANALYZERS[program](data)
        if analysis.qualified:
            qualified.append(
                QualifiedProgram(
                    program=program,
                    confidence=analysis.confidence,
                    estimated_benefit=analysis.estimated_benefit,
                    requirements=analysis.requirements,
                    estimated_days=analysis.estimated_days,
                )
            )
            outcomes[program] = ProgramOutcome(
                estimated_benefit=analysis.estimated_benefit,
                estimated_days=analysis.estimated_days,
                confidence=analysis.confidence,
            )
        else:
            disqualified.append(
                DisqualifiedProgram(program=program, reasons=analysis.disqualification_reasons)
            )

    flags = [FLAG_PA_ALWAYS_QUALIFIES]
    if not qualified:
        flags.append(FLAG_FILING_RECOMMENDATION_WITHOUT_QUALIFICATION)

    scored = qualified
    if not score_unconditional_programs:
        scored = [p for p in qualified if p.program not in UNCONDITIONAL_PROGRAMS]
        if len(scored) != len(qualified):
            flags.append(FLAG_PA_EXCLUDED_FROM_SCORE)
    score = calculate_overall_score(scored)
    result = EligibilityResult(
        qualified_programs=qualified,
        disqualified_programs=disqualified,
        recommendations=generate_recommendations(qualified),
        estimated_outcomes=outcomes,
        overall_score=score,
        risk_rating=rate_risk(score),
        success_probability=success_probability(score),
        flags=flags,
    )
    logger.debug(
        "Eligibility scored %s (%s qualified)", result.overall_score, len(qualified)
    )
    return result


# ═══════════════════════════════════════════════════════════════
# QUICK PRE-SCREEN
# ═══════════════════════════════════════════════════════════════

def quick_eligibility_check(request: QuickCheckRequest) -> QuickCheckResult:
    """
    Stateless pre-screen from four numbers. Nothing is saved.

    ``monthly_income`` is validated as positive upstream, so the ratios
    are always defined.
    """
    disposable = request.monthly_income - request.monthly_expenses
    debt_to_income = request.total_tax_debt / (request.monthly_income * 12)
    disposable_ratio = disposable / request.monthly_income

    likely: List[LikelyProgram] = []
    if debt_to_income > 1 and disposable_ratio < 0.2:
        likely.append(
            LikelyProgram(
                program=ProgramType.OIC,
                likelihood=Likelihood.HIGH,
                estimated_savings=request.total_tax_debt * 0.6,
            )
        )
    if request.total_tax_debt <= 50000 and disposable > 0:
        likely.append(
            LikelyProgram(
                program=ProgramType.IA,
                likelihood=Likelihood.HIGH,
                monthly_payment=max(25.0, request.total_tax_debt / 72),
            )
        )
    if disposable <= 0:
        likely.append(
            LikelyProgram(
                program=ProgramType.CNC,
                likelihood=Likelihood.MEDIUM,
                description="Temporarily halt collections due to hardship",
            )
        )

    estimated_savings = max((p.estimated_savings or 0.0 for p in likely), default=0.0)

    if request.all_returns_filed:
        next_steps = ["Complete full assessment", "Upload required documents"]
    else:
        next_steps = ["File all missing tax returns"]

    return QuickCheckResult(
        likely_programs=likely,
        estimated_savings=estimated_savings,
        recommended_next=next_steps,
    )


# ═══════════════════════════════════════════════════════════════
# ONBOARDING WIZARD DECISION TABLE
# ═══════════════════════════════════════════════════════════════

def recommend_onboarding_programs(answers: OnboardingAnswers) -> List[OnboardingRecommendation]:
    """Map the onboarding wizard's multiple-choice answers to suggested programs."""
    if answers.returns == "no":
        return [
            OnboardingRecommendation(
                rank="!",
                name="File Missing Returns First",
                benefit="Required before any relief program",
            )
        ]

    programs: List[OnboardingRecommendation] = []

    if answers.financial == "hardship" or (
        answers.financial == "tight" and answers.debt != "under10k"
    ):
        programs.append(
            OnboardingRecommendation(
                rank="1",
                name="Offer in Compromise",
                benefit="Potentially settle for less than you owe",
                program=ProgramType.OIC,
            )
        )

    if answers.financial == "hardship":
        programs.append(
            OnboardingRecommendation(
                rank="2",
                name="Currently Not Collectible",
                benefit="Temporary suspension of collection",
                program=ProgramType.CNC,
            )
        )

    if answers.debt == "under10k":
        name, benefit = "Guaranteed Installment Agreement", "Automatic approval for payment plan"
    elif answers.debt == "under50k":
        name, benefit = "Streamlined Installment Agreement", "Payment plan without financial disclosure"
    else:
        name, benefit = "Installment Agreement", "Monthly payment plan based on ability"
    programs.append(
        OnboardingRecommendation(rank="3", name=name, benefit=benefit, program=ProgramType.IA)
    )

    if "penalties" in answers.circumstances:
        programs.append(
            OnboardingRecommendation(
                rank="★",
                name="Penalty Abatement",
                benefit="Remove penalties from your debt",
                program=ProgramType.PA,
            )
        )
    if "spouse" in answers.circumstances:
        programs.append(
            OnboardingRecommendation(
                rank="★",
                name="Innocent Spouse Relief",
                benefit="Relief from spouse's tax liability",
                program=ProgramType.ISR,
            )
        )

    return programs


# ═══════════════════════════════════════════════════════════════
# PROGRAM CATALOGUE
# ═══════════════════════════════════════════════════════════════

RELIEF_PROGRAMS: List[ReliefProgramInfo] = [
    ReliefProgramInfo(
        id=ProgramType.OIC,
        name="Offer in Compromise",
        description="Settle your tax debt for less than you owe",
        requirements=[
            "All returns filed",
            "Current with estimated tax payments",
            "Financial hardship or doubt as to collectibility",
        ],
        benefits=[
            "Significantly reduce total debt",
            "Fresh start with IRS",
            "Stop collection activities",
        ],
        timeframe="6-24 months",
        success_rate=42,
    ),
    ReliefProgramInfo(
        id=ProgramType.IA,
        name="Installment Agreement",
        description="Pay your tax debt over time with monthly payments",
        requirements=[
            "All returns filed",
            "Owe $50,000 or less",
            "Can pay within 72 months",
        ],
        benefits=[
            "Avoid levies and garnishments",
            "Stop penalty accrual",
            "Manageable monthly payments",
        ],
        timeframe="1-6 years",
        success_rate=95,
    ),
    ReliefProgramInfo(
        id=ProgramType.CNC,
        name="Currently Not Collectible",
        description="Temporarily halt collection due to financial hardship",
        requirements=[
            "All returns filed",
            "Demonstrate financial hardship",
            "Income below IRS standards",
        ],
        benefits=[
            "Stop collection activities",
            "No monthly payments required",
            "Potential debt expiration",
        ],
        timeframe="Annual review",
        success_rate=78,
    ),
    ReliefProgramInfo(
        id=ProgramType.PA,
        name="Penalty Abatement",
        description="Remove penalties for reasonable cause",
        requirements=[
            "First-time penalty",
            "Reasonable cause for late filing/payment",
            "Current compliance",
        ],
        benefits=[
            "Remove penalty charges",
            "Reduce total debt",
            "Clean compliance record",
        ],
        timeframe="2-6 months",
        success_rate=65,
    ),
    ReliefProgramInfo(
        id=ProgramType.ISR,
        name="Innocent Spouse Relief",
        description="Relief from joint tax liability",
        requirements=[
            "Filed joint return with spouse",
            "Understated tax due to spouse",
            "Unaware of understatement",
        ],
        benefits=[
            "Relief from spouse's tax debt",
            "Separate liability determination",
            "Protection from collection",
        ],
        timeframe="6-18 months",
        success_rate=55,
    ),
]
