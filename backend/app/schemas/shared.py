"""Shared Pydantic schemas - used as interface contracts between all modules.
Engines return these records; endpoints serialize them unchanged."""

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from typing import Optional, List, Dict, Any, Literal
from datetime import datetime
from uuid import UUID

from app.core.enums import (
    AffordabilityRating, AssessmentStatus, AssessmentStep, AssessmentType,
    CasePriority, CaseStatus, DocumentStatus, DocumentType, EmploymentStatus,
    FilingStatus, Likelihood, NotificationChannel, NotificationKind,
    NotificationPriority, NotificationStatus, ProgramType, RecommendationPriority,
    RiskRating, SecurityLevel, UserRole, VerificationStatus,
)
from app.utils.clock import utcnow

# Upper bounds of the Numeric(12, 2) and Numeric(10, 2) money columns
MAX_AMOUNT = 9_999_999_999.99
MAX_MONTHLY_AMOUNT = 99_999_999.99


# ═══════════════════════════════════════════════════════════════
# REQUEST / RESPONSE SCHEMAS
# ═══════════════════════════════════════════════════════════════

# ─── User ──────────────────────────────────────────────────────
class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=20)

class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    first_name: str
    last_name: str
    phone: Optional[str] = None
    role: UserRole
    is_active: bool
    created_at: datetime

class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


# ─── Case ──────────────────────────────────────────────────────
class CaseCreate(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    program_type: ProgramType
    total_debt: float = Field(ge=0.01, le=MAX_AMOUNT)
    tax_years: List[int] = Field(min_length=1)
    priority: CasePriority = CasePriority.MEDIUM
    debt_breakdown: Optional[Dict[str, float]] = None
    next_deadline: Optional[datetime] = None
    notes: Optional[str] = Field(default=None, max_length=5000)

    @field_validator("tax_years")
    @classmethod
    def _check_tax_years(cls, years: List[int]) -> List[int]:
        current_year = utcnow().year
        for year in years:
            if year < 1900 or year > current_year:
                raise ValueError(f"Tax year {year} must be between 1900 and {current_year}")
        return sorted(set(years))

class CaseUpdate(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    notes: Optional[str] = Field(default=None, max_length=5000)
    priority: Optional[CasePriority] = None
    total_debt: Optional[float] = Field(default=None, ge=0, le=MAX_AMOUNT)
    debt_breakdown: Optional[Dict[str, float]] = None
    estimated_savings: Optional[float] = Field(default=None, ge=0, le=MAX_AMOUNT)
    proposed_amount: Optional[float] = Field(default=None, ge=0, le=MAX_AMOUNT)
    monthly_payment: Optional[float] = Field(default=None, ge=0, le=MAX_MONTHLY_AMOUNT)
    next_deadline: Optional[datetime] = None
    tracking_number: Optional[str] = Field(default=None, max_length=100)
    forms_ready: Optional[bool] = None
    power_of_attorney: Optional[bool] = None

class StatusChangeRequest(BaseModel):
    # Kept as a plain string so unknown values get the INVALID_STATUS code
    status: str
    notes: Optional[str] = Field(default=None, max_length=2000)
    # Optimistic lock: reject if the case moved on since the client read it
    expected_version: Optional[int] = Field(default=None, ge=1)

class AssignCaseRequest(BaseModel):
    tax_professional_id: UUID

class StateTransitionRecord(BaseModel):
    from_status: CaseStatus
    to_status: CaseStatus
    timestamp: datetime
    triggered_by: UUID
    notes: Optional[str] = None

class CaseResponse(BaseModel):
    id: UUID
    case_id: str
    user_id: UUID
    assigned_to: Optional[UUID] = None
    program_type: ProgramType
    status: CaseStatus
    priority: CasePriority
    total_debt: float
    tax_years: List[int]
    debt_breakdown: Optional[Dict[str, float]] = None
    estimated_savings: Optional[float] = None
    proposed_amount: Optional[float] = None
    monthly_payment: Optional[float] = None
    submission_date: Optional[datetime] = None
    resolution_date: Optional[datetime] = None
    next_deadline: Optional[datetime] = None
    documents_complete: bool
    document_progress: int
    forms_ready: bool
    submitted_to_irs: bool
    tracking_number: Optional[str] = None
    power_of_attorney: bool
    notes: Optional[str] = None
    state_history: List[StateTransitionRecord] = Field(default_factory=list)
    version: int
    progress: int
    days_in_current_status: int
    is_overdue: bool
    created_at: datetime
    updated_at: datetime

class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool

class CaseListResponse(BaseModel):
    cases: List[CaseResponse]
    pagination: Pagination

class TimelineEntry(BaseModel):
    type: Literal["status_change", "activity"]
    timestamp: datetime
    description: str
    actor_id: Optional[UUID] = None
    from_status: Optional[CaseStatus] = None
    to_status: Optional[CaseStatus] = None
    action: Optional[str] = None


# ─── Documents ─────────────────────────────────────────────────
class RequirementCheck(BaseModel):
    program_type: ProgramType
    required: List[DocumentType]
    present: List[DocumentType]
    missing: List[DocumentType]
    complete: bool
    progress: int

class DocumentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    case_id: Optional[UUID] = None
    document_type: DocumentType
    tax_year: Optional[int] = None
    description: Optional[str] = None
    original_filename: str
    file_size_bytes: int
    mime_type: str
    file_hash: Optional[str] = None
    status: DocumentStatus
    verification_status: VerificationStatus
    uploaded_by: UUID
    verified_by: Optional[UUID] = None
    verified_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    processed_data: Optional[Dict[str, Any]] = None
    created_at: datetime
    updated_at: datetime

class DocumentRejectRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=2000)

class DocumentTypeInfo(BaseModel):
    value: DocumentType
    label: str
    description: str
    security_level: SecurityLevel

class SignedUrlResponse(BaseModel):
    url: str
    expires_in: int


# ═══════════════════════════════════════════════════════════════
# ELIGIBILITY RECORDS
# ═══════════════════════════════════════════════════════════════

class EligibilityInput(BaseModel):
    """Financial picture the eligibility engine scores."""
    all_returns_filed: bool
    unfiled_years: List[int] = Field(default_factory=list)
    filing_status: Optional[FilingStatus] = None
    total_tax_debt: float = 0.0
    monthly_income: float = 0.0
    monthly_expenses: float = 0.0
    disposable_income: Optional[float] = None

    @property
    def effective_disposable_income(self) -> float:
        if self.disposable_income is not None:
            return self.disposable_income
        return self.monthly_income - self.monthly_expenses

class ProgramAnalysis(BaseModel):
    """Outcome of one program's predicate."""
    program: ProgramType
    qualified: bool
    confidence: int
    estimated_benefit: float
    requirements: List[str]
    estimated_days: int
    disqualification_reasons: List[str] = Field(default_factory=list)

class QualifiedProgram(BaseModel):
    program: ProgramType
    confidence: int
    estimated_benefit: float
    requirements: List[str]
    estimated_days: int

class DisqualifiedProgram(BaseModel):
    program: ProgramType
    reasons: List[str]

class Recommendation(BaseModel):
    priority: RecommendationPriority
    action: str
    description: str
    program: Optional[ProgramType] = None
    confidence: Optional[int] = None
    missing_years: List[int] = Field(default_factory=list)

class ProgramOutcome(BaseModel):
    estimated_benefit: float
    estimated_days: int
    confidence: int

class EligibilityResult(BaseModel):
    qualified_programs: List[QualifiedProgram] = Field(default_factory=list)
    disqualified_programs: List[DisqualifiedProgram] = Field(default_factory=list)
    recommendations: List[Recommendation] = Field(default_factory=list)
    estimated_outcomes: Dict[ProgramType, ProgramOutcome] = Field(default_factory=dict)
    overall_score: int
    risk_rating: RiskRating
    success_probability: int
    flags: List[str] = Field(default_factory=list)

class QuickCheckRequest(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    total_tax_debt: float = Field(ge=0, le=MAX_AMOUNT)
    monthly_income: float = Field(gt=0, le=MAX_MONTHLY_AMOUNT)
    monthly_expenses: float = Field(ge=0, le=MAX_MONTHLY_AMOUNT)
    all_returns_filed: bool

class LikelyProgram(BaseModel):
    program: ProgramType
    likelihood: Likelihood
    estimated_savings: Optional[float] = None
    monthly_payment: Optional[float] = None
    description: Optional[str] = None

class QuickCheckResult(BaseModel):
    likely_programs: List[LikelyProgram]
    estimated_savings: float
    recommended_next: List[str]

class OnboardingAnswers(BaseModel):
    emergency: Optional[Literal["yes", "no", "unsure"]] = None
    returns: Literal["yes", "no", "partial"]
    debt: Literal["under10k", "under25k", "under50k", "over50k", "over100k"]
    financial: Literal["hardship", "tight", "stable"]
    circumstances: List[Literal[
        "penalties", "spouse", "medical", "disability", "unemployment", "divorce",
        "firstTime", "levy", "lien", "old", "none", "business", "covid", "retirement",
    ]] = Field(default_factory=list)

class OnboardingRecommendation(BaseModel):
    rank: str
    name: str
    benefit: str
    program: Optional[ProgramType] = None

class ReliefProgramInfo(BaseModel):
    id: ProgramType
    name: str
    description: str
    requirements: List[str]
    benefits: List[str]
    timeframe: str
    success_rate: int

class Affordability(BaseModel):
    months_to_pay_off: float
    affordability_rating: AffordabilityRating
    suggested_monthly_payment: float


# ─── Assessment ────────────────────────────────────────────────
class AssessmentSubmit(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    case_id: Optional[str] = None
    assessment_type: AssessmentType = AssessmentType.INITIAL
    all_returns_filed: Optional[bool] = None
    unfiled_years: Optional[List[int]] = None
    filing_status: Optional[FilingStatus] = None
    total_tax_debt: Optional[float] = Field(default=None, ge=0, le=MAX_AMOUNT)
    debt_by_year: Optional[Dict[str, float]] = None
    monthly_income: Optional[float] = Field(default=None, ge=0, le=MAX_MONTHLY_AMOUNT)
    monthly_expenses: Optional[float] = Field(default=None, ge=0, le=MAX_MONTHLY_AMOUNT)
    employment_status: Optional[EmploymentStatus] = None
    total_assets: Optional[float] = Field(default=None, ge=0, le=MAX_AMOUNT)
    liquid_assets: Optional[float] = Field(default=None, ge=0, le=MAX_AMOUNT)
    special_circumstances: Optional[List[str]] = None
    hardship_details: Optional[str] = Field(default=None, max_length=5000)
    completed_steps: Optional[List[AssessmentStep]] = None
    notes: Optional[str] = Field(default=None, max_length=5000)

class AssessmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    case_id: Optional[UUID] = None
    assessment_type: AssessmentType
    status: AssessmentStatus
    all_returns_filed: Optional[bool] = None
    unfiled_years: List[int] = Field(default_factory=list)
    filing_status: Optional[FilingStatus] = None
    total_tax_debt: Optional[float] = None
    monthly_income: Optional[float] = None
    monthly_expenses: Optional[float] = None
    disposable_income: Optional[float] = None
    employment_status: Optional[EmploymentStatus] = None
    total_assets: Optional[float] = None
    liquid_assets: Optional[float] = None
    special_circumstances: List[str] = Field(default_factory=list)
    completed_steps: List[AssessmentStep] = Field(default_factory=list)
    progress_percentage: int
    completed_at: Optional[datetime] = None
    eligibility_results: Optional[EligibilityResult] = None
    eligibility_score: Optional[int] = None
    risk_rating: Optional[RiskRating] = None
    success_probability: Optional[int] = None
    created_at: datetime
    updated_at: datetime

class AssessmentOutcome(BaseModel):
    assessment: AssessmentResponse
    eligibility_results: Optional[EligibilityResult] = None
    affordability: Optional[Affordability] = None


# ─── Notifications ─────────────────────────────────────────────
class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    kind: NotificationKind
    title: str
    message: str
    priority: NotificationPriority
    status: NotificationStatus
    channels: List[NotificationChannel]
    related_entity_type: Optional[str] = None
    related_entity_id: Optional[str] = None
    read_at: Optional[datetime] = None
    created_at: datetime

class NotificationListResponse(BaseModel):
    notifications: List[NotificationResponse]
    unread_count: int
