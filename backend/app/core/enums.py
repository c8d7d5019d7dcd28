"""Shared enums used across all modules - THE source of truth for all status/type values."""
from enum import Enum


# ─── Users ─────────────────────────────────────────────────────
class UserRole(str, Enum):
    CLIENT = "client"
    ADMIN = "admin"
    TAX_PROFESSIONAL = "tax_professional"
    SUPPORT = "support"


# ─── Case Lifecycle ────────────────────────────────────────────
class CaseStatus(str, Enum):
    INITIAL_ASSESSMENT = "INITIAL_ASSESSMENT"
    DOCUMENT_COLLECTION = "DOCUMENT_COLLECTION"
    FORM_PREPARATION = "FORM_PREPARATION"
    REVIEW = "REVIEW"
    SUBMISSION = "SUBMISSION"
    IRS_PROCESSING = "IRS_PROCESSING"
    NEGOTIATION = "NEGOTIATION"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    WITHDRAWN = "WITHDRAWN"
    ON_HOLD = "ON_HOLD"
    CLOSED = "CLOSED"


class CasePriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


# ─── Relief Programs ───────────────────────────────────────────
class ProgramType(str, Enum):
    OIC = "OIC"            # Offer in Compromise
    IA = "IA"              # Installment Agreement
    CNC = "CNC"            # Currently Not Collectible
    PA = "PA"              # Penalty Abatement
    ISR = "ISR"            # Innocent Spouse Relief
    AUDIT = "AUDIT"
    MULTIPLE = "MULTIPLE"


# Programs the eligibility engine scores, in evaluation order
SCORED_PROGRAMS = (
    ProgramType.OIC,
    ProgramType.IA,
    ProgramType.CNC,
    ProgramType.PA,
    ProgramType.ISR,
)


# ─── Documents ─────────────────────────────────────────────────
class DocumentType(str, Enum):
    TAX_RETURN = "TAX_RETURN"
    W2 = "W2"
    FORM_1099 = "1099"
    BANK_STATEMENT = "BANK_STATEMENT"
    PAY_STUB = "PAY_STUB"
    IRS_TRANSCRIPT = "IRS_TRANSCRIPT"
    IRS_NOTICE = "IRS_NOTICE"
    FORM_433A = "FORM_433A"
    FORM_433F = "FORM_433F"
    FORM_656 = "FORM_656"
    FORM_9465 = "FORM_9465"
    FORM_843 = "FORM_843"
    FORM_8857 = "FORM_8857"
    POWER_OF_ATTORNEY = "POWER_OF_ATTORNEY"
    IDENTIFICATION = "IDENTIFICATION"
    PROOF_OF_INCOME = "PROOF_OF_INCOME"
    PROOF_OF_EXPENSES = "PROOF_OF_EXPENSES"
    ASSET_DOCUMENTATION = "ASSET_DOCUMENTATION"
    OTHER = "OTHER"


class DocumentStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    PROCESSED = "PROCESSED"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"
    DELETED = "DELETED"


class VerificationStatus(str, Enum):
    UNVERIFIED = "UNVERIFIED"
    AUTO_VERIFIED = "AUTO_VERIFIED"
    MANUALLY_VERIFIED = "MANUALLY_VERIFIED"
    FAILED = "FAILED"


class SecurityLevel(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


# ─── Assessment ────────────────────────────────────────────────
class AssessmentType(str, Enum):
    INITIAL = "INITIAL"
    FOLLOW_UP = "FOLLOW_UP"
    ANNUAL_REVIEW = "ANNUAL_REVIEW"


class AssessmentStatus(str, Enum):
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    UNDER_REVIEW = "UNDER_REVIEW"
    APPROVED = "APPROVED"


class AssessmentStep(str, Enum):
    WELCOME = "WELCOME"
    EMERGENCY = "EMERGENCY"
    RETURNS = "RETURNS"
    DEBT = "DEBT"
    FINANCIAL = "FINANCIAL"
    CIRCUMSTANCES = "CIRCUMSTANCES"


class FilingStatus(str, Enum):
    SINGLE = "SINGLE"
    MARRIED_JOINT = "MARRIED_JOINT"
    MARRIED_SEPARATE = "MARRIED_SEPARATE"
    HEAD_OF_HOUSEHOLD = "HEAD_OF_HOUSEHOLD"
    WIDOW = "WIDOW"


class EmploymentStatus(str, Enum):
    EMPLOYED = "EMPLOYED"
    SELF_EMPLOYED = "SELF_EMPLOYED"
    UNEMPLOYED = "UNEMPLOYED"
    RETIRED = "RETIRED"
    DISABLED = "DISABLED"


# ─── Eligibility ───────────────────────────────────────────────
class RecommendationPriority(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class RiskRating(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class AffordabilityRating(str, Enum):
    GOOD = "GOOD"
    FAIR = "FAIR"
    POOR = "POOR"


class Likelihood(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


# ─── Activity / Notifications ──────────────────────────────────
class ActivityAction(str, Enum):
    USER_REGISTERED = "USER_REGISTERED"
    USER_LOGIN = "USER_LOGIN"
    CASE_CREATED = "CASE_CREATED"
    CASE_UPDATED = "CASE_UPDATED"
    CASE_STATUS_CHANGED = "CASE_STATUS_CHANGED"
    CASE_ASSIGNED = "CASE_ASSIGNED"
    CASE_SUBMITTED = "CASE_SUBMITTED"
    CASE_CLOSED = "CASE_CLOSED"
    DOCUMENT_UPLOADED = "DOCUMENT_UPLOADED"
    DOCUMENT_APPROVED = "DOCUMENT_APPROVED"
    DOCUMENT_REJECTED = "DOCUMENT_REJECTED"
    DOCUMENT_DELETED = "DOCUMENT_DELETED"
    DOCUMENT_ACCESSED = "DOCUMENT_ACCESSED"
    ASSESSMENT_STARTED = "ASSESSMENT_STARTED"
    ASSESSMENT_COMPLETED = "ASSESSMENT_COMPLETED"
    SUSPICIOUS_ACTIVITY = "SUSPICIOUS_ACTIVITY"


class Severity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class NotificationKind(str, Enum):
    CASE_UPDATE = "CASE_UPDATE"
    DOCUMENT_REQUEST = "DOCUMENT_REQUEST"
    DOCUMENT_APPROVED = "DOCUMENT_APPROVED"
    DOCUMENT_REJECTED = "DOCUMENT_REJECTED"
    IRS_RESPONSE = "IRS_RESPONSE"
    DEADLINE_REMINDER = "DEADLINE_REMINDER"
    SYSTEM_ALERT = "SYSTEM_ALERT"


class NotificationPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class NotificationStatus(str, Enum):
    UNREAD = "UNREAD"
    READ = "READ"
    ARCHIVED = "ARCHIVED"


class NotificationChannel(str, Enum):
    IN_APP = "IN_APP"
    EMAIL = "EMAIL"
    SMS = "SMS"
    PUSH = "PUSH"


class EventStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
