"""Stage 1: Document Checklist Engine - Validates document completeness per relief program."""
import logging
from typing import Dict, Iterable, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from app.core.enums import DocumentStatus, DocumentType, ProgramType, SecurityLevel
from app.core.errors import ConcurrencyError
from app.models.case import Case, Document
from app.schemas.shared import DocumentTypeInfo, RequirementCheck
from app.utils.numbers import round_half_up

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════
# DOCUMENT REQUIREMENTS PER PROGRAM TYPE
# ═══════════════════════════════════════════════════════════════

PROGRAM_REQUIREMENTS: Dict[ProgramType, Tuple[DocumentType, ...]] = {
    ProgramType.OIC: (
        DocumentType.TAX_RETURN,
        DocumentType.IRS_TRANSCRIPT,
        DocumentType.BANK_STATEMENT,
        DocumentType.PAY_STUB,
        DocumentType.FORM_433A,
        DocumentType.FORM_656,
    ),
    ProgramType.IA: (
        DocumentType.TAX_RETURN,
        DocumentType.IRS_TRANSCRIPT,
        DocumentType.PROOF_OF_INCOME,
        DocumentType.FORM_9465,
    ),
    ProgramType.CNC: (
        DocumentType.TAX_RETURN,
        DocumentType.IRS_TRANSCRIPT,
        DocumentType.BANK_STATEMENT,
        DocumentType.PROOF_OF_EXPENSES,
        DocumentType.FORM_433F,
    ),
    ProgramType.PA: (
        DocumentType.TAX_RETURN,
        DocumentType.IRS_NOTICE,
        DocumentType.FORM_843,
    ),
    ProgramType.ISR: (
        DocumentType.TAX_RETURN,
        DocumentType.FORM_8857,
        DocumentType.PROOF_OF_INCOME,
    ),
    # No fixed checklist for audits or multi-program cases
    ProgramType.AUDIT: (),
    ProgramType.MULTIPLE: (),
}

# Only documents that made it through processing count toward completion
COUNTED_STATUSES = frozenset({DocumentStatus.PROCESSED.value, DocumentStatus.VERIFIED.value})


# ═══════════════════════════════════════════════════════════════
# DOCUMENT TYPE CATALOGUE
# ═══════════════════════════════════════════════════════════════

DOCUMENT_TYPE_LABELS: Dict[DocumentType, Tuple[str, str]] = {
    DocumentType.TAX_RETURN: ("Tax Return", "Federal tax return (Form 1040, 1120, etc.)"),
    DocumentType.W2: ("W-2 Form", "Wage and tax statement from employer"),
    DocumentType.FORM_1099: ("1099 Form", "Miscellaneous income statement"),
    DocumentType.BANK_STATEMENT: ("Bank Statement", "Monthly bank account statement"),
    DocumentType.PAY_STUB: ("Pay Stub", "Recent paycheck stub"),
    DocumentType.IRS_TRANSCRIPT: ("IRS Transcript", "Account or wage and income transcript from the IRS"),
    DocumentType.IRS_NOTICE: ("IRS Notice", "Letter or notice received from the IRS"),
    DocumentType.FORM_433A: ("Form 433-A", "Collection information statement for individuals"),
    DocumentType.FORM_433F: ("Form 433-F", "Collection information statement"),
    DocumentType.FORM_656: ("Form 656", "Offer in Compromise application"),
    DocumentType.FORM_9465: ("Form 9465", "Installment agreement request"),
    DocumentType.FORM_843: ("Form 843", "Claim for refund and request for abatement"),
    DocumentType.FORM_8857: ("Form 8857", "Request for innocent spouse relief"),
    DocumentType.POWER_OF_ATTORNEY: ("Power of Attorney", "Form 2848 authorizing representation"),
    DocumentType.IDENTIFICATION: ("Identification", "Government-issued photo ID"),
    DocumentType.PROOF_OF_INCOME: ("Proof of Income", "Documentation of all income sources"),
    DocumentType.PROOF_OF_EXPENSES: ("Proof of Expenses", "Documentation of monthly living expenses"),
    DocumentType.ASSET_DOCUMENTATION: ("Asset Documentation", "Statements for property, vehicles and investments"),
    DocumentType.OTHER: ("Other", "Any other supporting document"),
}

HIGH_SECURITY_TYPES = frozenset({
    DocumentType.TAX_RETURN,
    DocumentType.BANK_STATEMENT,
    DocumentType.IRS_TRANSCRIPT,
})

MEDIUM_SECURITY_TYPES = frozenset({
    DocumentType.W2,
    DocumentType.FORM_1099,
    DocumentType.PAY_STUB,
    DocumentType.FORM_433A,
    DocumentType.FORM_433F,
})


def security_level(document_type: DocumentType) -> SecurityLevel:
    if document_type in HIGH_SECURITY_TYPES:
        return SecurityLevel.HIGH
    if document_type in MEDIUM_SECURITY_TYPES:
        return SecurityLevel.MEDIUM
    return SecurityLevel.LOW


def list_document_types() -> list[DocumentTypeInfo]:
    return [
        DocumentTypeInfo(
            value=doc_type,
            label=label,
            description=description,
            security_level=security_level(doc_type),
        )
        for doc_type, (label, description) in DOCUMENT_TYPE_LABELS.items()
    ]


# ═══════════════════════════════════════════════════════════════
# PURE REQUIREMENT LOGIC
# ═══════════════════════════════════════════════════════════════

def get_required_documents(program_type) -> Tuple[DocumentType, ...]:
    """Fixed, ordered checklist for a program. Unknown programs have none."""
    try:
        return PROGRAM_REQUIREMENTS.get(ProgramType(program_type), ())
    except ValueError:
        return ()


def evaluate_requirements(program_type, documents: Iterable[Document]) -> RequirementCheck:
    """
    Compare a case's documents with its program checklist.

    A required type is present when at least one document of that type
    is PROCESSED or VERIFIED. Progress is 100 for programs with no
    checklist.
    """
    required = get_required_documents(program_type)

    available = set()
    for doc in documents:
        if doc.status not in COUNTED_STATUSES:
            continue
        try:
            available.add(DocumentType(doc.document_type))
        except ValueError:
            logger.warning("Ignoring document %s with unknown type %s", doc.id, doc.document_type)

    present = [doc_type for doc_type in required if doc_type in available]
    missing = [doc_type for doc_type in required if doc_type not in available]

    if required:
        progress = round_half_up(100 * len(present) / len(required))
    else:
        progress = 100

    return RequirementCheck(
        program_type=program_type,
        required=list(required),
        present=present,
        missing=missing,
        complete=not missing,
        progress=progress,
    )


class ChecklistEngine:
    """
    Document Checklist Engine for Stage 1.

    Responsibilities:
    1. Validate document completeness per program type
    2. Calculate completion progress (0-100)
    3. Identify missing documents
    4. Write completion back onto the case
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def check_requirements(self, case: Case) -> RequirementCheck:
        required = get_required_documents(case.program_type)
        documents = []
        if required:
            result = await self.db.execute(
                select(Document).where(
                    Document.case_id == case.id,
                    Document.document_type.in_([doc_type.value for doc_type in required]),
                    Document.status.in_(COUNTED_STATUSES),
                )
            )
            documents = list(result.scalars().all())
        return evaluate_requirements(case.program_type, documents)

    async def update_completion(self, case: Case, commit: bool = True) -> RequirementCheck:
        """Refresh ``documents_complete`` and ``document_progress`` on the case."""
        check = await self.check_requirements(case)
        if (
            case.documents_complete != check.complete
            or case.document_progress != check.progress
        ):
            case.documents_complete = check.complete
            case.document_progress = check.progress
            if commit:
                try:
                    await self.db.commit()
                except StaleDataError:
                    await self.db.rollback()
                    raise ConcurrencyError(
                        "Case was modified by someone else; reload and retry",
                        "CASE_VERSION_CONFLICT",
                    )
            logger.info(
                "Case %s document progress %s%% (complete=%s)",
                case.case_id, check.progress, check.complete,
            )
        return check
