"""SQLAlchemy models for Cases and Documents."""
from sqlalchemy import (
    Column, String, Integer, Numeric, Boolean, DateTime, ForeignKey, BigInteger, Text, Uuid,
)
from sqlalchemy.orm import relationship
from uuid import uuid4

from app.core.enums import CasePriority, CaseStatus, DocumentStatus, VerificationStatus
from app.models.base import Base, JSONType
from app.utils.clock import utcnow


class Case(Base):
    """Case model - one taxpayer's relief engagement."""
    __tablename__ = "cases"

    id = Column(Uuid, primary_key=True, default=uuid4)
    case_id = Column(String(20), unique=True, nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    assigned_to = Column(Uuid, ForeignKey("users.id"), nullable=True, index=True)

    program_type = Column(String(10), nullable=False)
    status = Column(String(30), nullable=False, default=CaseStatus.INITIAL_ASSESSMENT.value, index=True)
    priority = Column(String(10), nullable=False, default=CasePriority.MEDIUM.value)

    # Debt
    total_debt = Column(Numeric(12, 2, asdecimal=False), nullable=False)
    tax_years = Column(JSONType, nullable=False, default=list)
    debt_breakdown = Column(JSONType, nullable=True)
    estimated_savings = Column(Numeric(12, 2, asdecimal=False), nullable=True)
    proposed_amount = Column(Numeric(12, 2, asdecimal=False), nullable=True)
    monthly_payment = Column(Numeric(10, 2, asdecimal=False), nullable=True)

    # Lifecycle dates
    submission_date = Column(DateTime(timezone=True), nullable=True)
    irs_response_date = Column(DateTime(timezone=True), nullable=True)
    resolution_date = Column(DateTime(timezone=True), nullable=True)
    next_deadline = Column(DateTime(timezone=True), nullable=True)

    # Progress flags
    documents_complete = Column(Boolean, nullable=False, default=False)
    document_progress = Column(Integer, nullable=False, default=0)
    forms_ready = Column(Boolean, nullable=False, default=False)
    submitted_to_irs = Column(Boolean, nullable=False, default=False)
    tracking_number = Column(String(100), nullable=True)
    power_of_attorney = Column(Boolean, nullable=False, default=False)

    notes = Column(Text, nullable=True)

    # Append-only list of {from, to, timestamp, triggered_by}
    state_history = Column(JSONType, nullable=False, default=list)

    # Optimistic lock counter, bumped by SQLAlchemy on every UPDATE
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    documents = relationship("Document", back_populates="case", lazy="raise")

    __mapper_args__ = {"version_id_col": version}


class Document(Base):
    """Document model - uploaded supporting evidence. Never hard-deleted."""
    __tablename__ = "documents"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    case_id = Column(Uuid, ForeignKey("cases.id"), nullable=True, index=True)

    document_type = Column(String(30), nullable=False, index=True)
    tax_year = Column(Integer, nullable=True)
    description = Column(Text, nullable=True)

    # File info
    original_filename = Column(String(512), nullable=False)
    storage_key = Column(String(1024), nullable=False)
    file_size_bytes = Column(BigInteger, nullable=False)
    mime_type = Column(String(100), nullable=False)
    file_hash = Column(String(64), nullable=True, index=True)

    # Lifecycle
    status = Column(String(20), nullable=False, default=DocumentStatus.PENDING.value, index=True)
    verification_status = Column(
        String(20), nullable=False, default=VerificationStatus.UNVERIFIED.value
    )
    uploaded_by = Column(Uuid, nullable=False)
    verified_by = Column(Uuid, nullable=True)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    rejection_reason = Column(Text, nullable=True)
    processed_data = Column(JSONType, nullable=True)
    is_confidential = Column(Boolean, nullable=False, default=True)
    access_log = Column(JSONType, nullable=False, default=list)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    case = relationship("Case", back_populates="documents", lazy="raise")
