"""SQLAlchemy model for financial eligibility assessments."""
from sqlalchemy import Column, String, Integer, Numeric, Boolean, DateTime, ForeignKey, Text, Uuid
from uuid import uuid4

from app.core.enums import AssessmentStatus, AssessmentType
from app.models.base import Base, JSONType
from app.utils.clock import utcnow


class Assessment(Base):
    """Assessment model - the taxpayer's answers plus the computed eligibility."""
    __tablename__ = "assessments"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    case_id = Column(Uuid, ForeignKey("cases.id"), nullable=True, index=True)

    assessment_type = Column(String(20), nullable=False, default=AssessmentType.INITIAL.value)
    status = Column(String(20), nullable=False, default=AssessmentStatus.IN_PROGRESS.value, index=True)

    # Filing compliance
    all_returns_filed = Column(Boolean, nullable=True)
    unfiled_years = Column(JSONType, nullable=False, default=list)
    filing_status = Column(String(20), nullable=True)

    # Debt
    total_tax_debt = Column(Numeric(12, 2, asdecimal=False), nullable=True)
    debt_by_year = Column(JSONType, nullable=True)

    # Monthly finances; disposable_income is derived on save
    monthly_income = Column(Numeric(10, 2, asdecimal=False), nullable=True)
    monthly_expenses = Column(Numeric(10, 2, asdecimal=False), nullable=True)
    disposable_income = Column(Numeric(10, 2, asdecimal=False), nullable=True)
    employment_status = Column(String(20), nullable=True)

    # Assets
    total_assets = Column(Numeric(12, 2, asdecimal=False), nullable=True)
    liquid_assets = Column(Numeric(12, 2, asdecimal=False), nullable=True)

    special_circumstances = Column(JSONType, nullable=False, default=list)
    hardship_details = Column(Text, nullable=True)

    # Computed eligibility (serialized EligibilityResult)
    eligibility_results = Column(JSONType, nullable=True)
    eligibility_score = Column(Integer, nullable=True)
    risk_rating = Column(String(10), nullable=True)
    success_probability = Column(Integer, nullable=True)

    # Wizard progress
    completed_steps = Column(JSONType, nullable=False, default=list)
    progress_percentage = Column(Integer, nullable=False, default=0)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    reviewed_by = Column(Uuid, nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
