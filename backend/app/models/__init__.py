"""SQLAlchemy models."""
from app.models.base import Base
from app.models.user import User
from app.models.case import Case, Document
from app.models.assessment import Assessment
from app.models.activity import ActivityLog, DomainEvent, Notification

__all__ = [
    "Base",
    "User",
    "Case",
    "Document",
    "Assessment",
    "ActivityLog",
    "DomainEvent",
    "Notification",
]
