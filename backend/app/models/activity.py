"""Audit trail, user notifications and the domain event outbox."""
from sqlalchemy import Column, String, Integer, DateTime, Text, Uuid
from uuid import uuid4

from app.core.enums import EventStatus, NotificationPriority, NotificationStatus, Severity
from app.models.base import Base, JSONType
from app.utils.clock import utcnow


class ActivityLog(Base):
    """Insert-only audit record."""
    __tablename__ = "activity_logs"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, nullable=True, index=True)
    action = Column(String(40), nullable=False, index=True)
    entity_type = Column(String(30), nullable=True)
    entity_id = Column(String(64), nullable=True, index=True)
    description = Column(Text, nullable=False)
    details = Column("metadata", JSONType, nullable=True)
    severity = Column(String(10), nullable=False, default=Severity.LOW.value)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)


class Notification(Base):
    """In-app notification, optionally fanned out to email/SMS."""
    __tablename__ = "notifications"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, nullable=False, index=True)
    kind = Column(String(30), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    priority = Column(String(10), nullable=False, default=NotificationPriority.MEDIUM.value)
    status = Column(String(10), nullable=False, default=NotificationStatus.UNREAD.value, index=True)
    channels = Column(JSONType, nullable=False, default=list)
    related_entity_type = Column(String(30), nullable=True)
    related_entity_id = Column(String(64), nullable=True)
    read_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)


class DomainEvent(Base):
    """Outbox row written in the same transaction as the change it describes."""
    __tablename__ = "domain_events"

    id = Column(Uuid, primary_key=True, default=uuid4)
    kind = Column(String(40), nullable=False, index=True)
    payload = Column(JSONType, nullable=False)
    status = Column(String(20), nullable=False, default=EventStatus.QUEUED.value, index=True)  # queued | processing | completed | failed
    attempts = Column(Integer, nullable=False, default=0)
    max_attempts = Column(Integer, nullable=False, default=5)
    error_message = Column(Text, nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
