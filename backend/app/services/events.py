"""Domain events emitted by the case, document and assessment services.

Events are plain records. Services stage them in the ``domain_events``
outbox inside the same transaction as the change they describe, and the
``EventDispatcher`` turns them into activity log entries and
notifications afterwards.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Optional, Type
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.activity import DomainEvent


@dataclass(frozen=True)
class Event:
    kind: ClassVar[str] = "event"

    actor_id: Optional[UUID]
    owner_id: UUID

    def to_payload(self) -> Dict[str, Any]:
        payload = {}
        for field in dataclasses.fields(self):
            value = getattr(self, field.name)
            payload[field.name] = str(value) if isinstance(value, UUID) else value
        return payload


@dataclass(frozen=True)
class CaseCreated(Event):
    kind: ClassVar[str] = "case.created"

    case_id: UUID
    case_number: str
    program_type: str


@dataclass(frozen=True)
class CaseUpdated(Event):
    kind: ClassVar[str] = "case.updated"

    case_id: UUID
    case_number: str
    fields: tuple = ()


@dataclass(frozen=True)
class StatusChanged(Event):
    kind: ClassVar[str] = "case.status_changed"

    case_id: UUID
    case_number: str
    from_status: str
    to_status: str
    notes: Optional[str] = None


@dataclass(frozen=True)
class CaseAssigned(Event):
    kind: ClassVar[str] = "case.assigned"

    case_id: UUID
    case_number: str
    assignee_id: UUID


@dataclass(frozen=True)
class DocumentUploaded(Event):
    kind: ClassVar[str] = "document.uploaded"

    document_id: UUID
    document_type: str
    filename: str
    case_id: Optional[UUID] = None


@dataclass(frozen=True)
class DocumentVerified(Event):
    kind: ClassVar[str] = "document.verified"

    document_id: UUID
    document_type: str
    case_id: Optional[UUID] = None


@dataclass(frozen=True)
class DocumentRejected(Event):
    kind: ClassVar[str] = "document.rejected"

    document_id: UUID
    document_type: str
    reason: str
    case_id: Optional[UUID] = None


@dataclass(frozen=True)
class DocumentDeleted(Event):
    kind: ClassVar[str] = "document.deleted"

    document_id: UUID
    document_type: str
    case_id: Optional[UUID] = None


@dataclass(frozen=True)
class AssessmentCompleted(Event):
    kind: ClassVar[str] = "assessment.completed"

    assessment_id: UUID
    overall_score: Optional[int] = None


EVENT_TYPES: Dict[str, Type[Event]] = {
    cls.kind: cls
    for cls in (
        CaseCreated,
        CaseUpdated,
        StatusChanged,
        CaseAssigned,
        DocumentUploaded,
        DocumentVerified,
        DocumentRejected,
        DocumentDeleted,
        AssessmentCompleted,
    )
}


def event_from_payload(kind: str, payload: Dict[str, Any]) -> Event:
    """Rebuild an event from its outbox row. ``*_id`` fields come back as UUIDs."""
    try:
        cls = EVENT_TYPES[kind]
    except KeyError:
        raise ValueError(f"Unknown event kind: {kind}")

    values = {}
    for field in dataclasses.fields(cls):
        if field.name not in payload:
            continue
        value = payload[field.name]
        if field.name.endswith("_id") and value is not None:
            value = UUID(str(value))
        elif field.name == "fields" and value is not None:
            value = tuple(value)
        values[field.name] = value
    return cls(**values)


class EventOutbox:
    """Stages events in the caller's transaction. The caller commits."""

    def __init__(self, max_attempts: int = 5):
        self.max_attempts = max_attempts

    def stage(self, db: AsyncSession, event: Event) -> DomainEvent:
        row = DomainEvent(
            kind=event.kind,
            payload=event.to_payload(),
            max_attempts=self.max_attempts,
        )
        db.add(row)
        return row
