"""Database-backed outbox worker that turns domain events into side effects."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from sqlalchemy import select

from app.core.config import Settings
from app.core.enums import (
    ActivityAction,
    CaseStatus,
    EventStatus,
    NotificationKind,
    NotificationPriority,
    Severity,
)
from app.db.database import Database
from app.models.activity import DomainEvent
from app.services.activity_service import ActivityRecorder
from app.services.events import (
    AssessmentCompleted,
    CaseAssigned,
    CaseCreated,
    CaseUpdated,
    DocumentDeleted,
    DocumentRejected,
    DocumentUploaded,
    DocumentVerified,
    Event,
    StatusChanged,
    event_from_payload,
)
from app.services.notification_service import (
    NotificationDispatcher,
    NotificationDraft,
    notification_kind_for_status,
)
from app.utils.clock import utcnow

logger = logging.getLogger(__name__)


@dataclass
class ClaimedEvent:
    event_id: UUID
    kind: str
    payload: dict
    attempts: int
    max_attempts: int


def _status_action(to_status: str) -> ActivityAction:
    if to_status == CaseStatus.SUBMISSION.value:
        return ActivityAction.CASE_SUBMITTED
    if to_status == CaseStatus.CLOSED.value:
        return ActivityAction.CASE_CLOSED
    return ActivityAction.CASE_STATUS_CHANGED


class EventDispatcher:
    """Drains the ``domain_events`` outbox.

    Each event is claimed with ``FOR UPDATE SKIP LOCKED`` so several
    workers (or processes) can share the table. Delivery is at least once:
    a failing event goes back to ``queued`` until it runs out of attempts.
    """

    def __init__(
        self,
        database: Database,
        settings: Settings,
        recorder: ActivityRecorder,
        notifier: NotificationDispatcher,
    ) -> None:
        self.database = database
        self.settings = settings
        self.recorder = recorder
        self.notifier = notifier
        self._stop_event = asyncio.Event()
        self._tasks: list[asyncio.Task] = []
        self._started = False

    async def start(self) -> None:
        if self._started:
            return
        if not self.settings.EVENT_QUEUE_ENABLED:
            logger.info("Event dispatcher disabled by configuration.")
            return

        self._stop_event.clear()
        concurrency = max(1, self.settings.EVENT_QUEUE_WORKER_CONCURRENCY)
        for idx in range(concurrency):
            task = asyncio.create_task(self._worker_loop(idx + 1))
            self._tasks.append(task)
        self._started = True
        logger.info("Event dispatcher started with %s workers.", concurrency)

    async def stop(self) -> None:
        if not self._started:
            return

        self._stop_event.set()
        tasks = list(self._tasks)
        self._tasks.clear()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._started = False
        logger.info("Event dispatcher stopped.")

    async def dispatch_pending(self, limit: int = 100) -> int:
        """Process queued events inline until the outbox is empty or ``limit`` is hit."""
        processed = 0
        while processed < limit:
            claimed = await self._claim_next_event()
            if not claimed:
                break
            await self._process_claimed_event(claimed)
            processed += 1
        return processed

    async def _worker_loop(self, worker_id: int) -> None:
        poll_interval = max(200, self.settings.EVENT_QUEUE_POLL_INTERVAL_MS) / 1000.0
        logger.info("Event dispatcher worker-%s running.", worker_id)

        while not self._stop_event.is_set():
            try:
                claimed = await self._claim_next_event()
                if not claimed:
                    await asyncio.sleep(poll_interval)
                    continue
                await self._process_claimed_event(claimed)
            except Exception as exc:
                logger.error("Worker-%s loop error: %s", worker_id, exc, exc_info=True)
                await asyncio.sleep(poll_interval)

        logger.info("Event dispatcher worker-%s exiting.", worker_id)

    async def _claim_next_event(self) -> Optional[ClaimedEvent]:
        async with self.database.session() as db:
            async with db.begin():
                result = await db.execute(
                    select(DomainEvent)
                    .where(
                        DomainEvent.status == EventStatus.QUEUED.value,
                        DomainEvent.attempts < DomainEvent.max_attempts,
                    )
                    .order_by(DomainEvent.created_at.asc())
                    .with_for_update(skip_locked=True)
                    .limit(1)
                )
                row = result.scalar_one_or_none()
                if not row:
                    return None

                row.status = EventStatus.PROCESSING.value
                row.attempts = int(row.attempts or 0) + 1
                row.started_at = utcnow()
                row.error_message = None
                await db.flush()

                return ClaimedEvent(
                    event_id=row.id,
                    kind=row.kind,
                    payload=dict(row.payload or {}),
                    attempts=row.attempts,
                    max_attempts=row.max_attempts,
                )

    async def _process_claimed_event(self, claimed: ClaimedEvent) -> None:
        try:
            event = event_from_payload(claimed.kind, claimed.payload)
            await self.handle(event)
            await self._finish(claimed.event_id, EventStatus.COMPLETED)
        except Exception as exc:
            logger.error("Outbox event %s (%s) failed: %s", claimed.event_id, claimed.kind, exc, exc_info=True)
            exhausted = claimed.attempts >= claimed.max_attempts
            try:
                await self._finish(
                    claimed.event_id,
                    EventStatus.FAILED if exhausted else EventStatus.QUEUED,
                    error=str(exc)[:1000],
                )
            except Exception as mark_error:
                logger.error(
                    "Failed to persist outbox failure state for event %s: %s",
                    claimed.event_id,
                    mark_error,
                    exc_info=True,
                )

    async def _finish(self, event_id: UUID, status: EventStatus, error: Optional[str] = None) -> None:
        async with self.database.session() as db:
            row = await db.get(DomainEvent, event_id)
            if not row:
                return
            row.status = status.value
            row.error_message = error
            if status == EventStatus.QUEUED:
                row.started_at = None
            else:
                row.completed_at = utcnow()
            await db.commit()

    async def handle(self, event: Event) -> None:
        """Record the activity entry and send the notification for one event."""
        if isinstance(event, CaseCreated):
            await self.recorder.record(
                event.actor_id,
                ActivityAction.CASE_CREATED,
                f"Case {event.case_number} created for {event.program_type}",
                entity_type="case",
                entity_id=str(event.case_id),
                details={"case_number": event.case_number, "program_type": event.program_type},
            )
            await self.notifier.notify(NotificationDraft(
                user_id=event.owner_id,
                kind=NotificationKind.CASE_UPDATE,
                title="Case opened",
                message=f"Your case {event.case_number} has been created.",
                related_entity_type="case",
                related_entity_id=str(event.case_id),
            ))

        elif isinstance(event, CaseUpdated):
            await self.recorder.record(
                event.actor_id,
                ActivityAction.CASE_UPDATED,
                f"Case {event.case_number} updated: {', '.join(event.fields) or 'no fields'}",
                entity_type="case",
                entity_id=str(event.case_id),
                details={"fields": list(event.fields)},
            )

        elif isinstance(event, StatusChanged):
            await self.recorder.record(
                event.actor_id,
                _status_action(event.to_status),
                f"Case status changed from {event.from_status} to {event.to_status}",
                entity_type="case",
                entity_id=str(event.case_id),
                details={
                    "from_status": event.from_status,
                    "to_status": event.to_status,
                    "notes": event.notes,
                },
                severity=Severity.MEDIUM,
            )
            kind = notification_kind_for_status(event.to_status)
            await self.notifier.notify(NotificationDraft(
                user_id=event.owner_id,
                kind=kind,
                title="Case status updated",
                message=f"Case {event.case_number} moved from {event.from_status} to {event.to_status}.",
                priority=(
                    NotificationPriority.MEDIUM
                    if kind == NotificationKind.CASE_UPDATE
                    else NotificationPriority.HIGH
                ),
                related_entity_type="case",
                related_entity_id=str(event.case_id),
            ))

        elif isinstance(event, CaseAssigned):
            await self.recorder.record(
                event.actor_id,
                ActivityAction.CASE_ASSIGNED,
                f"Case {event.case_number} assigned to {event.assignee_id}",
                entity_type="case",
                entity_id=str(event.case_id),
                details={"assignee_id": str(event.assignee_id)},
            )
            await self.notifier.notify(NotificationDraft(
                user_id=event.assignee_id,
                kind=NotificationKind.CASE_UPDATE,
                title="New case assigned",
                message=f"Case {event.case_number} has been assigned to you.",
                priority=NotificationPriority.HIGH,
                related_entity_type="case",
                related_entity_id=str(event.case_id),
            ))

        elif isinstance(event, DocumentUploaded):
            await self.recorder.record(
                event.actor_id,
                ActivityAction.DOCUMENT_UPLOADED,
                f"Uploaded {event.document_type}: {event.filename}",
                entity_type="document",
                entity_id=str(event.document_id),
                details={"case_id": str(event.case_id) if event.case_id else None},
            )

        elif isinstance(event, DocumentVerified):
            await self.recorder.record(
                event.actor_id,
                ActivityAction.DOCUMENT_APPROVED,
                f"Document {event.document_type} verified",
                entity_type="document",
                entity_id=str(event.document_id),
            )
            await self.notifier.notify(NotificationDraft(
                user_id=event.owner_id,
                kind=NotificationKind.DOCUMENT_APPROVED,
                title="Document approved",
                message=f"Your {event.document_type} document has been verified.",
                related_entity_type="document",
                related_entity_id=str(event.document_id),
            ))

        elif isinstance(event, DocumentRejected):
            await self.recorder.record(
                event.actor_id,
                ActivityAction.DOCUMENT_REJECTED,
                f"Document {event.document_type} rejected: {event.reason}",
                entity_type="document",
                entity_id=str(event.document_id),
                details={"reason": event.reason},
                severity=Severity.MEDIUM,
            )
            await self.notifier.notify(NotificationDraft(
                user_id=event.owner_id,
                kind=NotificationKind.DOCUMENT_REJECTED,
                title="Document rejected",
                message=f"Your {event.document_type} document was rejected: {event.reason}",
                priority=NotificationPriority.HIGH,
                related_entity_type="document",
                related_entity_id=str(event.document_id),
            ))

        elif isinstance(event, DocumentDeleted):
            await self.recorder.record(
                event.actor_id,
                ActivityAction.DOCUMENT_DELETED,
                f"Document {event.document_type} deleted",
                entity_type="document",
                entity_id=str(event.document_id),
            )

        elif isinstance(event, AssessmentCompleted):
            await self.recorder.record(
                event.actor_id,
                ActivityAction.ASSESSMENT_COMPLETED,
                f"Assessment completed (score {event.overall_score})",
                entity_type="assessment",
                entity_id=str(event.assessment_id),
                details={"overall_score": event.overall_score},
            )
            await self.notifier.notify(NotificationDraft(
                user_id=event.owner_id,
                kind=NotificationKind.CASE_UPDATE,
                title="Assessment complete",
                message="Your relief assessment is complete. Review your options.",
                priority=NotificationPriority.LOW,
                related_entity_type="assessment",
                related_entity_id=str(event.assessment_id),
            ))

        else:
            logger.warning("No handler for event kind %s", event.kind)
