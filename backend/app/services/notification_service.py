"""In-app notifications and their email/SMS fan-out."""
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple
from uuid import UUID

from redis.exceptions import RedisError
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings
from app.core.enums import (
    CaseStatus,
    NotificationChannel,
    NotificationKind,
    NotificationPriority,
    NotificationStatus,
)
from app.core.errors import NotFoundError
from app.db.database import Database
from app.models.activity import Notification
from app.models.user import User
from app.services.rq_queue import JobQueues
from app.utils.clock import utcnow

logger = logging.getLogger(__name__)

# Channels that leave the app and go through the delivery relay
EXTERNAL_CHANNELS = (NotificationChannel.EMAIL, NotificationChannel.SMS)

DEFAULT_CHANNELS = (NotificationChannel.IN_APP, NotificationChannel.EMAIL)


def notification_kind_for_status(status: str) -> NotificationKind:
    if status == CaseStatus.DOCUMENT_COLLECTION.value:
        return NotificationKind.DOCUMENT_REQUEST
    if status in (CaseStatus.ACCEPTED.value, CaseStatus.REJECTED.value):
        return NotificationKind.IRS_RESPONSE
    return NotificationKind.CASE_UPDATE


@dataclass
class NotificationDraft:
    user_id: UUID
    kind: NotificationKind
    title: str
    message: str
    priority: NotificationPriority = NotificationPriority.MEDIUM
    channels: Tuple[NotificationChannel, ...] = DEFAULT_CHANNELS
    related_entity_type: Optional[str] = None
    related_entity_id: Optional[str] = None


class NotificationDispatcher:
    """Persists notifications and queues their external deliveries."""

    def __init__(self, database: Database, settings: Settings, queues: Optional[JobQueues] = None):
        self.database = database
        self.settings = settings
        self.queues = queues

    async def notify(self, draft: NotificationDraft) -> Notification:
        """
        Store the in-app notification, then queue EMAIL/SMS delivery.

        Persistence errors propagate so the originating event is retried.
        A queueing failure only loses the external copy and is logged.
        """
        notification = Notification(
            user_id=draft.user_id,
            kind=draft.kind.value,
            title=draft.title,
            message=draft.message,
            priority=draft.priority.value,
            status=NotificationStatus.UNREAD.value,
            channels=[channel.value for channel in draft.channels],
            related_entity_type=draft.related_entity_type,
            related_entity_id=draft.related_entity_id,
        )
        async with self.database.session() as db:
            db.add(notification)
            await db.commit()

        if self.settings.RQ_ASYNC_ENABLED and self.queues is not None:
            for channel in draft.channels:
                if channel not in EXTERNAL_CHANNELS:
                    continue
                try:
                    self.queues.enqueue_notification_delivery(notification.id, channel.value)
                except RedisError as e:
                    logger.error("Could not queue %s delivery for notification %s: %s", channel.value, notification.id, e)

        logger.info("Notified user %s: %s", draft.user_id, draft.kind.value)
        return notification


class NotificationService:
    """Read side of a user's notification inbox."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_for_user(
        self,
        user: User,
        unread_only: bool = False,
        limit: int = 50,
    ) -> Tuple[List[Notification], int]:
        query = select(Notification).where(Notification.user_id == user.id)
        if unread_only:
            query = query.where(Notification.status == NotificationStatus.UNREAD.value)
        result = await self.db.execute(query.order_by(Notification.created_at.desc()).limit(limit))

        unread = await self.db.execute(
            select(func.count()).select_from(Notification).where(
                Notification.user_id == user.id,
                Notification.status == NotificationStatus.UNREAD.value,
            )
        )
        return list(result.scalars().all()), int(unread.scalar_one())

    async def mark_read(self, notification_id: UUID, user: User) -> Notification:
        notification = await self.db.get(Notification, notification_id)
        if notification is None or notification.user_id != user.id:
            raise NotFoundError("Notification not found", "NOTIFICATION_NOT_FOUND")
        if notification.status == NotificationStatus.UNREAD.value:
            notification.status = NotificationStatus.READ.value
            notification.read_at = utcnow()
            await self.db.commit()
        return notification

    async def mark_all_read(self, user: User) -> int:
        result = await self.db.execute(
            update(Notification)
            .where(
                Notification.user_id == user.id,
                Notification.status == NotificationStatus.UNREAD.value,
            )
            .values(status=NotificationStatus.READ.value, read_at=utcnow())
        )
        await self.db.commit()
        return result.rowcount or 0
