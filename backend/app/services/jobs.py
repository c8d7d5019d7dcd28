"""RQ job handlers for background document processing and notification delivery."""

from __future__ import annotations

import asyncio
import logging
from uuid import UUID

import httpx

from app.core.config import Settings, get_settings
from app.core.enums import NotificationChannel
from app.db.database import Database
from app.models.activity import Notification
from app.models.user import User
from app.services.document_service import DocumentService
from app.services.file_storage import get_storage_backend
from app.utils.clock import utcnow

logger = logging.getLogger(__name__)


async def _process_document_async(document_id: str, settings: Settings) -> None:
    try:
        doc_uuid = UUID(document_id)
    except ValueError as exc:
        logger.error("Invalid document id %s: %s", document_id, exc)
        return

    database = Database(settings.DATABASE_URL)
    try:
        async with database.session() as db:
            service = DocumentService(db, settings, get_storage_backend(settings))
            document = await service.process_document(doc_uuid)
            if document is not None:
                logger.info("RQ processed document %s -> %s", document_id, document.status)
    finally:
        await database.dispose()


def process_document_job(document_id: str) -> None:
    """RQ-compatible synchronous wrapper for document processing."""
    asyncio.run(_process_document_async(document_id, get_settings()))


def build_relay_payload(notification: Notification, user: User, channel: str) -> dict:
    recipient = user.phone if channel == NotificationChannel.SMS.value else user.email
    return {
        "channel": channel,
        "to": recipient,
        "subject": notification.title,
        "body": notification.message,
        "notification_id": str(notification.id),
        "kind": notification.kind,
    }


async def _deliver_notification_async(notification_id: str, channel: str, settings: Settings) -> bool:
    if not settings.NOTIFICATION_RELAY_URL:
        logger.warning("NOTIFICATION_RELAY_URL not set; dropping %s delivery for %s", channel, notification_id)
        return False

    database = Database(settings.DATABASE_URL)
    try:
        async with database.session() as db:
            notification = await db.get(Notification, UUID(notification_id))
            if notification is None:
                logger.warning("Notification %s no longer exists", notification_id)
                return False
            user = await db.get(User, notification.user_id)
            if user is None or (channel == NotificationChannel.SMS.value and not user.phone):
                logger.info("No %s recipient for notification %s", channel, notification_id)
                return False

            headers = {}
            if settings.NOTIFICATION_RELAY_TOKEN:
                headers["Authorization"] = f"Bearer {settings.NOTIFICATION_RELAY_TOKEN}"

            async with httpx.AsyncClient(timeout=settings.NOTIFICATION_RELAY_TIMEOUT_SECONDS) as client:
                response = await client.post(
                    settings.NOTIFICATION_RELAY_URL,
                    json=build_relay_payload(notification, user, channel),
                    headers=headers,
                )
                # Non-2xx raises so RQ retries the job
                response.raise_for_status()

            notification.delivered_at = utcnow()
            await db.commit()
            logger.info("Delivered notification %s via %s", notification_id, channel)
            return True
    finally:
        await database.dispose()


def deliver_notification_job(notification_id: str, channel: str) -> bool:
    """RQ-compatible synchronous wrapper for email/SMS delivery."""
    return asyncio.run(_deliver_notification_async(notification_id, channel, get_settings()))
