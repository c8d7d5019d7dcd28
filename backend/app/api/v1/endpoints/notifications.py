"""Notification inbox endpoints."""
from uuid import UUID

from fastapi import APIRouter, Query

from app.core.deps import CurrentUser, DbSession
from app.schemas.shared import NotificationListResponse, NotificationResponse
from app.services.notification_service import NotificationService

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    current_user: CurrentUser,
    db: DbSession,
    unread_only: bool = False,
    limit: int = Query(default=50, ge=1, le=200),
):
    notifications, unread_count = await NotificationService(db).list_for_user(
        current_user, unread_only=unread_only, limit=limit
    )
    return NotificationListResponse(
        notifications=[NotificationResponse.model_validate(n) for n in notifications],
        unread_count=unread_count,
    )


# Declared before /{notification_id}/read so the literal path wins
@router.put("/mark-all-read")
async def mark_all_read(current_user: CurrentUser, db: DbSession):
    updated = await NotificationService(db).mark_all_read(current_user)
    return {"success": True, "updated": updated}


@router.put("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(notification_id: UUID, current_user: CurrentUser, db: DbSession):
    return await NotificationService(db).mark_read(notification_id, current_user)
