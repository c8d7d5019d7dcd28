"""Audit trail writer."""
import logging
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from app.core.enums import ActivityAction, Severity
from app.db.database import Database
from app.models.activity import ActivityLog

logger = logging.getLogger(__name__)


class ActivityRecorder:
    """
    Writes activity log rows in a session of its own.

    Recording is best effort: a failed write is logged and swallowed so
    it can never undo or block the change being audited.
    """

    def __init__(self, database: Database):
        self.database = database

    async def record(
        self,
        actor_id: Optional[UUID],
        action: ActivityAction,
        description: str,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        severity: Severity = Severity.LOW,
    ) -> Optional[ActivityLog]:
        entry = ActivityLog(
            user_id=actor_id,
            action=action.value,
            entity_type=entity_type,
            entity_id=entity_id,
            description=description,
            details=details or {},
            severity=severity.value,
        )
        try:
            async with self.database.session() as db:
                db.add(entry)
                await db.commit()
        except SQLAlchemyError as e:
            logger.error("Failed to record activity %s for %s %s: %s", action.value, entity_type, entity_id, e)
            return None
        return entry
