"""Case status state machine.

The pure half of this module (``transition``, ``calculate_progress``,
``is_overdue``, ``days_in_current_status``, ``allowed_transitions``)
operates on an in-memory ``Case`` and never touches the database.
``CaseLifecycleService`` wraps it with row locking, the optimistic
version check and outbox staging.

Transition graph (strict policy):

    INITIAL_ASSESSMENT <-> DOCUMENT_COLLECTION <-> FORM_PREPARATION <-> REVIEW
        <-> SUBMISSION <-> IRS_PROCESSING <-> NEGOTIATION
    IRS_PROCESSING, NEGOTIATION -> ACCEPTED | REJECTED
    any non-terminal            -> WITHDRAWN | ON_HOLD
    ON_HOLD                     -> the status it was held from
    ACCEPTED, REJECTED, WITHDRAWN -> CLOSED
    anything but CLOSED         -> CLOSED
"""

import logging
from datetime import datetime
from enum import Enum
from typing import FrozenSet, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from app.core.config import Settings
from app.core.enums import CaseStatus
from app.core.errors import (
    AuthorizationError,
    ConcurrencyError,
    InvalidTransitionError,
    ValidationError,
)
from app.core.permissions import Action, can
from app.models.case import Case
from app.models.user import User
from app.services.events import EventOutbox, StatusChanged
from app.utils.clock import ensure_utc, utcnow

logger = logging.getLogger(__name__)


class TransitionPolicy(str, Enum):
    STRICT = "strict"
    PERMISSIVE = "permissive"


# ═══════════════════════════════════════════════════════════════
# TRANSITION TABLE
# ═══════════════════════════════════════════════════════════════

PIPELINE = (
    CaseStatus.INITIAL_ASSESSMENT,
    CaseStatus.DOCUMENT_COLLECTION,
    CaseStatus.FORM_PREPARATION,
    CaseStatus.REVIEW,
    CaseStatus.SUBMISSION,
    CaseStatus.IRS_PROCESSING,
    CaseStatus.NEGOTIATION,
)

OUTCOME_STATUSES = frozenset({
    CaseStatus.ACCEPTED,
    CaseStatus.REJECTED,
    CaseStatus.WITHDRAWN,
})

TERMINAL_STATUSES = OUTCOME_STATUSES | {CaseStatus.CLOSED}

RESOLVING_STATUSES = frozenset({CaseStatus.IRS_PROCESSING, CaseStatus.NEGOTIATION})

PROGRESS_BY_STATUS = {
    CaseStatus.INITIAL_ASSESSMENT: 10,
    CaseStatus.DOCUMENT_COLLECTION: 25,
    CaseStatus.FORM_PREPARATION: 40,
    CaseStatus.REVIEW: 60,
    CaseStatus.SUBMISSION: 70,
    CaseStatus.IRS_PROCESSING: 80,
    CaseStatus.NEGOTIATION: 90,
    CaseStatus.ACCEPTED: 100,
    CaseStatus.REJECTED: 100,
    CaseStatus.WITHDRAWN: 100,
    CaseStatus.CLOSED: 100,
    CaseStatus.ON_HOLD: 0,
}


def allowed_transitions(
    current: CaseStatus,
    held_from: Optional[CaseStatus] = None,
) -> FrozenSet[CaseStatus]:
    """Statuses reachable from ``current`` under the strict policy."""
    if current == CaseStatus.CLOSED:
        return frozenset()
    if current in OUTCOME_STATUSES:
        return frozenset({CaseStatus.CLOSED})

    targets = {CaseStatus.CLOSED, CaseStatus.WITHDRAWN}

    if current == CaseStatus.ON_HOLD:
        if held_from is not None and held_from != CaseStatus.ON_HOLD:
            targets.add(held_from)
        return frozenset(targets)

    targets.add(CaseStatus.ON_HOLD)
    idx = PIPELINE.index(current)
    if idx + 1 < len(PIPELINE):
        targets.add(PIPELINE[idx + 1])
    if idx > 0:
        targets.add(PIPELINE[idx - 1])
    if current in RESOLVING_STATUSES:
        targets.update({CaseStatus.ACCEPTED, CaseStatus.REJECTED})
    return frozenset(targets)


def held_from_status(case: Case) -> Optional[CaseStatus]:
    """Status the case was in when it last went ON_HOLD."""
    for entry in reversed(case.state_history or []):
        if entry.get("to_status") == CaseStatus.ON_HOLD.value:
            return CaseStatus(entry["from_status"])
    return None


# ═══════════════════════════════════════════════════════════════
# PURE OPERATIONS
# ═══════════════════════════════════════════════════════════════

def parse_status(value) -> CaseStatus:
    try:
        return CaseStatus(value)
    except ValueError:
        raise ValidationError(f"Invalid status: {value}", "INVALID_STATUS")


def transition(
    case: Case,
    new_status,
    actor: User,
    *,
    policy: TransitionPolicy = TransitionPolicy.STRICT,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> StatusChanged:
    """
    Move ``case`` to ``new_status`` and record the change.

    Appends ``{from_status, to_status, timestamp, triggered_by}`` to the
    state history, updates ``status`` and the submission/resolution
    fields, and returns the ``StatusChanged`` event for the caller to
    stage. Nothing is persisted here.

    Raises:
        ValidationError: ``new_status`` is not a case status
        AuthorizationError: actor's role may not change case status
        InvalidTransitionError: same-status move or edge not in the graph
    """
    target = parse_status(new_status)

    if not can(actor.role, Action.CASE_CHANGE_STATUS):
        raise AuthorizationError(
            "Only tax professionals and admins can change case status",
            "INSUFFICIENT_PERMISSIONS",
        )

    current = CaseStatus(case.status)
    if target == current:
        raise InvalidTransitionError(f"Case is already {current.value}")

    if policy == TransitionPolicy.STRICT:
        allowed = allowed_transitions(current, held_from_status(case))
        if target not in allowed:
            raise InvalidTransitionError(
                f"Cannot move case from {current.value} to {target.value}"
            )

    now = now or utcnow()
    entry = {
        "from_status": current.value,
        "to_status": target.value,
        "timestamp": now.isoformat(),
        "triggered_by": str(actor.id),
    }
    if notes:
        entry["notes"] = notes

    # Reassign rather than append so the JSON column is flagged dirty
    case.state_history = list(case.state_history or []) + [entry]
    case.status = target.value

    if target == CaseStatus.SUBMISSION and case.submission_date is None:
        case.submission_date = now
        case.submitted_to_irs = True
    if target in TERMINAL_STATUSES and case.resolution_date is None:
        case.resolution_date = now

    return StatusChanged(
        actor_id=actor.id,
        owner_id=case.user_id,
        case_id=case.id,
        case_number=case.case_id,
        from_status=current.value,
        to_status=target.value,
        notes=notes,
    )


def calculate_progress(status) -> int:
    """Fixed percentage per status; unknown values map to 0."""
    try:
        return PROGRESS_BY_STATUS.get(CaseStatus(status), 0)
    except ValueError:
        return 0


def is_overdue(case: Case, now: Optional[datetime] = None) -> bool:
    deadline = ensure_utc(case.next_deadline)
    if deadline is None:
        return False
    return (now or utcnow()) > deadline


def days_in_current_status(case: Case, now: Optional[datetime] = None) -> int:
    """Whole days since the last status change, or since creation."""
    since = None
    history = case.state_history or []
    if history:
        since = ensure_utc(datetime.fromisoformat(history[-1]["timestamp"]))
    if since is None:
        since = ensure_utc(case.created_at) or utcnow()
    delta = (now or utcnow()) - since
    return max(0, delta.days)


# ═══════════════════════════════════════════════════════════════
# PERSISTENT LIFECYCLE SERVICE
# ═══════════════════════════════════════════════════════════════

class CaseLifecycleService:
    """Applies status transitions to stored cases."""

    def __init__(self, db: AsyncSession, settings: Settings):
        self.db = db
        self.policy = TransitionPolicy(settings.CASE_TRANSITION_POLICY)
        self.outbox = EventOutbox(max_attempts=settings.EVENT_QUEUE_MAX_ATTEMPTS)

    async def change_status(
        self,
        case: Case,
        new_status,
        actor: User,
        notes: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> Case:
        """
        Transition a case loaded ``FOR UPDATE`` and commit.

        ``expected_version`` lets a client that read the case earlier
        refuse to overwrite a newer change. Losing a concurrent flush to
        another writer surfaces the same way.
        """
        if expected_version is not None and expected_version != case.version:
            raise ConcurrencyError(
                "Case was modified by someone else; reload and retry",
                "CASE_VERSION_CONFLICT",
            )

        event = transition(case, new_status, actor, policy=self.policy, notes=notes)
        self.outbox.stage(self.db, event)

        try:
            await self.db.commit()
        except StaleDataError:
            await self.db.rollback()
            raise ConcurrencyError(
                "Case was modified by someone else; reload and retry",
                "CASE_VERSION_CONFLICT",
            )

        logger.info(
            "Case %s moved %s -> %s by %s",
            case.case_id, event.from_status, event.to_status, actor.id,
        )
        return case

