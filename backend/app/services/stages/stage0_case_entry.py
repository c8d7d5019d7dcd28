"""Stage 0: Case Entry - case creation, lookup, listing and assignment."""
import logging
import random
from typing import List, Optional, Tuple
from uuid import UUID, uuid4

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from app.core.config import Settings
from app.core.enums import CaseStatus
from app.core.errors import (
    AuthorizationError,
    ConcurrencyError,
    ConsistencyError,
    NotFoundError,
    ValidationError,
)
from app.core.permissions import Action, can, can_access_case
from app.models.activity import ActivityLog
from app.models.case import Case
from app.models.user import User
from app.schemas.shared import (
    CaseCreate,
    CaseResponse,
    CaseUpdate,
    StateTransitionRecord,
    TimelineEntry,
)
from app.services.case_lifecycle import (
    calculate_progress,
    days_in_current_status,
    is_overdue,
)
from app.services.events import CaseAssigned, CaseCreated, CaseUpdated, EventOutbox
from app.utils.case_id_generator import generate_case_id
from app.utils.clock import ensure_utc

logger = logging.getLogger(__name__)

# Fields a case owner without review rights may edit on their own case
CLIENT_EDITABLE_FIELDS = {"notes"}


class CaseEntryService:
    """Service for creating and managing cases (Stage 0)."""

    def __init__(
        self,
        db: AsyncSession,
        settings: Settings,
        rng: Optional[random.Random] = None,
    ):
        self.db = db
        self.settings = settings
        self.rng = rng
        self.outbox = EventOutbox(max_attempts=settings.EVENT_QUEUE_MAX_ATTEMPTS)

    async def create_case(self, owner: User, case_data: CaseCreate) -> Case:
        """
        Create a new case with a freshly generated ``OT`` case ID.

        Case IDs carry only four random digits per month, so collisions
        are expected. Each attempt checks for an existing ID and still
        relies on the unique constraint for the race between check and
        insert; both paths roll back and try a new candidate.

        Raises:
            ConsistencyError: no free ID after ``CASE_ID_MAX_ATTEMPTS`` tries
        """
        max_attempts = max(1, self.settings.CASE_ID_MAX_ATTEMPTS)

        for attempt in range(1, max_attempts + 1):
            candidate = generate_case_id(rng=self.rng)

            taken = await self.db.scalar(select(Case.id).where(Case.case_id == candidate))
            if taken is not None:
                logger.warning("Case ID %s already taken (attempt %s/%s)", candidate, attempt, max_attempts)
                continue

            case = Case(
                id=uuid4(),
                case_id=candidate,
                user_id=owner.id,
                program_type=case_data.program_type.value,
                status=CaseStatus.INITIAL_ASSESSMENT.value,
                priority=case_data.priority.value,
                total_debt=case_data.total_debt,
                tax_years=list(case_data.tax_years),
                debt_breakdown=case_data.debt_breakdown,
                next_deadline=case_data.next_deadline,
                notes=case_data.notes,
                state_history=[],
                documents_complete=False,
                document_progress=0,
                forms_ready=False,
                submitted_to_irs=False,
                power_of_attorney=False,
            )
            self.db.add(case)
            self.outbox.stage(
                self.db,
                CaseCreated(
                    actor_id=owner.id,
                    owner_id=owner.id,
                    case_id=case.id,
                    case_number=candidate,
                    program_type=case.program_type,
                ),
            )

            try:
                await self.db.commit()
            except IntegrityError:
                await self.db.rollback()
                logger.warning(
                    "Case ID %s collided on insert (attempt %s/%s)", candidate, attempt, max_attempts
                )
                continue

            logger.info(f"Created case: {case.case_id} for user: {owner.id}")
            return case

        logger.error("Exhausted %s attempts to allocate a case ID", max_attempts)
        raise ConsistencyError("Could not allocate a unique case ID", "CASE_ID_EXHAUSTED")

    async def get_case(self, case_id: str, user: User, for_update: bool = False) -> Case:
        """
        Load a case by its public ID and check the caller may see it.

        Raises:
            NotFoundError: no such case
            AuthorizationError: the case exists but belongs to someone else
        """
        query = select(Case).where(Case.case_id == case_id)
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        case = result.scalar_one_or_none()

        if not case:
            raise NotFoundError(f"Case {case_id} not found", "CASE_NOT_FOUND")
        if not can_access_case(user, case):
            raise AuthorizationError("Access denied to this case", "CASE_ACCESS_DENIED")
        return case

    async def list_cases(
        self,
        user: User,
        status: Optional[str] = None,
        program_type: Optional[str] = None,
        priority: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Tuple[List[Case], int]:
        """Cases visible to ``user``, newest first, with the total match count."""
        filters = []
        if not can(user.role, Action.CASE_VIEW_ALL):
            if can(user.role, Action.CASE_BE_ASSIGNED):
                filters.append(or_(Case.assigned_to == user.id, Case.user_id == user.id))
            else:
                filters.append(Case.user_id == user.id)
        if status:
            filters.append(Case.status == status)
        if program_type:
            filters.append(Case.program_type == program_type)
        if priority:
            filters.append(Case.priority == priority)

        total = await self.db.scalar(select(func.count()).select_from(Case).where(*filters))
        result = await self.db.execute(
            select(Case)
            .where(*filters)
            .order_by(Case.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), int(total or 0)

    async def update_case(self, case: Case, user: User, updates: CaseUpdate) -> Case:
        """Apply a partial update. Owners without review rights may only edit notes."""
        changes = updates.model_dump(exclude_unset=True)
        if not changes:
            return case

        if not can(user.role, Action.CASE_UPDATE_DETAILS):
            forbidden = set(changes) - CLIENT_EDITABLE_FIELDS
            if forbidden:
                raise AuthorizationError(
                    f"You may only update: {', '.join(sorted(CLIENT_EDITABLE_FIELDS))}",
                    "FIELD_UPDATE_DENIED",
                )

        for field, value in changes.items():
            if hasattr(value, "value"):
                value = value.value
            setattr(case, field, value)

        self.outbox.stage(
            self.db,
            CaseUpdated(
                actor_id=user.id,
                owner_id=case.user_id,
                case_id=case.id,
                case_number=case.case_id,
                fields=tuple(sorted(changes)),
            ),
        )
        await self._commit_case()
        return case

    async def assign_case(self, case: Case, actor: User, assignee_id: UUID) -> Case:
        """Delegate a case to a tax professional. Ownership does not change."""
        if not can(actor.role, Action.CASE_ASSIGN):
            raise AuthorizationError("Only admins can assign cases", "INSUFFICIENT_PERMISSIONS")

        assignee = await self.db.get(User, assignee_id)
        if (
            assignee is None
            or not assignee.is_active
            or not can(assignee.role, Action.CASE_BE_ASSIGNED)
        ):
            raise ValidationError(
                "Assignee must be an active tax professional or admin",
                "INVALID_TAX_PROFESSIONAL",
            )

        case.assigned_to = assignee.id
        self.outbox.stage(
            self.db,
            CaseAssigned(
                actor_id=actor.id,
                owner_id=case.user_id,
                case_id=case.id,
                case_number=case.case_id,
                assignee_id=assignee.id,
            ),
        )
        await self._commit_case()
        logger.info("Case %s assigned to %s by %s", case.case_id, assignee.id, actor.id)
        return case

    async def get_timeline(self, case: Case) -> List[TimelineEntry]:
        """Status changes merged with activity log entries, oldest first."""
        entries: List[TimelineEntry] = []
        for record in case.state_history or []:
            entries.append(
                TimelineEntry(
                    type="status_change",
                    timestamp=record["timestamp"],
                    description=f"Status changed from {record['from_status']} to {record['to_status']}",
                    actor_id=record.get("triggered_by"),
                    from_status=record["from_status"],
                    to_status=record["to_status"],
                )
            )

        result = await self.db.execute(
            select(ActivityLog)
            .where(ActivityLog.entity_type == "case", ActivityLog.entity_id == str(case.id))
            .order_by(ActivityLog.created_at.asc())
        )
        for log in result.scalars().all():
            entries.append(
                TimelineEntry(
                    type="activity",
                    timestamp=ensure_utc(log.created_at),
                    description=log.description,
                    actor_id=log.user_id,
                    action=log.action,
                )
            )

        entries.sort(key=lambda entry: ensure_utc(entry.timestamp))
        return entries

    async def _commit_case(self) -> None:
        try:
            await self.db.commit()
        except StaleDataError:
            await self.db.rollback()
            raise ConcurrencyError(
                "Case was modified by someone else; reload and retry",
                "CASE_VERSION_CONFLICT",
            )

    @staticmethod
    def to_response(case: Case) -> CaseResponse:
        return CaseResponse(
            id=case.id,
            case_id=case.case_id,
            user_id=case.user_id,
            assigned_to=case.assigned_to,
            program_type=case.program_type,
            status=case.status,
            priority=case.priority,
            total_debt=case.total_debt,
            tax_years=case.tax_years or [],
            debt_breakdown=case.debt_breakdown,
            estimated_savings=case.estimated_savings,
            proposed_amount=case.proposed_amount,
            monthly_payment=case.monthly_payment,
            submission_date=case.submission_date,
            resolution_date=case.resolution_date,
            next_deadline=case.next_deadline,
            documents_complete=case.documents_complete,
            document_progress=case.document_progress,
            forms_ready=case.forms_ready,
            submitted_to_irs=case.submitted_to_irs,
            tracking_number=case.tracking_number,
            power_of_attorney=case.power_of_attorney,
            notes=case.notes,
            state_history=[StateTransitionRecord(**entry) for entry in case.state_history or []],
            version=case.version,
            progress=calculate_progress(case.status),
            days_in_current_status=days_in_current_status(case),
            is_overdue=is_overdue(case),
            created_at=case.created_at,
            updated_at=case.updated_at,
        )
