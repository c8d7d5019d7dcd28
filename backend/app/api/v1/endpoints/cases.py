"""Case management API endpoints."""
import logging
import math
from typing import List, Optional

from fastapi import APIRouter, Query, status

from app.core.deps import AppSettings, CurrentUser, DbSession
from app.core.enums import CasePriority, CaseStatus, ProgramType
from app.core.permissions import Action, can
from app.core.errors import AuthorizationError
from app.schemas.shared import (
    AssignCaseRequest,
    CaseCreate,
    CaseListResponse,
    CaseResponse,
    CaseUpdate,
    Pagination,
    RequirementCheck,
    StatusChangeRequest,
    TimelineEntry,
)
from app.services.case_lifecycle import CaseLifecycleService
from app.services.stages.stage0_case_entry import CaseEntryService
from app.services.stages.stage1_checklist import ChecklistEngine

router = APIRouter(prefix="/cases", tags=["cases"])
logger = logging.getLogger(__name__)


@router.post("", response_model=CaseResponse, status_code=status.HTTP_201_CREATED)
async def create_case(
    case_data: CaseCreate,
    current_user: CurrentUser,
    db: DbSession,
    settings: AppSettings,
):
    """Open a new case owned by the caller."""
    if not can(current_user.role, Action.CASE_CREATE):
        raise AuthorizationError("Your role cannot create cases", "INSUFFICIENT_PERMISSIONS")

    service = CaseEntryService(db, settings)
    case = await service.create_case(current_user, case_data)
    await ChecklistEngine(db).update_completion(case)
    return CaseEntryService.to_response(case)


@router.get("", response_model=CaseListResponse)
async def list_cases(
    current_user: CurrentUser,
    db: DbSession,
    settings: AppSettings,
    status_filter: Optional[CaseStatus] = Query(default=None, alias="status"),
    program_type: Optional[ProgramType] = None,
    priority: Optional[CasePriority] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
):
    """
    Cases visible to the caller.

    Clients and support staff see their own cases, tax professionals also
    see the cases assigned to them, admins see everything.
    """
    service = CaseEntryService(db, settings)
    cases, total = await service.list_cases(
        current_user,
        status=status_filter.value if status_filter else None,
        program_type=program_type.value if program_type else None,
        priority=priority.value if priority else None,
        page=page,
        limit=limit,
    )
    total_pages = math.ceil(total / limit) if total else 0
    return CaseListResponse(
        cases=[CaseEntryService.to_response(case) for case in cases],
        pagination=Pagination(
            page=page,
            limit=limit,
            total=total,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_prev=page > 1,
        ),
    )


@router.get("/{case_id}", response_model=CaseResponse)
async def get_case(case_id: str, current_user: CurrentUser, db: DbSession, settings: AppSettings):
    case = await CaseEntryService(db, settings).get_case(case_id, current_user)
    return CaseEntryService.to_response(case)


@router.patch("/{case_id}", response_model=CaseResponse)
async def update_case(
    case_id: str,
    updates: CaseUpdate,
    current_user: CurrentUser,
    db: DbSession,
    settings: AppSettings,
):
    service = CaseEntryService(db, settings)
    case = await service.get_case(case_id, current_user, for_update=True)
    case = await service.update_case(case, current_user, updates)
    return CaseEntryService.to_response(case)


@router.put("/{case_id}/status", response_model=CaseResponse)
async def change_case_status(
    case_id: str,
    request: StatusChangeRequest,
    current_user: CurrentUser,
    db: DbSession,
    settings: AppSettings,
):
    """
    Move a case to a new status.

    Send ``expected_version`` from the last read to get a 409 instead of
    silently overwriting a concurrent change.
    """
    case = await CaseEntryService(db, settings).get_case(case_id, current_user, for_update=True)
    case = await CaseLifecycleService(db, settings).change_status(
        case,
        request.status,
        current_user,
        notes=request.notes,
        expected_version=request.expected_version,
    )
    return CaseEntryService.to_response(case)


@router.post("/{case_id}/assign", response_model=CaseResponse)
async def assign_case(
    case_id: str,
    request: AssignCaseRequest,
    current_user: CurrentUser,
    db: DbSession,
    settings: AppSettings,
):
    service = CaseEntryService(db, settings)
    case = await service.get_case(case_id, current_user, for_update=True)
    case = await service.assign_case(case, current_user, request.tax_professional_id)
    return CaseEntryService.to_response(case)


@router.get("/{case_id}/documents/requirements", response_model=RequirementCheck)
async def get_document_requirements(
    case_id: str,
    current_user: CurrentUser,
    db: DbSession,
    settings: AppSettings,
):
    """Required, present and missing document types for the case's program."""
    case = await CaseEntryService(db, settings).get_case(case_id, current_user)
    return await ChecklistEngine(db).check_requirements(case)


@router.get("/{case_id}/timeline", response_model=List[TimelineEntry])
async def get_case_timeline(
    case_id: str,
    current_user: CurrentUser,
    db: DbSession,
    settings: AppSettings,
):
    service = CaseEntryService(db, settings)
    case = await service.get_case(case_id, current_user)
    return await service.get_timeline(case)
