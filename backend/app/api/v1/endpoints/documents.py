"""Document upload, review and download endpoints."""
import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile, status

from app.core.deps import AppSettings, CaseReviewer, CurrentUser, DbSession, Storage, get_queues
from app.core.enums import DocumentStatus, DocumentType
from app.schemas.shared import (
    DocumentRejectRequest,
    DocumentResponse,
    DocumentTypeInfo,
    SignedUrlResponse,
)
from app.services.document_service import DocumentService, read_upload
from app.services.rq_queue import JobQueues
from app.services.stages.stage1_checklist import list_document_types

router = APIRouter(prefix="/documents", tags=["documents"])
logger = logging.getLogger(__name__)


def _service(
    db: DbSession,
    settings: AppSettings,
    storage: Storage,
    queues: Optional[JobQueues] = Depends(get_queues),
) -> DocumentService:
    return DocumentService(db, settings, storage, queues)


@router.post("/upload", response_model=DocumentResponse, status_code=status.HTTP_201_CREATED)
async def upload_document(
    current_user: CurrentUser,
    file: UploadFile = File(...),
    document_type: DocumentType = Form(...),
    case_id: Optional[str] = Form(default=None),
    tax_year: Optional[int] = Form(default=None, ge=1900, le=2100),
    description: Optional[str] = Form(default=None, max_length=500),
    service: DocumentService = Depends(_service),
):
    """
    Upload a document, optionally attached to a case the caller can access.

    The file is stored first and processed inline or on the RQ
    ``documents`` queue depending on ``RQ_ASYNC_ENABLED``.
    """
    data = await read_upload(file, service.settings)
    return await service.upload(
        current_user,
        filename=file.filename or "",
        content_type=file.content_type,
        data=data,
        document_type=document_type.value,
        case_ref=case_id,
        tax_year=tax_year,
        description=description,
    )


@router.get("/types", response_model=List[DocumentTypeInfo])
async def get_document_types():
    return list_document_types()


@router.get("", response_model=List[DocumentResponse])
async def list_documents(
    current_user: CurrentUser,
    case_id: Optional[str] = None,
    document_type: Optional[DocumentType] = None,
    status_filter: Optional[DocumentStatus] = Query(default=None, alias="status"),
    service: DocumentService = Depends(_service),
):
    return await service.list_documents(
        current_user,
        case_ref=case_id,
        document_type=document_type.value if document_type else None,
        status=status_filter.value if status_filter else None,
    )


@router.get("/download/{token}")
async def download_document(token: str, service: DocumentService = Depends(_service)):
    """Serve a blob through a signed, expiring link. No bearer token required."""
    document, data = await service.read_signed(token)
    return Response(
        content=data,
        media_type=document.mime_type or "application/octet-stream",
        headers={"Content-Disposition": f'attachment; filename="{document.original_filename}"'},
    )


@router.get("/{document_id}", response_model=DocumentResponse)
async def get_document(
    document_id: UUID,
    current_user: CurrentUser,
    service: DocumentService = Depends(_service),
):
    return await service.get_document(document_id, current_user)


@router.get("/{document_id}/url", response_model=SignedUrlResponse)
async def get_document_url(
    document_id: UUID,
    current_user: CurrentUser,
    service: DocumentService = Depends(_service),
):
    url, ttl = await service.issue_signed_url(document_id, current_user)
    return SignedUrlResponse(url=url, expires_in=ttl)


@router.put("/{document_id}/verify", response_model=DocumentResponse)
async def verify_document(
    document_id: UUID,
    reviewer: CaseReviewer,
    service: DocumentService = Depends(_service),
):
    return await service.verify(document_id, reviewer)


@router.put("/{document_id}/reject", response_model=DocumentResponse)
async def reject_document(
    document_id: UUID,
    request: DocumentRejectRequest,
    reviewer: CaseReviewer,
    service: DocumentService = Depends(_service),
):
    return await service.reject(document_id, reviewer, request.reason)


@router.delete("/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_document(
    document_id: UUID,
    current_user: CurrentUser,
    service: DocumentService = Depends(_service),
):
    await service.delete(document_id, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
