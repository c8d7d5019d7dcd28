"""Document upload, processing and review."""
import io
import logging
import secrets
import time
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional, Tuple
from uuid import UUID

from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings
from app.core.enums import DocumentStatus, DocumentType, VerificationStatus
from app.core.errors import (
    AuthorizationError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from app.core.permissions import Action, can, can_access_case
from app.core.security import DOWNLOAD_TOKEN_TYPE, decode_token
from app.models.case import Case, Document
from app.models.user import User
from app.services.events import (
    DocumentDeleted,
    DocumentRejected,
    DocumentUploaded,
    DocumentVerified,
    EventOutbox,
)
from app.services.file_storage import BlobStorage, compute_file_hash
from app.services.rq_queue import JobQueues
from app.services.stages.stage0_case_entry import CaseEntryService
from app.services.stages.stage1_checklist import ChecklistEngine
from app.utils.clock import utcnow

logger = logging.getLogger(__name__)

UPLOAD_CHUNK_BYTES = 1024 * 1024


DOCUMENT_TRANSITIONS: Dict[DocumentStatus, FrozenSet[DocumentStatus]] = {
    DocumentStatus.PENDING: frozenset({
        DocumentStatus.PROCESSING,
        DocumentStatus.VERIFIED,
        DocumentStatus.REJECTED,
        DocumentStatus.DELETED,
    }),
    DocumentStatus.PROCESSING: frozenset({
        DocumentStatus.PROCESSED,
        DocumentStatus.VERIFIED,
        DocumentStatus.REJECTED,
        DocumentStatus.DELETED,
    }),
    DocumentStatus.PROCESSED: frozenset({
        DocumentStatus.VERIFIED,
        DocumentStatus.REJECTED,
        DocumentStatus.DELETED,
    }),
    DocumentStatus.VERIFIED: frozenset({DocumentStatus.REJECTED, DocumentStatus.DELETED}),
    DocumentStatus.REJECTED: frozenset({DocumentStatus.DELETED}),
    DocumentStatus.DELETED: frozenset(),
}


def move_document(document: Document, target: DocumentStatus) -> None:
    """Apply a lifecycle move, refusing edges outside ``DOCUMENT_TRANSITIONS``."""
    current = DocumentStatus(document.status)
    if target not in DOCUMENT_TRANSITIONS[current]:
        raise InvalidTransitionError(
            f"Cannot move document from {current.value} to {target.value}",
            "INVALID_DOCUMENT_TRANSITION",
        )
    document.status = target.value


def validate_upload(
    filename: str,
    content_type: Optional[str],
    size: int,
    settings: Settings,
) -> None:
    if not filename or ".." in filename or "/" in filename or "\\" in filename:
        raise ValidationError("Invalid filename", "INVALID_FILENAME")
    if content_type not in settings.ALLOWED_MIME_TYPES:
        raise ValidationError(
            f"File type {content_type} is not allowed", "INVALID_FILE_TYPE"
        )
    if size == 0:
        raise ValidationError("File is empty", "EMPTY_FILE")
    max_bytes = settings.MAX_FILE_SIZE_MB * 1024 * 1024
    if size > max_bytes:
        raise ValidationError(
            f"File exceeds the {settings.MAX_FILE_SIZE_MB}MB limit", "FILE_TOO_LARGE"
        )


async def read_upload(upload, settings: Settings) -> bytes:
    """Read an ``UploadFile`` in chunks, giving up once it passes MAX_FILE_SIZE_MB."""
    max_bytes = settings.MAX_FILE_SIZE_MB * 1024 * 1024
    buffer = bytearray()
    while True:
        chunk = await upload.read(UPLOAD_CHUNK_BYTES)
        if not chunk:
            return bytes(buffer)
        buffer.extend(chunk)
        if len(buffer) > max_bytes:
            raise ValidationError(
                f"File exceeds the {settings.MAX_FILE_SIZE_MB}MB limit", "FILE_TOO_LARGE"
            )


def build_blob_path(user_id: UUID, case_number: Optional[str], document_type: DocumentType, filename: str) -> str:
    """``{user}/{case or general}/{type}/{millis}_{random}{ext}``"""
    extension = Path(filename).suffix.lower()
    stamp = int(time.time() * 1000)
    return f"{user_id}/{case_number or 'general'}/{document_type.value}/{stamp}_{secrets.token_hex(8)}{extension}"


class DocumentService:
    """Stores uploads, drives the document lifecycle and keeps case completion current."""

    def __init__(
        self,
        db: AsyncSession,
        settings: Settings,
        storage: BlobStorage,
        queues: Optional[JobQueues] = None,
    ):
        self.db = db
        self.settings = settings
        self.storage = storage
        self.queues = queues
        self.outbox = EventOutbox(max_attempts=settings.EVENT_QUEUE_MAX_ATTEMPTS)

    async def upload(
        self,
        user: User,
        filename: str,
        content_type: Optional[str],
        data: bytes,
        document_type: str,
        case_ref: Optional[str] = None,
        tax_year: Optional[int] = None,
        description: Optional[str] = None,
    ) -> Document:
        """
        Store the blob, then persist its metadata.

        If the metadata insert fails the blob is deleted again so storage
        never holds files the database does not know about.
        """
        if not can(user.role, Action.DOCUMENT_UPLOAD):
            raise AuthorizationError("Your role cannot upload documents", "INSUFFICIENT_PERMISSIONS")
        validate_upload(filename, content_type, len(data), self.settings)
        try:
            doc_type = DocumentType(document_type)
        except ValueError:
            raise ValidationError(f"Invalid document type: {document_type}", "INVALID_DOCUMENT_TYPE")

        case = None
        if case_ref:
            case = await CaseEntryService(self.db, self.settings).get_case(case_ref, user)

        file_hash = compute_file_hash(io.BytesIO(data))
        path = build_blob_path(user.id, case.case_id if case else None, doc_type, filename)
        locator = await self.storage.put(
            path,
            data,
            metadata={
                "user_id": str(user.id),
                "document_type": doc_type.value,
                "original_filename": filename,
                "sha256": file_hash,
            },
        )

        try:
            document = Document(
                user_id=case.user_id if case else user.id,
                case_id=case.id if case else None,
                document_type=doc_type.value,
                tax_year=tax_year,
                description=description,
                original_filename=filename,
                storage_key=locator,
                file_size_bytes=len(data),
                mime_type=content_type,
                file_hash=file_hash,
                status=DocumentStatus.PENDING.value,
                verification_status=VerificationStatus.UNVERIFIED.value,
                uploaded_by=user.id,
                is_confidential=True,
                access_log=[],
            )
            self.db.add(document)
            await self.db.flush()
            self.outbox.stage(
                self.db,
                DocumentUploaded(
                    actor_id=user.id,
                    owner_id=document.user_id,
                    document_id=document.id,
                    document_type=doc_type.value,
                    filename=filename,
                    case_id=document.case_id,
                ),
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            logger.error("Metadata insert failed for %s; removing orphaned blob", locator, exc_info=True)
            try:
                await self.storage.delete(locator)
            except OSError as cleanup_error:
                logger.error("Failed to remove orphaned blob %s: %s", locator, cleanup_error)
            raise

        logger.info("Uploaded document %s (%s) for user %s", document.id, doc_type.value, user.id)
        await self.schedule_processing(document)
        return document

    async def schedule_processing(self, document: Document) -> None:
        """Hand the document to the RQ worker, or process it inline when RQ is off."""
        if self.settings.RQ_ASYNC_ENABLED and self.queues is not None:
            self.queues.enqueue_document_processing(document.id)
            return
        await self.process_document(document.id)

    async def process_document(self, document_id: UUID) -> Optional[Document]:
        """PENDING -> PROCESSING -> PROCESSED, then refresh the case checklist."""
        document = await self.db.get(Document, document_id)
        if document is None:
            logger.warning("Document %s vanished before processing", document_id)
            return None
        if document.status != DocumentStatus.PENDING.value:
            logger.info("Document %s already %s, skipping processing", document_id, document.status)
            return document

        move_document(document, DocumentStatus.PROCESSING)
        await self.db.commit()

        blob = await self.storage.get(document.storage_key)
        if blob is None:
            move_document(document, DocumentStatus.REJECTED)
            document.verification_status = VerificationStatus.FAILED.value
            document.rejection_reason = "Stored file is missing"
            await self.db.commit()
            logger.error("Document %s blob missing at %s", document_id, document.storage_key)
            return document

        document.processed_data = {
            "size_bytes": len(blob),
            "sha256_matches": compute_file_hash(io.BytesIO(blob)) == document.file_hash,
            "processed_at": utcnow().isoformat(),
        }
        move_document(document, DocumentStatus.PROCESSED)
        await self._refresh_case_completion(document)
        await self.db.commit()
        return document

    async def get_document(self, document_id: UUID, user: User) -> Document:
        document = await self.db.get(Document, document_id)
        if document is None or document.status == DocumentStatus.DELETED.value:
            raise NotFoundError("Document not found", "DOCUMENT_NOT_FOUND")
        if not await self._can_view(document, user):
            raise AuthorizationError("Access denied to this document", "DOCUMENT_ACCESS_DENIED")
        return document

    async def list_documents(
        self,
        user: User,
        case_ref: Optional[str] = None,
        document_type: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[Document]:
        filters = [Document.status != DocumentStatus.DELETED.value]
        if case_ref:
            case = await CaseEntryService(self.db, self.settings).get_case(case_ref, user)
            filters.append(Document.case_id == case.id)
        elif not can(user.role, Action.CASE_VIEW_ALL):
            filters.append(Document.user_id == user.id)
        if document_type:
            filters.append(Document.document_type == document_type)
        if status:
            filters.append(Document.status == status)

        result = await self.db.execute(
            select(Document).where(*filters).order_by(Document.created_at.desc())
        )
        return list(result.scalars().all())

    async def verify(self, document_id: UUID, reviewer: User) -> Document:
        self._require_reviewer(reviewer)
        document = await self.get_document(document_id, reviewer)

        move_document(document, DocumentStatus.VERIFIED)
        document.verification_status = VerificationStatus.MANUALLY_VERIFIED.value
        document.verified_by = reviewer.id
        document.verified_at = utcnow()
        document.rejection_reason = None

        self.outbox.stage(
            self.db,
            DocumentVerified(
                actor_id=reviewer.id,
                owner_id=document.user_id,
                document_id=document.id,
                document_type=document.document_type,
                case_id=document.case_id,
            ),
        )
        await self._refresh_case_completion(document)
        await self.db.commit()
        logger.info("Document %s verified by %s", document.id, reviewer.id)
        return document

    async def reject(self, document_id: UUID, reviewer: User, reason: Optional[str]) -> Document:
        self._require_reviewer(reviewer)
        if not reason or not reason.strip():
            raise ValidationError("Rejection reason is required", "REASON_REQUIRED")
        document = await self.get_document(document_id, reviewer)

        move_document(document, DocumentStatus.REJECTED)
        document.verification_status = VerificationStatus.FAILED.value
        document.verified_by = reviewer.id
        document.verified_at = utcnow()
        document.rejection_reason = reason.strip()

        self.outbox.stage(
            self.db,
            DocumentRejected(
                actor_id=reviewer.id,
                owner_id=document.user_id,
                document_id=document.id,
                document_type=document.document_type,
                reason=document.rejection_reason,
                case_id=document.case_id,
            ),
        )
        await self._refresh_case_completion(document)
        await self.db.commit()
        logger.info("Document %s rejected by %s", document.id, reviewer.id)
        return document

    async def delete(self, document_id: UUID, user: User) -> Document:
        """Soft delete. The row and the blob stay; the document drops out of every listing."""
        document = await self.get_document(document_id, user)
        if document.user_id != user.id and not can(user.role, Action.DOCUMENT_DELETE_ANY):
            raise AuthorizationError("Only the owner or an admin can delete this document", "DOCUMENT_ACCESS_DENIED")

        move_document(document, DocumentStatus.DELETED)
        self.outbox.stage(
            self.db,
            DocumentDeleted(
                actor_id=user.id,
                owner_id=document.user_id,
                document_id=document.id,
                document_type=document.document_type,
                case_id=document.case_id,
            ),
        )
        await self._refresh_case_completion(document)
        await self.db.commit()
        logger.info("Document %s deleted by %s", document.id, user.id)
        return document

    async def issue_signed_url(self, document_id: UUID, user: User) -> Tuple[str, int]:
        document = await self.get_document(document_id, user)
        ttl = self.settings.SIGNED_URL_TTL_SECONDS
        url = self.storage.signed_url(document.storage_key, ttl)

        document.access_log = list(document.access_log or []) + [{
            "user_id": str(user.id),
            "action": "signed_url",
            "timestamp": utcnow().isoformat(),
        }]
        await self.db.commit()
        return url, ttl

    async def read_signed(self, token: str) -> Tuple[Document, bytes]:
        """Resolve a download token to the document and its bytes."""
        try:
            payload = decode_token(token, self.settings, expected_type=DOWNLOAD_TOKEN_TYPE)
        except JWTError:
            raise AuthorizationError("Download link is invalid or expired", "INVALID_DOWNLOAD_TOKEN")

        locator = payload.get("sub")
        result = await self.db.execute(select(Document).where(Document.storage_key == locator))
        document = result.scalar_one_or_none()
        if document is None or document.status == DocumentStatus.DELETED.value:
            raise NotFoundError("Document not found", "DOCUMENT_NOT_FOUND")

        data = await self.storage.get(locator)
        if data is None:
            raise NotFoundError("Stored file is missing", "FILE_NOT_FOUND")
        return document, data

    def _require_reviewer(self, user: User) -> None:
        if not can(user.role, Action.DOCUMENT_REVIEW):
            raise AuthorizationError(
                "Only tax professionals and admins can review documents",
                "INSUFFICIENT_PERMISSIONS",
            )

    async def _can_view(self, document: Document, user: User) -> bool:
        if document.user_id == user.id or can(user.role, Action.CASE_VIEW_ALL):
            return True
        if document.case_id is None:
            return False
        case = await self.db.get(Case, document.case_id)
        return case is not None and can_access_case(user, case)

    async def _refresh_case_completion(self, document: Document) -> None:
        if document.case_id is None:
            return
        case = await self.db.get(Case, document.case_id)
        if case is None:
            return
        await self.db.flush()
        await ChecklistEngine(self.db).update_completion(case, commit=False)
