"""
Document upload and review workflow.

Status is a one-way state machine: pending -> approved | rejected. A resend
after rejection is a new pending Document; reviewed rows never change state.
"""
import hashlib
from datetime import datetime, timedelta, timezone
from io import BytesIO
from pathlib import Path
from typing import BinaryIO, Dict, Iterable, List, Optional, Set, Tuple, Union

from sqlalchemy.orm import Session, joinedload

from core.change_feed import note_change
from core.exceptions import NotFoundError, NotPending, PermissionDenied, ValidationError
from core.logger import logger
from core.utils import add_months, count_by, isoformat, utcnow
from core.validators import require_text, validate_document_extension, validate_file_size
from database.connection import commit_or_raise
from database.models import Document, DocumentStatus, DocumentType, NotificationType, User
from services.audit_service import AuditService
from services.notification_service import NotificationService
from storage.base import ObjectStore
from storage.paths import document_object_path, object_path_from_url
import config

TRANSITIONS: Dict[DocumentStatus, Set[DocumentStatus]] = {
    DocumentStatus.PENDING: {DocumentStatus.APPROVED, DocumentStatus.REJECTED},
    DocumentStatus.APPROVED: set(),
    DocumentStatus.REJECTED: set(),
}


def can_transition(current: DocumentStatus, target: DocumentStatus) -> bool:
    return target in TRANSITIONS.get(current, set())


def parse_decision(decision: Union[str, DocumentStatus]) -> DocumentStatus:
    try:
        status = DocumentStatus(decision)
    except ValueError:
        raise ValidationError(f"Invalid decision: {decision}", field="decision")
    if status == DocumentStatus.PENDING:
        raise ValidationError("Decision must be approved or rejected", field="decision")
    return status


# ============================================================================
# Derived checks (recomputed on every read, never stored)
# ============================================================================

def is_expired(document: Document, now: Optional[datetime] = None) -> bool:
    now = now or utcnow()
    return document.expires_at is not None and document.expires_at < now


def is_expiring_soon(document: Document, now: Optional[datetime] = None, days: Optional[int] = None) -> bool:
    """expires_at is set and falls within the warning window."""
    if document.expires_at is None:
        return False
    now = now or utcnow()
    window = config.EXPIRY_WARNING_DAYS if days is None else days
    return document.expires_at <= now + timedelta(days=window)


def satisfies_requirement(documents: Iterable[Document], document_type_id: int, now: Optional[datetime] = None) -> bool:
    """An approved, unexpired document of the type exists."""
    now = now or utcnow()
    return any(
        d.document_type_id == document_type_id
        and d.status == DocumentStatus.APPROVED
        and not is_expired(d, now)
        for d in documents
    )


def document_stats(documents: Iterable[Document]) -> Dict[str, int]:
    documents = list(documents)
    stats = count_by(documents, "status", [s.value for s in DocumentStatus])
    stats["total"] = len(documents)
    return stats


def filter_documents(documents: Iterable[Document], search: Optional[str]) -> List[Document]:
    """Case-insensitive match on document type name or owner name."""
    documents = list(documents)
    if not search or not search.strip():
        return documents
    needle = search.strip().lower()
    return [
        d for d in documents
        if (d.document_type and needle in d.document_type.name.lower())
        or (d.user and needle in d.user.full_name.lower())
    ]


class DocumentService:
    """Service for document uploads and reviews."""

    @staticmethod
    def submit(
        db: Session,
        store: ObjectStore,
        user_id: str,
        document_type_id: int,
        file_obj: BinaryIO,
        filename: str,
        content_type: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Document:
        """
        Store an uploaded file and create a pending Document.

        Args:
            db: Database session
            store: Object store receiving the file
            user_id: Owner
            document_type_id: Kind of document
            file_obj: File content
            filename: Original file name
            content_type: MIME type
            now: Upload time (defaults to utcnow)

        Returns:
            The new pending Document
        """
        document_type = db.get(DocumentType, document_type_id)
        if document_type is None:
            raise NotFoundError("Document type", document_type_id)

        if not filename or not validate_document_extension(filename, config.ALLOWED_DOCUMENT_EXTENSIONS):
            raise ValidationError(
                f"Invalid file type. Allowed: {', '.join(sorted(config.ALLOWED_DOCUMENT_EXTENSIONS))}",
                field="file"
            )

        data = file_obj.read()
        is_valid_size, size_error = validate_file_size(len(data), config.MAX_DOCUMENT_SIZE_MB * 1024 * 1024)
        if not is_valid_size:
            raise ValidationError(size_error, field="file")

        now = now or utcnow()
        try:
            path = document_object_path(user_id, filename, int(now.replace(tzinfo=timezone.utc).timestamp() * 1000))
        except ValueError as e:
            raise ValidationError(f"Invalid filename: {e}", field="file")

        store.upload(path, BytesIO(data), content_type)

        document = Document(
            user_id=user_id,
            document_type_id=document_type.id,
            status=DocumentStatus.PENDING,
            file_url=store.get_public_url(path),
            file_path=path,
            file_hash=hashlib.sha256(data).hexdigest(),
            expires_at=add_months(now, document_type.valid_period_months) if document_type.valid_period_months else None,
            extra_metadata={
                "fileName": filename,
                "fileSize": len(data),
                "uploadedAt": now.isoformat(),
            },
            created_at=now,
            updated_at=now,
        )
        db.add(document)
        try:
            commit_or_raise(db, "submit_document")
        except Exception:
            store.delete(path)
            raise

        logger.info(f"Document {document.id} uploaded by {user_id} ({document_type.name})")
        AuditService.log_action(db, "create", user_id=user_id, table_name="documents", record_id=document.id)
        return document

    @staticmethod
    def review(
        db: Session,
        document_id: str,
        reviewer_id: str,
        decision: Union[str, DocumentStatus],
        notes: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Document:
        """
        Approve or reject a pending document.

        Status, verifier, notes and updated_at are written in one conditional
        UPDATE guarded on status == pending, so a second review of the same
        document fails instead of overwriting the first.

        Raises:
            NotFoundError: unknown document
            NotPending: the document was already reviewed
            ValidationError: decision is not approved/rejected
        """
        target = parse_decision(decision)
        document = db.get(Document, document_id)
        if document is None:
            raise NotFoundError("Document", document_id)
        if not can_transition(document.status, target):
            raise NotPending(document.id, document.status.value)

        notes = notes.strip() if notes and notes.strip() else None
        updated = db.query(Document).filter(
            Document.id == document_id,
            Document.status == DocumentStatus.PENDING
        ).update({
            Document.status: target,
            Document.verified_by: reviewer_id,
            Document.verification_notes: notes,
            Document.updated_at: now or utcnow(),
        }, synchronize_session="fetch")

        if not updated:
            db.rollback()
            db.refresh(document)
            raise NotPending(document.id, document.status.value)

        note_change(db, Document.__tablename__, "update", document_id)
        commit_or_raise(db, "review_document")
        # Bulk update bypasses the identity map
        db.refresh(document)
        logger.info(f"Document {document_id} {target.value} by {reviewer_id}")

        type_name = document.document_type.name if document.document_type else "documento"
        if target == DocumentStatus.APPROVED:
            title, body = "Documento aprovado", f"Seu documento {type_name} foi aprovado."
        else:
            title = "Documento rejeitado"
            body = f"Seu documento {type_name} foi rejeitado." + (f" Motivo: {notes}" if notes else "")
        NotificationService.create(
            db,
            user_id=document.user_id,
            title=title,
            message=body,
            notification_type=NotificationType.DOCUMENT,
            sender_id=reviewer_id,
            metadata={"document_id": document_id, "status": target.value},
        )
        AuditService.log_action(
            db, "update", user_id=reviewer_id, table_name="documents",
            record_id=document_id, metadata={"status": target.value}
        )
        return document

    @staticmethod
    def requirement_status(db: Session, user_id: str, now: Optional[datetime] = None) -> List[dict]:
        """Compliance per required document type for one student."""
        now = now or utcnow()
        required = db.query(DocumentType).filter(DocumentType.required == True).order_by(DocumentType.name).all()  # noqa: E712
        documents = db.query(Document).filter(Document.user_id == user_id).all()
        return [
            {
                "document_type_id": doc_type.id,
                "name": doc_type.name,
                "satisfied": satisfies_requirement(documents, doc_type.id, now),
            }
            for doc_type in required
        ]

    @staticmethod
    def get_for_viewer(db: Session, document_id: str, viewer: User) -> Document:
        document = db.get(Document, document_id)
        if document is None:
            raise NotFoundError("Document", document_id)
        if not viewer.is_staff and document.user_id != viewer.id:
            raise PermissionDenied()
        return document

    @staticmethod
    def list_documents(
        db: Session,
        viewer: User,
        search: Optional[str] = None,
        status: Optional[str] = None,
        limit: Optional[int] = None
    ) -> List[Document]:
        """Students see their own documents, staff see everyone's. Newest first."""
        query = db.query(Document).options(joinedload(Document.user), joinedload(Document.document_type))
        if not viewer.is_staff:
            query = query.filter(Document.user_id == viewer.id)
        if status and status != "all":
            try:
                query = query.filter(Document.status == DocumentStatus(status))
            except ValueError:
                raise ValidationError(f"Invalid status: {status}", field="status")
        query = query.order_by(Document.created_at.desc(), Document.id)
        if limit is not None and not search:
            query = query.limit(limit)
        documents = filter_documents(query.all(), search)
        return documents[:limit] if limit is not None else documents

    @staticmethod
    def download(db: Session, store: ObjectStore, document_id: str, viewer: User) -> Tuple[BytesIO, str]:
        """
        Returns:
            (content, download filename "{type}_{owner}{ext}")
        """
        document = DocumentService.get_for_viewer(db, document_id, viewer)
        path = document.file_path or object_path_from_url(document.file_url)
        content = store.download(path)
        type_name = document.document_type.name if document.document_type else "documento"
        owner_name = document.user.full_name if document.user else "usuario"
        return content, f"{type_name}_{owner_name}{Path(path).suffix}"

    @staticmethod
    def serialize(document: Document, now: Optional[datetime] = None) -> dict:
        now = now or utcnow()
        return {
            "id": document.id,
            "user_id": document.user_id,
            "owner_name": document.user.full_name if document.user else None,
            "document_type_id": document.document_type_id,
            "document_type": document.document_type.name if document.document_type else None,
            "status": document.status.value,
            "file_url": document.file_url,
            "file_hash": document.file_hash,
            "expires_at": isoformat(document.expires_at),
            "expiring_soon": is_expiring_soon(document, now),
            "expired": is_expired(document, now),
            "verification_notes": document.verification_notes,
            "verified_by": document.verified_by,
            "metadata": document.extra_metadata,
            "created_at": isoformat(document.created_at),
            "updated_at": isoformat(document.updated_at),
        }

    # ------------------------------------------------------------------
    # Document types
    # ------------------------------------------------------------------

    @staticmethod
    def list_types(db: Session) -> List[DocumentType]:
        return db.query(DocumentType).order_by(DocumentType.name).all()

    @staticmethod
    def create_type(
        db: Session,
        name: str,
        description: Optional[str] = None,
        required: bool = False,
        valid_period_months: Optional[int] = None
    ) -> DocumentType:
        name = require_text(name, "name")
        if db.query(DocumentType).filter(DocumentType.name == name).first():
            raise ValidationError(f"Document type already exists: {name}", field="name")
        if valid_period_months is not None and valid_period_months <= 0:
            raise ValidationError("valid_period_months must be positive", field="valid_period_months")
        document_type = DocumentType(
            name=name,
            description=description,
            required=required,
            valid_period_months=valid_period_months,
        )
        db.add(document_type)
        commit_or_raise(db, "create_document_type")
        return document_type

    @staticmethod
    def update_type(db: Session, type_id: int, **changes) -> DocumentType:
        document_type = db.get(DocumentType, type_id)
        if document_type is None:
            raise NotFoundError("Document type", type_id)
        if "name" in changes and changes["name"] is not None:
            changes["name"] = require_text(changes["name"], "name")
        for field_name in ("name", "description", "required", "valid_period_months"):
            if field_name in changes and changes[field_name] is not None:
                setattr(document_type, field_name, changes[field_name])
        commit_or_raise(db, "update_document_type")
        return document_type

    @staticmethod
    def serialize_type(document_type: DocumentType) -> dict:
        return {
            "id": document_type.id,
            "name": document_type.name,
            "description": document_type.description,
            "required": document_type.required,
            "valid_period_months": document_type.valid_period_months,
        }
