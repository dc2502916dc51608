"""
Document upload, review and download routes.
"""
from fastapi import (
    APIRouter, BackgroundTasks, Depends, File, Form, HTTPException, Query, Request, UploadFile, status
)
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session
from pydantic import BaseModel
from typing import Optional
from urllib.parse import quote

from database.models import User
from auth.dependencies import get_current_user, get_db_session, require_admin, require_staff
from services.document_service import DocumentService, document_stats
from services.email_service import EmailService
import config


router = APIRouter(prefix="/api/documents", tags=["documents"])


def get_object_store():
    if config.object_store is None:
        raise HTTPException(status_code=503, detail="Object storage not initialized")
    return config.object_store


class ReviewRequest(BaseModel):
    decision: str  # approved | rejected
    notes: Optional[str] = None


class DocumentTypeRequest(BaseModel):
    name: str
    description: Optional[str] = None
    required: bool = False
    valid_period_months: Optional[int] = None


class DocumentTypeUpdateRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    required: Optional[bool] = None
    valid_period_months: Optional[int] = None


# ============================================================================
# Document types
# ============================================================================

@router.get("/types")
async def list_document_types(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    return [DocumentService.serialize_type(t) for t in DocumentService.list_types(db)]


@router.post("/types", status_code=status.HTTP_201_CREATED)
async def create_document_type(
    body: DocumentTypeRequest,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    document_type = DocumentService.create_type(db, **body.model_dump())
    return DocumentService.serialize_type(document_type)


@router.put("/types/{type_id}")
async def update_document_type(
    type_id: int,
    body: DocumentTypeUpdateRequest,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    document_type = DocumentService.update_type(db, type_id, **body.model_dump(exclude_unset=True))
    return DocumentService.serialize_type(document_type)


# ============================================================================
# Documents
# ============================================================================

@router.get("")
async def list_documents(
    search: Optional[str] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """Own documents for students, all documents for staff."""
    documents = DocumentService.list_documents(db, current_user, search=search, status=status_filter)
    return {
        "data": [DocumentService.serialize(d) for d in documents],
        "stats": document_stats(documents),
    }


@router.get("/requirements")
async def requirement_status(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """Required document types and whether the caller satisfies each one."""
    return DocumentService.requirement_status(db, current_user.id)


@router.post("", status_code=status.HTTP_201_CREATED)
async def upload_document(
    document_type_id: int = Form(...),
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """Upload a document; it starts in pending status. Resending creates a new document."""
    store = get_object_store()
    document = DocumentService.submit(
        db,
        store,
        user_id=current_user.id,
        document_type_id=document_type_id,
        file_obj=file.file,
        filename=file.filename,
        content_type=file.content_type,
    )
    return DocumentService.serialize(document)


@router.get("/{document_id}")
async def get_document(
    document_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    return DocumentService.serialize(DocumentService.get_for_viewer(db, document_id, current_user))


@router.post("/{document_id}/review")
async def review_document(
    document_id: str,
    body: ReviewRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db_session)
):
    """Approve or reject a pending document. 409 when it was already reviewed."""
    document = DocumentService.review(db, document_id, current_user.id, body.decision, body.notes)

    mail = getattr(request.app.state, "mail", None)
    if mail is not None and document.user is not None:
        background_tasks.add_task(
            EmailService.send_document_review_email,
            mail,
            document.user.email,
            document.user.full_name,
            document.document_type.name if document.document_type else "",
            document.status.value,
            document.verification_notes,
        )
    return DocumentService.serialize(document)


@router.get("/{document_id}/download")
async def download_document(
    document_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    content, filename = DocumentService.download(db, get_object_store(), document_id, current_user)
    return StreamingResponse(
        content,
        media_type="application/octet-stream",
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(filename)}"},
    )
