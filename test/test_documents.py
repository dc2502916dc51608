"""
Document upload and review workflow tests.
"""
from datetime import datetime, timedelta
from io import BytesIO

import pytest

from conftest import auth_headers
from core.exceptions import NotFoundError, NotPending, PermissionDenied, ValidationError
from core.utils import utcnow
from database.models import Document, DocumentStatus, Notification, NotificationType
from services.document_service import (
    DocumentService,
    can_transition,
    document_stats,
    is_expiring_soon,
    parse_decision,
    satisfies_requirement,
)
from storage.base import ObjectStore
import config

NOW = datetime(2026, 1, 31, 10, 0, 0)
PDF = b"%PDF-1.4 fake passport"


def submit(db_session, object_store, user, document_type, filename="passaporte.pdf", data=PDF, now=NOW):
    return DocumentService.submit(
        db_session, object_store, user.id, document_type.id, BytesIO(data), filename, "application/pdf", now=now
    )


# ============================================================================
# State machine
# ============================================================================

def test_transitions_are_one_way():
    assert can_transition(DocumentStatus.PENDING, DocumentStatus.APPROVED)
    assert can_transition(DocumentStatus.PENDING, DocumentStatus.REJECTED)
    assert not can_transition(DocumentStatus.APPROVED, DocumentStatus.REJECTED)
    assert not can_transition(DocumentStatus.REJECTED, DocumentStatus.APPROVED)
    assert not can_transition(DocumentStatus.APPROVED, DocumentStatus.PENDING)


@pytest.mark.parametrize("decision", ["pending", "maybe", ""])
def test_parse_decision_rejects_non_terminal_values(decision):
    with pytest.raises(ValidationError):
        parse_decision(decision)


# ============================================================================
# Submit
# ============================================================================

def test_submit_creates_pending_document(db_session, object_store, student, passport_type):
    document = submit(db_session, object_store, student, passport_type)

    assert document.status == DocumentStatus.PENDING
    assert document.file_path.startswith(f"{student.id}/")
    assert document.file_path.endswith("_passaporte.pdf")
    assert document.file_url == f"http://testserver/files/{document.file_path}"
    assert len(document.file_hash) == 64
    assert document.extra_metadata["fileName"] == "passaporte.pdf"
    assert document.extra_metadata["fileSize"] == len(PDF)
    assert object_store.download(document.file_path).read() == PDF


def test_submit_derives_expiry_from_valid_period(db_session, object_store, student, passport_type, enrollment_type):
    with_period = submit(db_session, object_store, student, passport_type)
    without_period = submit(db_session, object_store, student, enrollment_type, filename="matricula.pdf")

    # Twelve months after the upload time
    assert with_period.expires_at == datetime(2027, 1, 31, 10, 0, 0)
    assert without_period.expires_at is None


def test_submit_rejects_bad_extension(db_session, object_store, student, passport_type):
    with pytest.raises(ValidationError):
        submit(db_session, object_store, student, passport_type, filename="virus.exe")

    assert db_session.query(Document).count() == 0


def test_submit_rejects_empty_and_oversized_files(db_session, object_store, student, passport_type, monkeypatch):
    with pytest.raises(ValidationError):
        submit(db_session, object_store, student, passport_type, data=b"")

    monkeypatch.setattr(config, "MAX_DOCUMENT_SIZE_MB", 1)
    with pytest.raises(ValidationError):
        submit(db_session, object_store, student, passport_type, data=b"x" * (1024 * 1024 + 1))


def test_submit_unknown_type(db_session, object_store, student):
    with pytest.raises(NotFoundError):
        DocumentService.submit(db_session, object_store, student.id, 999, BytesIO(PDF), "a.pdf")


# ============================================================================
# Review
# ============================================================================

def test_approve_sets_fields_and_notifies_owner(db_session, object_store, student, officer, passport_type):
    document = submit(db_session, object_store, student, passport_type)

    reviewed = DocumentService.review(db_session, document.id, officer.id, "approved", notes="  ok  ")

    assert reviewed.status == DocumentStatus.APPROVED
    assert reviewed.verified_by == officer.id
    assert reviewed.verification_notes == "ok"
    [notification] = db_session.query(Notification).filter(Notification.user_id == student.id).all()
    assert notification.title == "Documento aprovado"
    assert notification.type == NotificationType.DOCUMENT


def test_reject_notification_includes_reason(db_session, object_store, student, officer, passport_type):
    document = submit(db_session, object_store, student, passport_type)

    DocumentService.review(db_session, document.id, officer.id, "rejected", notes="Ilegível")

    [notification] = db_session.query(Notification).filter(Notification.user_id == student.id).all()
    assert notification.title == "Documento rejeitado"
    assert "Ilegível" in notification.message


def test_second_review_raises_not_pending(db_session, object_store, student, officer, admin, passport_type):
    document = submit(db_session, object_store, student, passport_type)
    DocumentService.review(db_session, document.id, officer.id, "approved")

    with pytest.raises(NotPending):
        DocumentService.review(db_session, document.id, admin.id, "rejected")

    assert db_session.get(Document, document.id).status == DocumentStatus.APPROVED
    assert db_session.get(Document, document.id).verified_by == officer.id


def test_stale_reviewer_cannot_overwrite(database, db_session, object_store, student, officer, admin, passport_type):
    document = submit(db_session, object_store, student, passport_type)

    stale = database.SessionLocal()
    try:
        # The stale session saw the document while it was still pending
        assert stale.get(Document, document.id).status == DocumentStatus.PENDING

        DocumentService.review(db_session, document.id, officer.id, "approved")

        with pytest.raises(NotPending):
            DocumentService.review(stale, document.id, admin.id, "rejected")
        assert stale.get(Document, document.id).status == DocumentStatus.APPROVED
    finally:
        stale.close()


def test_review_unknown_document(db_session, officer):
    with pytest.raises(NotFoundError):
        DocumentService.review(db_session, "missing", officer.id, "approved")


def test_resend_after_rejection_is_new_pending_document(db_session, object_store, student, officer, passport_type):
    first = submit(db_session, object_store, student, passport_type)
    DocumentService.review(db_session, first.id, officer.id, "rejected")

    second = submit(db_session, object_store, student, passport_type, now=NOW + timedelta(minutes=5))

    assert second.id != first.id
    assert second.status == DocumentStatus.PENDING
    assert db_session.get(Document, first.id).status == DocumentStatus.REJECTED


# ============================================================================
# Requirements and expiry
# ============================================================================

def test_requirement_depends_on_expiry():
    now = datetime(2026, 6, 1, 12, 0, 0)
    expired = Document(document_type_id=1, status=DocumentStatus.APPROVED, expires_at=now - timedelta(days=1))
    valid = Document(document_type_id=1, status=DocumentStatus.APPROVED, expires_at=now + timedelta(days=1))

    assert not satisfies_requirement([expired], 1, now)
    assert satisfies_requirement([valid], 1, now)
    assert satisfies_requirement([expired, valid], 1, now)


def test_requirement_needs_approved_document_of_same_type():
    now = datetime(2026, 6, 1)
    pending = Document(document_type_id=1, status=DocumentStatus.PENDING, expires_at=None)
    other_type = Document(document_type_id=2, status=DocumentStatus.APPROVED, expires_at=None)

    assert not satisfies_requirement([pending, other_type], 1, now)


def test_requirement_status_lists_required_types(db_session, object_store, student, officer, passport_type, enrollment_type):
    document = submit(db_session, object_store, student, passport_type)

    assert DocumentService.requirement_status(db_session, student.id, NOW) == [
        {"document_type_id": passport_type.id, "name": "Passaporte", "satisfied": False}
    ]

    DocumentService.review(db_session, document.id, officer.id, "approved")
    [status] = DocumentService.requirement_status(db_session, student.id, NOW)
    assert status["satisfied"] is True

    # A year later the passport has expired again
    [status] = DocumentService.requirement_status(db_session, student.id, NOW + timedelta(days=400))
    assert status["satisfied"] is False


def test_expiring_soon_window():
    now = datetime(2026, 6, 1)

    assert is_expiring_soon(Document(expires_at=now + timedelta(days=10)), now, days=30)
    assert not is_expiring_soon(Document(expires_at=now + timedelta(days=60)), now, days=30)
    assert not is_expiring_soon(Document(expires_at=None), now, days=30)


def test_document_stats():
    documents = [
        Document(status=DocumentStatus.PENDING),
        Document(status=DocumentStatus.APPROVED),
        Document(status=DocumentStatus.APPROVED),
        Document(status=DocumentStatus.REJECTED),
    ]

    assert document_stats(documents) == {"pending": 1, "approved": 2, "rejected": 1, "total": 4}


# ============================================================================
# Visibility
# ============================================================================

def test_students_see_only_own_documents(db_session, object_store, student, other_student, officer, passport_type):
    mine = submit(db_session, object_store, student, passport_type)
    theirs = submit(db_session, object_store, other_student, passport_type)

    assert [d.id for d in DocumentService.list_documents(db_session, student)] == [mine.id]
    assert {d.id for d in DocumentService.list_documents(db_session, officer)} == {mine.id, theirs.id}
    assert [d.id for d in DocumentService.list_documents(db_session, officer, search="bruno")] == [theirs.id]

    with pytest.raises(PermissionDenied):
        DocumentService.get_for_viewer(db_session, theirs.id, student)


def test_download_filename(db_session, object_store, student, passport_type):
    document = submit(db_session, object_store, student, passport_type)

    content, filename = DocumentService.download(db_session, object_store, document.id, student)

    assert content.read() == PDF
    assert filename == "Passaporte_Ana Silva.pdf"


# ============================================================================
# API
# ============================================================================

def test_upload_review_download_via_api(client, student, officer, passport_type):
    response = client.post(
        "/api/documents",
        data={"document_type_id": str(passport_type.id)},
        files={"file": ("passaporte.pdf", PDF, "application/pdf")},
        headers=auth_headers(student),
    )
    assert response.status_code == 201
    document = response.json()
    assert document["status"] == "pending"

    response = client.post(
        f"/api/documents/{document['id']}/review",
        json={"decision": "approved"},
        headers=auth_headers(student),
    )
    assert response.status_code == 403

    response = client.post(
        f"/api/documents/{document['id']}/review",
        json={"decision": "approved", "notes": "Tudo certo"},
        headers=auth_headers(officer),
    )
    assert response.status_code == 200
    assert response.json()["status"] == "approved"

    response = client.post(
        f"/api/documents/{document['id']}/review",
        json={"decision": "rejected"},
        headers=auth_headers(officer),
    )
    assert response.status_code == 409
    assert response.json()["code"] == "NOT_PENDING"

    response = client.get(f"/api/documents/{document['id']}/download", headers=auth_headers(student))
    assert response.status_code == 200
    assert response.content == PDF
    assert "attachment" in response.headers["content-disposition"]

    response = client.get("/api/documents/requirements", headers=auth_headers(student))
    assert response.json() == [{"document_type_id": passport_type.id, "name": "Passaporte", "satisfied": True}]


def test_list_documents_api_includes_stats(client, db_session, object_store, student, passport_type):
    submit(db_session, object_store, student, passport_type, now=utcnow())

    response = client.get("/api/documents", headers=auth_headers(student))

    body = response.json()
    assert body["stats"]["pending"] == 1
    assert body["stats"]["total"] == 1
    assert body["data"][0]["document_type"] == "Passaporte"


def test_document_types_admin_only(client, officer, admin):
    payload = {"name": "Visto", "required": True, "valid_period_months": 6}

    assert client.post("/api/documents/types", json=payload, headers=auth_headers(officer)).status_code == 403

    response = client.post("/api/documents/types", json=payload, headers=auth_headers(admin))
    assert response.status_code == 201
    assert response.json()["name"] == "Visto"

    response = client.post("/api/documents/types", json=payload, headers=auth_headers(admin))
    assert response.status_code == 400


def test_review_returns_fully_updated_document(db_session, object_store, student, officer, passport_type):
    document = submit(db_session, object_store, student, passport_type)

    reviewed = DocumentService.review(db_session, document.id, officer.id, "rejected", notes="Foto ilegível")

    assert reviewed is document
    assert (reviewed.status, reviewed.verified_by, reviewed.verification_notes) == (
        DocumentStatus.REJECTED, officer.id, "Foto ilegível"
    )


def test_object_store_interface_requires_every_operation(object_store):
    class UploadOnly(ObjectStore):
        def upload(self, path, file_obj, content_type=None):
            return path

    with pytest.raises(TypeError):
        UploadOnly()
    assert isinstance(object_store, ObjectStore)
