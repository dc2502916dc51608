"""
Announcement publishing, expiry and viewed tracking.
"""
from datetime import timedelta

import pytest

from conftest import RecordingSmsRelay, auth_headers
from core.exceptions import ValidationError
from core.utils import utcnow
from database.models import AnnouncementRecipient, Notification, NotificationType
from services.announcement_service import AnnouncementService


def test_create_fans_out_recipients_and_notifications(db_session, officer, student, other_student, sms_relay):
    announcement = AnnouncementService.create(
        db_session, officer.id, "Feriado", "Embaixada fechada na sexta", "high", sms_relay=sms_relay
    )

    recipients = db_session.query(AnnouncementRecipient).filter(
        AnnouncementRecipient.announcement_id == announcement.id
    ).all()
    # Author and the SMS system user are not recipients
    assert {r.user_id for r in recipients} == {student.id, other_student.id}
    assert all(not r.viewed and not r.sms_delivered for r in recipients)
    notifications = db_session.query(Notification).filter(Notification.type == NotificationType.ANNOUNCEMENT).all()
    assert {n.user_id for n in notifications} == {student.id, other_student.id}
    assert sms_relay.sent == []


def test_send_as_sms_marks_delivery_for_recipients_with_phone(db_session, officer, student, other_student, sms_relay):
    announcement = AnnouncementService.create(
        db_session, officer.id, "Feriado", "Fechado", send_as_sms=True, sms_relay=sms_relay
    )

    assert sms_relay.sent == [(student.phone, "Feriado: Fechado", "announcement")]
    delivered = {
        r.user_id: r.sms_delivered
        for r in db_session.query(AnnouncementRecipient).filter(
            AnnouncementRecipient.announcement_id == announcement.id
        )
    }
    assert delivered == {student.id: True, other_student.id: False}


def test_sms_failure_leaves_announcement_published(db_session, officer, student):
    announcement = AnnouncementService.create(
        db_session, officer.id, "Aviso", "Texto", send_as_sms=True, sms_relay=RecordingSmsRelay(fail=True)
    )

    recipient = db_session.get(AnnouncementRecipient, (announcement.id, student.id))
    assert recipient.sms_delivered is False


def test_create_validates_fields(db_session, officer):
    with pytest.raises(ValidationError):
        AnnouncementService.create(db_session, officer.id, " ", "Texto")
    with pytest.raises(ValidationError):
        AnnouncementService.create(db_session, officer.id, "Título", "Texto", priority="urgent")


def test_list_active_excludes_expired(db_session, officer):
    now = utcnow()
    AnnouncementService.create(db_session, officer.id, "Antigo", "x", expires_at=now - timedelta(days=1))
    current = AnnouncementService.create(db_session, officer.id, "Atual", "y", expires_at=now + timedelta(days=1))
    forever = AnnouncementService.create(db_session, officer.id, "Sempre", "z")

    active = AnnouncementService.list_active(db_session, now)

    assert {a.id for a in active} == {current.id, forever.id}


def test_mark_viewed(db_session, officer, student):
    first = AnnouncementService.create(db_session, officer.id, "Um", "x")
    AnnouncementService.create(db_session, officer.id, "Dois", "y")

    assert AnnouncementService.mark_viewed(db_session, student.id, [first.id]) == 1
    assert AnnouncementService.mark_viewed(db_session, student.id, [first.id]) == 0
    assert AnnouncementService.mark_viewed(db_session, student.id, []) == 0
    assert AnnouncementService.mark_viewed(db_session, student.id) == 1


def test_announcement_api_flow(client, officer, student):
    response = client.post(
        "/api/announcements",
        json={"title": "Reunião", "content": "Segunda às 10h", "priority": "medium"},
        headers=auth_headers(student),
    )
    assert response.status_code == 403

    response = client.post(
        "/api/announcements",
        json={"title": "Reunião", "content": "Segunda às 10h", "priority": "medium"},
        headers=auth_headers(officer),
    )
    assert response.status_code == 201
    announcement_id = response.json()["id"]

    response = client.get("/api/announcements", headers=auth_headers(student))
    [listed] = response.json()
    assert listed["title"] == "Reunião"

    response = client.get("/api/announcements/all", headers=auth_headers(officer))
    [summary] = response.json()
    assert summary["recipient_count"] == 1
    assert summary["viewed_count"] == 1

    response = client.put(
        f"/api/announcements/{announcement_id}",
        json={"title": "Reunião adiada"},
        headers=auth_headers(officer),
    )
    assert response.json()["title"] == "Reunião adiada"

    assert client.delete(f"/api/announcements/{announcement_id}", headers=auth_headers(officer)).status_code == 200
    assert client.get("/api/announcements", headers=auth_headers(student)).json() == []


def test_invalid_expiry_date_returns_400(client, officer):
    response = client.post(
        "/api/announcements",
        json={"title": "A", "content": "B", "expires_at": "not-a-date"},
        headers=auth_headers(officer),
    )

    assert response.status_code == 400


def test_create_persists_one_recipient_row_per_student(database, db_session, officer, student, other_student):
    AnnouncementService.create(db_session, officer.id, "Aviso", "Texto")

    fresh = database.SessionLocal()
    try:
        assert fresh.query(AnnouncementRecipient).count() == 2
    finally:
        fresh.close()
