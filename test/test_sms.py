"""
SMS relay tests: stub bookkeeping rows, HTTP relay and the send endpoint.
"""
import pytest

from conftest import RecordingSmsRelay, auth_headers
from core.exceptions import ValidationError
from database.models import Message
from services import sms_service
from services.sms_service import HttpSmsRelay, SmsRelay, StubSmsRelay, send_sms_best_effort
from services.user_service import UserService
import config


def test_stub_writes_system_bookkeeping_row(database, db_session):
    relay = StubSmsRelay(database)

    result = relay.send_sms("+244900000001", "Seu documento foi aprovado", "document", db=db_session)

    assert result.success is True
    row = db_session.get(Message, result.sms_id)
    assert row.sender_id == config.SMS_SYSTEM_SENDER_ID
    assert row.receiver_id is None
    assert row.is_sms is True
    assert row.sms_status == "sent"
    assert row.group_id.startswith("sms_document_")
    assert row.content == "Seu documento foi aprovado"


def test_stub_uses_own_session_without_caller_session(database, db_session):
    result = StubSmsRelay(database).send_sms("+244900000001", "Oi", "general")

    assert result.sms_id is not None
    assert db_session.query(Message).filter(Message.id == result.sms_id).count() == 1


@pytest.mark.parametrize("phone,message", [("", "Oi"), ("+244900000001", ""), (None, None)])
def test_stub_requires_phone_and_message(database, phone, message):
    with pytest.raises(ValidationError):
        StubSmsRelay(database).send_sms(phone, message, "general")


def test_stub_row_failure_still_reports_success(database, db_session):
    # Unknown sender violates the foreign key, so the bookkeeping row cannot be written
    relay = StubSmsRelay(database, system_sender_id="no-such-user")

    result = relay.send_sms("+244900000001", "Oi", "general", db=db_session)

    assert result.success is True
    assert result.sms_id is None
    assert db_session.query(Message).count() == 0


def test_bookkeeping_rows_do_not_form_conversations(client, database, db_session, student, monkeypatch):
    monkeypatch.setattr(config, "sms_relay", StubSmsRelay(database))

    response = client.post(
        "/api/sms/send",
        json={"phone": student.phone, "message": "Lembrete", "type": "reminder"},
        headers=auth_headers(student),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["sms_id"]
    response = client.get("/api/messages/conversations", headers=auth_headers(student))
    assert response.json() == []


def test_send_endpoint_rejects_missing_fields(client, student):
    response = client.post("/api/sms/send", json={"message": "Oi"}, headers=auth_headers(student))

    assert response.status_code == 400


def test_send_endpoint_requires_authentication(client):
    response = client.post("/api/sms/send", json={"phone": "+1", "message": "Oi"})

    assert response.status_code in (401, 403)


def test_best_effort_swallows_relay_errors():
    assert send_sms_best_effort(RecordingSmsRelay(fail=True), "+1", "Oi", "general") is False


def test_best_effort_skips_missing_phone_or_relay():
    relay = RecordingSmsRelay()

    assert send_sms_best_effort(relay, None, "Oi", "general") is False
    assert send_sms_best_effort(None, "+1", "Oi", "general") is False
    assert relay.sent == []


def test_http_relay_posts_json(monkeypatch):
    calls = []

    class FakeResponse:
        def raise_for_status(self):
            pass

        def json(self):
            return {"success": True, "sms_id": "abc"}

    def fake_post(url, json=None, headers=None, timeout=None):
        calls.append((url, json, headers, timeout))
        return FakeResponse()

    monkeypatch.setattr(sms_service.requests, "post", fake_post)
    relay = HttpSmsRelay("https://relay.example/send", token="t0k", timeout=5)

    result = relay.send_sms("+1", "Oi", "general")

    assert result.success is True
    assert result.sms_id == "abc"
    [(url, payload, headers, timeout)] = calls
    assert url == "https://relay.example/send"
    assert payload == {"phone": "+1", "message": "Oi", "type": "general"}
    assert headers["Authorization"] == "Bearer t0k"
    assert timeout == 5


# ============================================================================
# Direct SMS to a user
# ============================================================================

def test_direct_sms_requires_phone(db_session, other_student, sms_relay):
    with pytest.raises(ValidationError):
        UserService.send_sms(db_session, other_student.id, "Oi", relay=sms_relay)


def test_direct_sms_length_cap(db_session, student, sms_relay):
    with pytest.raises(ValidationError):
        UserService.send_sms(db_session, student.id, "x" * (config.SMS_MAX_LENGTH + 1), relay=sms_relay)

    result = UserService.send_sms(db_session, student.id, "x" * config.SMS_MAX_LENGTH, relay=sms_relay)
    assert result.success is True
    assert len(sms_relay.sent) == 1


def test_direct_sms_endpoint_staff_only(client, student, officer, sms_relay):
    response = client.post(f"/api/users/{student.id}/sms", json={"message": "Oi"}, headers=auth_headers(student))
    assert response.status_code == 403

    response = client.post(f"/api/users/{student.id}/sms", json={"message": "Oi"}, headers=auth_headers(officer))
    assert response.status_code == 200
    assert sms_relay.sent == [(student.phone, "Oi", "admin_message")]


@pytest.mark.parametrize("payload", [
    {"message": "Oi"},
    {"phone": "  ", "message": "Oi"},
    {"phone": "+244900000001"},
    {"phone": "+244900000001", "message": ""},
])
def test_send_endpoint_validates_before_relay(client, student, sms_relay, payload):
    response = client.post("/api/sms/send", json=payload, headers=auth_headers(student))

    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"
    assert sms_relay.sent == []


def test_relay_interface_requires_send_sms():
    class Incomplete(SmsRelay):
        pass

    with pytest.raises(TypeError):
        Incomplete()
