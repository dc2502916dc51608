"""
Support ticket tests.
"""
import pytest

from conftest import RecordingSmsRelay, auth_headers
from core.exceptions import PermissionDenied, ValidationError
from database.models import Notification, NotificationType, SupportTicket, TicketPriority, TicketStatus
from services.support_service import SupportService, filter_tickets


def test_create_ticket_notifies_every_admin(db_session, student, admin, make_user):
    second_admin = make_user("admin2@embassy.gov", "Eva Admin", role=admin.role)

    ticket = SupportService.create_ticket(db_session, student.id, "Visto", "Meu visto expira", "documentos", "high")

    assert ticket.status == TicketStatus.OPEN
    assert ticket.priority == TicketPriority.HIGH
    notifications = db_session.query(Notification).filter(Notification.type == NotificationType.SUPPORT_TICKET).all()
    assert {n.user_id for n in notifications} == {admin.id, second_admin.id}
    assert all(n.title == "Novo Ticket de Suporte" for n in notifications)
    assert all(n.message == "Novo ticket: Visto" for n in notifications)


@pytest.mark.parametrize("subject,description,category", [
    ("", "d", "c"),
    ("s", "  ", "c"),
    ("s", "d", None),
])
def test_create_ticket_requires_fields(db_session, student, subject, description, category):
    with pytest.raises(ValidationError):
        SupportService.create_ticket(db_session, student.id, subject, description, category)

    assert db_session.query(SupportTicket).count() == 0


def test_respond_notifies_owner_sends_sms_and_moves_in_progress(db_session, student, officer, sms_relay):
    ticket = SupportService.create_ticket(db_session, student.id, "Bolsa", "Atraso", "financeiro")

    sms_sent = SupportService.respond(db_session, ticket.id, officer.id, "Estamos verificando", sms_relay=sms_relay)

    assert sms_sent is True
    assert sms_relay.sent == [
        (student.phone, 'Resposta ao seu ticket "Bolsa": Estamos verificando', "support_response")
    ]
    [notification] = db_session.query(Notification).filter(Notification.user_id == student.id).all()
    assert notification.title == "Resposta do Suporte: Bolsa"
    assert notification.type == NotificationType.SUPPORT_RESPONSE
    assert db_session.get(SupportTicket, ticket.id).status == TicketStatus.IN_PROGRESS


def test_respond_without_phone_or_with_failing_relay(db_session, student, other_student, officer):
    no_phone = SupportService.create_ticket(db_session, other_student.id, "A", "B", "C")
    with_phone = SupportService.create_ticket(db_session, student.id, "A", "B", "C")

    assert SupportService.respond(db_session, no_phone.id, officer.id, "ok", sms_relay=RecordingSmsRelay()) is False
    assert SupportService.respond(db_session, with_phone.id, officer.id, "ok", sms_relay=RecordingSmsRelay(fail=True)) is False
    assert db_session.get(SupportTicket, with_phone.id).status == TicketStatus.IN_PROGRESS


def test_update_status_validates(db_session, student, officer):
    ticket = SupportService.create_ticket(db_session, student.id, "A", "B", "C")

    assert SupportService.update_status(db_session, ticket.id, "resolved", officer.id).status == TicketStatus.RESOLVED
    with pytest.raises(ValidationError):
        SupportService.update_status(db_session, ticket.id, "archived", officer.id)


def test_assign_only_to_staff(db_session, student, other_student, officer):
    ticket = SupportService.create_ticket(db_session, student.id, "A", "B", "C")

    with pytest.raises(ValidationError):
        SupportService.assign(db_session, ticket.id, other_student.id, officer.id)
    assert SupportService.assign(db_session, ticket.id, officer.id, officer.id).assigned_to == officer.id


def test_students_cannot_read_others_tickets(db_session, student, other_student, officer):
    ticket = SupportService.create_ticket(db_session, student.id, "A", "B", "C")

    with pytest.raises(PermissionDenied):
        SupportService.get(db_session, ticket.id, other_student)
    assert SupportService.get(db_session, ticket.id, officer).id == ticket.id
    assert SupportService.list_tickets(db_session, other_student) == []


def test_filter_tickets():
    tickets = [
        SupportTicket(status=TicketStatus.OPEN, priority=TicketPriority.LOW),
        SupportTicket(status=TicketStatus.OPEN, priority=TicketPriority.HIGH),
        SupportTicket(status=TicketStatus.CLOSED, priority=TicketPriority.HIGH),
    ]

    assert len(filter_tickets(tickets, "open", None)) == 2
    assert len(filter_tickets(tickets, "all", "high")) == 2
    assert len(filter_tickets(tickets, "open", "high")) == 1


def test_ticket_api_flow(client, student, officer, admin, sms_relay):
    response = client.post(
        "/api/support/tickets",
        json={"subject": "Passaporte", "description": "Perdi", "category": "documentos"},
        headers=auth_headers(student),
    )
    assert response.status_code == 201
    ticket_id = response.json()["id"]

    response = client.post(
        f"/api/support/tickets/{ticket_id}/respond",
        json={"response": "Compareça à embaixada"},
        headers=auth_headers(student),
    )
    assert response.status_code == 403

    response = client.post(
        f"/api/support/tickets/{ticket_id}/respond",
        json={"response": "Compareça à embaixada"},
        headers=auth_headers(officer),
    )
    assert response.status_code == 200
    assert response.json()["sms_sent"] is True
    assert response.json()["ticket"]["status"] == "in_progress"

    response = client.get("/api/support/tickets?status=in_progress", headers=auth_headers(student))
    assert [t["id"] for t in response.json()] == [ticket_id]

    response = client.patch(
        f"/api/support/tickets/{ticket_id}/status",
        json={"status": "closed"},
        headers=auth_headers(admin),
    )
    assert response.json()["status"] == "closed"
