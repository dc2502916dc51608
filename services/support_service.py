"""
Support tickets: creation with admin notifications, staff responses and
status updates.
"""
from typing import Iterable, List, Optional, Union

from sqlalchemy.orm import Session

from core.exceptions import NotFoundError, PermissionDenied, ValidationError
from core.logger import logger
from core.utils import isoformat, utcnow
from core.validators import require_text
from database.connection import commit_or_raise
from database.models import (
    NotificationType, SupportTicket, TicketPriority, TicketStatus, User
)
from services.audit_service import AuditService
from services.notification_service import NotificationService
from services.sms_service import SmsRelay, send_sms_best_effort
import config

SMS_SUPPORT_TYPE = "support_response"


def parse_ticket_status(status: Union[str, TicketStatus]) -> TicketStatus:
    try:
        return TicketStatus(status)
    except ValueError:
        raise ValidationError(f"Invalid status: {status}", field="status")


def parse_ticket_priority(priority: Union[str, TicketPriority, None]) -> TicketPriority:
    if priority is None:
        return TicketPriority.MEDIUM
    try:
        return TicketPriority(priority)
    except ValueError:
        raise ValidationError(f"Invalid priority: {priority}", field="priority")


def filter_tickets(
    tickets: Iterable[SupportTicket],
    status: Optional[str] = None,
    priority: Optional[str] = None
) -> List[SupportTicket]:
    """Status/priority filters; "all" or None disables a filter."""
    result = []
    for ticket in tickets:
        if status and status != "all" and ticket.status.value != status:
            continue
        if priority and priority != "all" and ticket.priority.value != priority:
            continue
        result.append(ticket)
    return result


class SupportService:
    """Service for support tickets."""

    @staticmethod
    def create_ticket(
        db: Session,
        user_id: str,
        subject: str,
        description: str,
        category: str,
        priority: Union[str, TicketPriority, None] = None
    ) -> SupportTicket:
        """
        Open a ticket and notify every admin.

        Raises:
            ValidationError: subject, description or category is blank
        """
        ticket = SupportTicket(
            user_id=user_id,
            subject=require_text(subject, "subject"),
            description=require_text(description, "description"),
            category=require_text(category, "category"),
            priority=parse_ticket_priority(priority),
            status=TicketStatus.OPEN,
        )
        db.add(ticket)
        commit_or_raise(db, "create_ticket")
        logger.info(f"Support ticket {ticket.id} opened by {user_id}")

        NotificationService.notify_admins(
            db,
            title="Novo Ticket de Suporte",
            message=f"Novo ticket: {ticket.subject}",
            notification_type=NotificationType.SUPPORT_TICKET,
            sender_id=user_id,
        )
        return ticket

    @staticmethod
    def get(db: Session, ticket_id: str, viewer: User) -> SupportTicket:
        ticket = db.get(SupportTicket, ticket_id)
        if ticket is None:
            raise NotFoundError("Ticket", ticket_id)
        if not viewer.is_staff and ticket.user_id != viewer.id:
            raise PermissionDenied()
        return ticket

    @staticmethod
    def list_tickets(
        db: Session,
        viewer: User,
        status: Optional[str] = None,
        priority: Optional[str] = None
    ) -> List[SupportTicket]:
        """Own tickets for students, all tickets for staff; newest first."""
        query = db.query(SupportTicket)
        if not viewer.is_staff:
            query = query.filter(SupportTicket.user_id == viewer.id)
        tickets = query.order_by(SupportTicket.created_at.desc()).all()
        return filter_tickets(tickets, status, priority)

    @staticmethod
    def update_status(
        db: Session,
        ticket_id: str,
        status: Union[str, TicketStatus],
        staff_id: Optional[str] = None
    ) -> SupportTicket:
        ticket = db.get(SupportTicket, ticket_id)
        if ticket is None:
            raise NotFoundError("Ticket", ticket_id)
        ticket.status = parse_ticket_status(status)
        ticket.updated_at = utcnow()
        commit_or_raise(db, "update_ticket_status")
        AuditService.log_action(
            db, "update", user_id=staff_id, table_name="support_tickets",
            record_id=ticket_id, metadata={"status": ticket.status.value}
        )
        return ticket

    @staticmethod
    def assign(db: Session, ticket_id: str, assignee_id: Optional[str], staff_id: str) -> SupportTicket:
        ticket = db.get(SupportTicket, ticket_id)
        if ticket is None:
            raise NotFoundError("Ticket", ticket_id)
        if assignee_id is not None:
            assignee = db.get(User, assignee_id)
            if assignee is None or not assignee.is_staff:
                raise ValidationError("Tickets can only be assigned to staff", field="assigned_to")
        ticket.assigned_to = assignee_id
        ticket.updated_at = utcnow()
        commit_or_raise(db, "assign_ticket")
        AuditService.log_action(db, "update", user_id=staff_id, table_name="support_tickets", record_id=ticket_id)
        return ticket

    @staticmethod
    def respond(
        db: Session,
        ticket_id: str,
        staff_id: str,
        response: str,
        sms_relay: Optional[SmsRelay] = None
    ) -> bool:
        """
        Answer a ticket: notification to the owner, best-effort SMS when the
        owner has a phone, then status in_progress.

        Returns:
            True if an SMS was relayed
        """
        text = require_text(response, "response")
        ticket = db.get(SupportTicket, ticket_id)
        if ticket is None:
            raise NotFoundError("Ticket", ticket_id)
        owner = db.get(User, ticket.user_id)
        if owner is None:
            raise NotFoundError("User", ticket.user_id)

        NotificationService.create(
            db,
            user_id=owner.id,
            title=f"Resposta do Suporte: {ticket.subject}",
            message=text,
            notification_type=NotificationType.SUPPORT_RESPONSE,
            sender_id=staff_id,
            metadata={"ticket_id": ticket.id},
        )

        relay = sms_relay if sms_relay is not None else config.sms_relay
        sms_sent = send_sms_best_effort(
            relay,
            owner.phone,
            f'Resposta ao seu ticket "{ticket.subject}": {text}',
            SMS_SUPPORT_TYPE,
            db=db,
        )

        SupportService.update_status(db, ticket.id, TicketStatus.IN_PROGRESS, staff_id=staff_id)
        return sms_sent

    @staticmethod
    def serialize(ticket: SupportTicket) -> dict:
        return {
            "id": ticket.id,
            "user_id": ticket.user_id,
            "user_name": ticket.user.full_name if ticket.user else None,
            "subject": ticket.subject,
            "description": ticket.description,
            "category": ticket.category,
            "priority": ticket.priority.value,
            "status": ticket.status.value,
            "assigned_to": ticket.assigned_to,
            "created_at": isoformat(ticket.created_at),
            "updated_at": isoformat(ticket.updated_at),
        }
