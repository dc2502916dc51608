"""
Support ticket routes.
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from pydantic import BaseModel
from typing import Optional

from database.models import User
from auth.dependencies import get_current_user, get_db_session, require_staff
from services.support_service import SupportService


router = APIRouter(prefix="/api/support/tickets", tags=["support"])


class TicketRequest(BaseModel):
    subject: str
    description: str
    category: str
    priority: Optional[str] = "medium"


class TicketStatusRequest(BaseModel):
    status: str


class TicketResponseRequest(BaseModel):
    response: str


class TicketAssignRequest(BaseModel):
    assigned_to: Optional[str] = None


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_ticket(
    body: TicketRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    ticket = SupportService.create_ticket(
        db, current_user.id, body.subject, body.description, body.category, body.priority
    )
    return SupportService.serialize(ticket)


@router.get("")
async def list_tickets(
    status_filter: Optional[str] = Query(None, alias="status"),
    priority: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    tickets = SupportService.list_tickets(db, current_user, status=status_filter, priority=priority)
    return [SupportService.serialize(t) for t in tickets]


@router.get("/{ticket_id}")
async def get_ticket(
    ticket_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    return SupportService.serialize(SupportService.get(db, ticket_id, current_user))


@router.patch("/{ticket_id}/status")
async def update_ticket_status(
    ticket_id: str,
    body: TicketStatusRequest,
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db_session)
):
    return SupportService.serialize(SupportService.update_status(db, ticket_id, body.status, current_user.id))


@router.post("/{ticket_id}/respond")
async def respond_to_ticket(
    ticket_id: str,
    body: TicketResponseRequest,
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db_session)
):
    """Notify the ticket owner (and SMS them when a phone is on file)."""
    sms_sent = SupportService.respond(db, ticket_id, current_user.id, body.response)
    ticket = SupportService.get(db, ticket_id, current_user)
    return {"ticket": SupportService.serialize(ticket), "sms_sent": sms_sent}


@router.patch("/{ticket_id}/assign")
async def assign_ticket(
    ticket_id: str,
    body: TicketAssignRequest,
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db_session)
):
    return SupportService.serialize(SupportService.assign(db, ticket_id, body.assigned_to, current_user.id))
