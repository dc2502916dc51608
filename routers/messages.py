"""
Messaging routes: conversation list, threads, sending and read receipts.
Students and staff share the same endpoints and read-receipt rule.
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from pydantic import BaseModel
from typing import Optional

from database.models import User
from auth.dependencies import get_current_user, get_db_session
from services.conversation_service import ConversationService, Counterpart, MessageRow, with_selected
from services.message_service import MessageService
from services.user_service import UserService


router = APIRouter(prefix="/api/messages", tags=["messages"])


class SendMessageRequest(BaseModel):
    """Receiver is picked by id or looked up by e-mail."""
    content: str
    channel: str = "inapp"
    receiver_id: Optional[str] = None
    email: Optional[str] = None


class StartConversationRequest(BaseModel):
    receiver_id: Optional[str] = None
    email: Optional[str] = None


@router.get("/conversations")
async def list_conversations(
    search: Optional[str] = Query(None),
    selected: Optional[str] = Query(None, description="Counterpart picked for a new conversation"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    conversations = ConversationService.list_for_user(db, current_user.id, search=search)
    if selected:
        counterpart = Counterpart.from_user(UserService.get(db, selected))
        conversations = with_selected(conversations, counterpart)
    return [c.to_dict(include_messages=False) for c in conversations]


@router.get("/conversations/{counterpart_id}")
async def open_conversation(
    counterpart_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """Return the thread and mark the counterpart's messages to the caller as read."""
    marked = MessageService.mark_conversation_read(db, current_user.id, counterpart_id)
    conversation = ConversationService.thread(db, current_user.id, counterpart_id)
    data = conversation.to_dict()
    data["marked_read"] = marked
    return data


@router.post("/conversations/{counterpart_id}/read")
async def mark_conversation_read(
    counterpart_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    return {"updated": MessageService.mark_conversation_read(db, current_user.id, counterpart_id)}


@router.post("", status_code=status.HTTP_201_CREATED)
async def send_message(
    body: SendMessageRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    message = MessageService.send(
        db,
        sender_id=current_user.id,
        content=body.content,
        channel=body.channel,
        receiver_id=body.receiver_id,
        email=body.email,
    )
    return MessageRow.from_model(message).to_dict()


@router.post("/start", status_code=status.HTTP_201_CREATED)
async def start_conversation(
    body: StartConversationRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """Open a thread with a greeting message."""
    message = MessageService.start_conversation(
        db, current_user.id, receiver_id=body.receiver_id, email=body.email
    )
    return MessageRow.from_model(message).to_dict()


@router.get("/unread-count")
async def unread_count(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    return {"unread": MessageService.unread_total(db, current_user.id)}


@router.delete("/{message_id}")
async def delete_message(
    message_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    MessageService.delete_message(db, message_id, current_user.id)
    return {"status": "success", "message": "Message deleted"}
