"""
Conversation aggregation: groups a user's flat, bidirectional message rows
into per-counterpart threads.

The grouping functions are pure and operate on MessageRow records, so they
can be used without a database. ConversationService does the loading.
"""
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from core.exceptions import NotFoundError, StoreError
from core.logger import logger
from core.utils import isoformat
from database.models import Message, User

UNKNOWN_USER_NAME = "Usuário"
EMPTY_THREAD_PREVIEW = "Inicie a conversa"


# ============================================================================
# Records
# ============================================================================

@dataclass
class MessageRow:
    """A message with the sender/receiver join flattened to optional fields."""
    id: str
    sender_id: str
    receiver_id: Optional[str]
    content: str
    created_at: datetime
    read: bool = False
    is_sms: bool = False
    sender_name: Optional[str] = None
    sender_role: Optional[str] = None
    receiver_name: Optional[str] = None
    receiver_role: Optional[str] = None

    @classmethod
    def from_model(cls, message: Message) -> "MessageRow":
        sender = message.sender
        receiver = message.receiver
        return cls(
            id=message.id,
            sender_id=message.sender_id,
            receiver_id=message.receiver_id,
            content=message.content,
            created_at=message.created_at,
            read=bool(message.read),
            is_sms=bool(message.is_sms),
            sender_name=sender.full_name if sender else None,
            sender_role=sender.role.value if sender else None,
            receiver_name=receiver.full_name if receiver else None,
            receiver_role=receiver.role.value if receiver else None,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sender_id": self.sender_id,
            "receiver_id": self.receiver_id,
            "content": self.content,
            "created_at": isoformat(self.created_at),
            "read": self.read,
            "is_sms": self.is_sms,
        }


@dataclass
class Counterpart:
    id: str
    full_name: str
    role: Optional[str] = None
    email: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "Counterpart":
        return cls(id=user.id, full_name=user.full_name, role=user.role.value, email=user.email)

    def to_dict(self) -> dict:
        return {"id": self.id, "full_name": self.full_name, "role": self.role, "email": self.email}


@dataclass
class Conversation:
    counterpart: Counterpart
    messages: List[MessageRow] = field(default_factory=list)
    last_message: Optional[MessageRow] = None
    unread_count: int = 0

    @property
    def preview(self) -> str:
        return self.last_message.content if self.last_message else EMPTY_THREAD_PREVIEW

    def to_dict(self, include_messages: bool = True) -> dict:
        data = {
            "counterpart": self.counterpart.to_dict(),
            "last_message": self.last_message.to_dict() if self.last_message else None,
            "preview": self.preview,
            "unread_count": self.unread_count,
        }
        if include_messages:
            data["messages"] = [m.to_dict() for m in self.messages]
        return data


# ============================================================================
# Aggregation
# ============================================================================

def _embedded_counterpart(row: MessageRow, counterpart_id: str) -> Counterpart:
    if row.sender_id == counterpart_id:
        name, role = row.sender_name, row.sender_role
    else:
        name, role = row.receiver_name, row.receiver_role
    return Counterpart(id=counterpart_id, full_name=name or UNKNOWN_USER_NAME, role=role)


def build_conversations(
    current_user_id: str,
    messages: Iterable[MessageRow],
    known_users: Optional[Dict[str, Counterpart]] = None
) -> List[Conversation]:
    """
    Group messages into conversations, newest conversation first.

    Args:
        current_user_id: The viewing user
        messages: Rows where the user is sender or receiver, in any order
        known_users: Optional counterpart records keyed by id; preferred over
            names embedded in the message join

    Returns:
        Conversations sorted by last message timestamp, descending
    """
    known_users = known_users or {}
    grouped: Dict[str, List[tuple]] = {}
    counterparts: Dict[str, Counterpart] = {}

    for position, row in enumerate(messages):
        if current_user_id not in (row.sender_id, row.receiver_id):
            continue
        counterpart_id = row.receiver_id if row.sender_id == current_user_id else row.sender_id
        if counterpart_id is None:
            # Broadcast/system rows have no 1:1 thread
            continue

        grouped.setdefault(counterpart_id, []).append((row.created_at, position, row))

        current = counterparts.get(counterpart_id)
        if current is None:
            counterparts[counterpart_id] = known_users.get(counterpart_id) or _embedded_counterpart(row, counterpart_id)
        elif current.full_name == UNKNOWN_USER_NAME and counterpart_id not in known_users:
            candidate = _embedded_counterpart(row, counterpart_id)
            if candidate.full_name != UNKNOWN_USER_NAME:
                counterparts[counterpart_id] = candidate

    conversations = []
    for counterpart_id, entries in grouped.items():
        # Input position breaks timestamp ties so equal timestamps keep a deterministic order
        entries.sort(key=lambda entry: (entry[0], entry[1]))
        thread = [row for _, _, row in entries]
        conversations.append(Conversation(
            counterpart=counterparts[counterpart_id],
            messages=thread,
            last_message=thread[-1],
            unread_count=sum(1 for m in thread if m.receiver_id == current_user_id and not m.read),
        ))

    conversations.sort(key=lambda c: c.last_message.created_at, reverse=True)
    return conversations


def empty_conversation(counterpart: Counterpart) -> Conversation:
    """Thread for a counterpart picked from the "new conversation" list."""
    return Conversation(counterpart=counterpart)


def with_selected(conversations: List[Conversation], counterpart: Counterpart) -> List[Conversation]:
    """Ensure the selected counterpart is listed, prepending an empty thread if needed."""
    if any(c.counterpart.id == counterpart.id for c in conversations):
        return conversations
    return [empty_conversation(counterpart)] + conversations


def filter_conversations(conversations: List[Conversation], query: Optional[str]) -> List[Conversation]:
    """Case-insensitive search on counterpart name."""
    if not query or not query.strip():
        return conversations
    needle = query.strip().lower()
    return [c for c in conversations if needle in c.counterpart.full_name.lower()]


class ConversationSelection:
    """
    Tracks which counterpart a live client has open.

    Every select() issues a new token; results computed for an older token
    must be discarded by the caller (is_current returns False).
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._token = 0
        self._counterpart_id: Optional[str] = None

    def select(self, counterpart_id: Optional[str]) -> int:
        with self._lock:
            self._token += 1
            self._counterpart_id = counterpart_id
            return self._token

    @property
    def counterpart_id(self) -> Optional[str]:
        return self._counterpart_id

    @property
    def token(self) -> int:
        return self._token

    def is_current(self, token: int) -> bool:
        return token == self._token


# ============================================================================
# Loading
# ============================================================================

class ConversationService:
    """Loads a user's message history and aggregates it."""

    @staticmethod
    def load_rows(db: Session, user_id: str) -> List[MessageRow]:
        """All rows where the user is sender or receiver (no pagination)."""
        try:
            messages = (
                db.query(Message)
                .options(joinedload(Message.sender), joinedload(Message.receiver))
                .filter(or_(Message.sender_id == user_id, Message.receiver_id == user_id))
                .order_by(Message.created_at, Message.id)
                .all()
            )
        except SQLAlchemyError as e:
            logger.error(f"Failed to load messages for user {user_id}: {e}", exc_info=True)
            raise StoreError("load_messages", e)
        return [MessageRow.from_model(m) for m in messages]

    @staticmethod
    def list_for_user(db: Session, user_id: str, search: Optional[str] = None) -> List[Conversation]:
        rows = ConversationService.load_rows(db, user_id)
        return filter_conversations(build_conversations(user_id, rows), search)

    @staticmethod
    def thread(db: Session, user_id: str, counterpart_id: str) -> Conversation:
        """
        The conversation with one counterpart; an empty thread when no
        messages exist yet.

        Raises:
            NotFoundError: counterpart has no messages and no user record
        """
        for conversation in ConversationService.list_for_user(db, user_id):
            if conversation.counterpart.id == counterpart_id:
                return conversation

        counterpart = db.get(User, counterpart_id)
        if counterpart is None or counterpart.is_system:
            raise NotFoundError("User", counterpart_id)
        return empty_conversation(Counterpart.from_user(counterpart))
