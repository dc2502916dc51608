"""
Message dispatch: sending, read receipts and deletion.

A send is not a single transaction. The message row is committed first, the
receiver's notification second, and the SMS relay call last; a failure after
the message commit never undoes the message.
"""
from typing import Optional, Union

from sqlalchemy import func
from sqlalchemy.orm import Session

from core.change_feed import note_change
from core.exceptions import NotFoundError, PermissionDenied, RecipientNotFound, ValidationError
from core.logger import logger
from core.validators import require_text
from database.connection import commit_or_raise
from database.models import Message, MessageChannel, NotificationType, User
from services.notification_service import NotificationService
from services.sms_service import SmsRelay, send_sms_best_effort
import config

SMS_MESSAGE_TYPE = "admin_message"


def parse_channel(channel: Union[str, MessageChannel, None]) -> MessageChannel:
    if channel is None:
        return MessageChannel.INAPP
    try:
        return MessageChannel(channel)
    except ValueError:
        raise ValidationError(f"Invalid channel: {channel}", field="channel")


class MessageService:
    """Service for sending and managing messages."""

    @staticmethod
    def resolve_recipient(
        db: Session,
        receiver_id: Optional[str] = None,
        email: Optional[str] = None
    ) -> User:
        """
        Find the receiver by id (picked from a list) or by e-mail.

        E-mail lookup is an exact match on the trimmed address.

        Raises:
            RecipientNotFound: nothing matched
            ValidationError: neither id nor e-mail given
        """
        if receiver_id:
            user = db.get(User, receiver_id)
            if user is None or user.is_system:
                raise RecipientNotFound()
            return user

        if email is not None and email.strip():
            address = email.strip()
            user = db.query(User).filter(User.email == address, User.is_system == False).first()  # noqa: E712
            if user is None:
                raise RecipientNotFound(address)
            return user

        raise ValidationError("Recipient id or email is required", field="receiver")

    @staticmethod
    def send(
        db: Session,
        sender_id: str,
        content: str,
        channel: Union[str, MessageChannel, None] = MessageChannel.INAPP,
        receiver_id: Optional[str] = None,
        email: Optional[str] = None,
        sms_relay: Optional[SmsRelay] = None
    ) -> Message:
        """
        Send a message and fan out its side effects.

        Args:
            db: Database session
            sender_id: Sending user
            content: Message text (trimmed, must not be empty)
            channel: inapp or sms
            receiver_id: Receiver picked directly
            email: Receiver e-mail, used when receiver_id is not given
            sms_relay: Relay for the sms channel (config.sms_relay by default)

        Returns:
            The persisted Message
        """
        text = require_text(content, "content")
        chosen = parse_channel(channel)
        receiver = MessageService.resolve_recipient(db, receiver_id=receiver_id, email=email)
        is_sms = chosen == MessageChannel.SMS

        message = Message(
            sender_id=sender_id,
            receiver_id=receiver.id,
            content=text,
            read=False,
            is_sms=is_sms,
        )
        db.add(message)
        commit_or_raise(db, "send_message")
        logger.info(f"Message {message.id} sent from {sender_id} to {receiver.id} via {chosen.value}")

        NotificationService.create(
            db,
            user_id=receiver.id,
            title="Novo SMS" if is_sms else "Nova Mensagem",
            message=text,
            notification_type=NotificationType.SMS if is_sms else NotificationType.MESSAGE,
            sender_id=sender_id,
        )

        if is_sms:
            relay = sms_relay if sms_relay is not None else config.sms_relay
            if receiver.phone:
                send_sms_best_effort(relay, receiver.phone, text, SMS_MESSAGE_TYPE, db=db)
            else:
                logger.info(f"Receiver {receiver.id} has no phone; SMS skipped")

        return message

    @staticmethod
    def start_conversation(
        db: Session,
        sender_id: str,
        receiver_id: Optional[str] = None,
        email: Optional[str] = None,
        greeting: Optional[str] = None
    ) -> Message:
        """Open a thread with a greeting message."""
        return MessageService.send(
            db,
            sender_id=sender_id,
            content=greeting or config.CONVERSATION_GREETING,
            channel=MessageChannel.INAPP,
            receiver_id=receiver_id,
            email=email,
        )

    @staticmethod
    def mark_conversation_read(db: Session, user_id: str, counterpart_id: str) -> int:
        """
        Mark every unread message from counterpart to user as read.

        Idempotent: a second call matches zero rows.

        Returns:
            Number of rows updated
        """
        updated = db.query(Message).filter(
            Message.receiver_id == user_id,
            Message.sender_id == counterpart_id,
            Message.read == False  # noqa: E712
        ).update({Message.read: True}, synchronize_session="fetch")
        if updated:
            note_change(db, Message.__tablename__, "update")
        commit_or_raise(db, "mark_conversation_read")
        return updated

    @staticmethod
    def delete_message(db: Session, message_id: str, requester_id: str) -> None:
        """
        Hard-delete a message. Only its sender may delete it.

        Raises:
            NotFoundError: unknown message
            PermissionDenied: requester is not the sender
        """
        message = db.get(Message, message_id)
        if message is None:
            raise NotFoundError("Message", message_id)
        if message.sender_id != requester_id:
            raise PermissionDenied("Only the sender can delete this message")
        db.delete(message)
        commit_or_raise(db, "delete_message")
        logger.info(f"Message {message_id} deleted by {requester_id}")

    @staticmethod
    def unread_total(db: Session, user_id: Optional[str] = None) -> int:
        """Unread messages addressed to user_id, or across all users when None."""
        query = db.query(func.count(Message.id)).filter(Message.read == False)  # noqa: E712
        if user_id is not None:
            query = query.filter(Message.receiver_id == user_id)
        else:
            query = query.filter(Message.receiver_id.isnot(None))
        return query.scalar() or 0
