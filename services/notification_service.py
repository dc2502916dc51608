"""
In-app notifications created as side effects of messages, tickets,
announcements and document reviews.
"""
from typing import Optional, Dict, Any, List
from sqlalchemy.orm import Session

from core.exceptions import NotFoundError
from database.connection import commit_or_raise
from database.models import Notification, NotificationType, User, UserRole


class NotificationService:
    """Service for notification rows."""

    @staticmethod
    def create(
        db: Session,
        user_id: str,
        title: str,
        message: str,
        notification_type: NotificationType,
        sender_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        commit: bool = True
    ) -> Notification:
        """
        Create a notification for one user.

        Args:
            db: Database session
            user_id: Recipient
            title: Short title ("Nova Mensagem", "Novo SMS", ...)
            message: Body text
            notification_type: Kind of notification
            sender_id: Originating user, if any
            metadata: Extra JSON payload
            commit: Commit immediately (False when batching)

        Returns:
            Created Notification
        """
        notification = Notification(
            user_id=user_id,
            sender_id=sender_id,
            title=title,
            message=message,
            type=notification_type,
            read=False,
            extra_metadata=metadata,
        )
        db.add(notification)
        if commit:
            commit_or_raise(db, "create_notification")
        return notification

    @staticmethod
    def notify_admins(
        db: Session,
        title: str,
        message: str,
        notification_type: NotificationType,
        sender_id: Optional[str] = None
    ) -> List[Notification]:
        """One notification per active admin."""
        admins = db.query(User).filter(
            User.role == UserRole.ADMIN,
            User.is_system == False,  # noqa: E712
            User.is_active == True  # noqa: E712
        ).all()
        created = [
            NotificationService.create(db, admin.id, title, message, notification_type, sender_id=sender_id, commit=False)
            for admin in admins
        ]
        commit_or_raise(db, "notify_admins")
        return created

    @staticmethod
    def list_for_user(db: Session, user_id: str, unread_only: bool = False, limit: int = 50) -> List[Notification]:
        query = db.query(Notification).filter(Notification.user_id == user_id)
        if unread_only:
            query = query.filter(Notification.read == False)  # noqa: E712
        return query.order_by(Notification.created_at.desc()).limit(limit).all()

    @staticmethod
    def unread_count(db: Session, user_id: str) -> int:
        return db.query(Notification).filter(
            Notification.user_id == user_id,
            Notification.read == False  # noqa: E712
        ).count()

    @staticmethod
    def mark_read(db: Session, notification_id: str, user_id: str) -> Notification:
        notification = db.get(Notification, notification_id)
        if notification is None or notification.user_id != user_id:
            raise NotFoundError("Notification", notification_id)
        if not notification.read:
            notification.read = True
            commit_or_raise(db, "mark_notification_read")
        return notification

    @staticmethod
    def mark_all_read(db: Session, user_id: str) -> int:
        """Returns the number of notifications changed."""
        unread = db.query(Notification).filter(
            Notification.user_id == user_id,
            Notification.read == False  # noqa: E712
        ).all()
        for notification in unread:
            notification.read = True
        if unread:
            commit_or_raise(db, "mark_all_notifications_read")
        return len(unread)

    @staticmethod
    def serialize(notification: Notification) -> dict:
        return {
            "id": notification.id,
            "title": notification.title,
            "message": notification.message,
            "type": notification.type.value if hasattr(notification.type, "value") else notification.type,
            "read": notification.read,
            "sender_id": notification.sender_id,
            "metadata": notification.extra_metadata,
            "created_at": notification.created_at.isoformat() if notification.created_at else None,
        }
