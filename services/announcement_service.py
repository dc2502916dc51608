"""
Staff announcements with per-recipient viewed/SMS delivery state.
"""
from datetime import datetime
from typing import Dict, List, Optional, Union

from sqlalchemy import or_
from sqlalchemy.orm import Session

from core.change_feed import note_change
from core.exceptions import NotFoundError, ValidationError
from core.logger import logger
from core.utils import isoformat, utcnow
from core.validators import require_text
from database.connection import commit_or_raise
from database.models import (
    Announcement, AnnouncementPriority, AnnouncementRecipient,
    NotificationType, User
)
from services.audit_service import AuditService
from services.notification_service import NotificationService
from services.sms_service import SmsRelay, send_sms_best_effort
import config

SMS_ANNOUNCEMENT_TYPE = "announcement"


def parse_priority(priority: Union[str, AnnouncementPriority, None]) -> AnnouncementPriority:
    if priority is None:
        return AnnouncementPriority.NORMAL
    try:
        return AnnouncementPriority(priority)
    except ValueError:
        raise ValidationError(f"Invalid priority: {priority}", field="priority")


def is_active(announcement: Announcement, now: Optional[datetime] = None) -> bool:
    now = now or utcnow()
    return announcement.expires_at is None or announcement.expires_at > now


class AnnouncementService:
    """Service for announcements."""

    @staticmethod
    def create(
        db: Session,
        author_id: str,
        title: str,
        content: str,
        priority: Union[str, AnnouncementPriority, None] = None,
        send_as_sms: bool = False,
        expires_at: Optional[datetime] = None,
        sms_relay: Optional[SmsRelay] = None
    ) -> Announcement:
        """
        Publish an announcement to every active user.

        One AnnouncementRecipient and one notification are created per
        recipient. With send_as_sms, recipients with a phone also get a
        best-effort SMS and sms_delivered records the relay outcome.
        """
        announcement = Announcement(
            author_id=author_id,
            title=require_text(title, "title"),
            content=require_text(content, "content"),
            priority=parse_priority(priority),
            send_as_sms=bool(send_as_sms),
            expires_at=expires_at,
        )
        db.add(announcement)

        recipients = db.query(User).filter(
            User.is_active == True,  # noqa: E712
            User.is_system == False,  # noqa: E712
            User.id != author_id
        ).all()
        rows: Dict[str, AnnouncementRecipient] = {}
        for user in recipients:
            row = AnnouncementRecipient(announcement=announcement, user_id=user.id, viewed=False, sms_delivered=False)
            db.add(row)
            rows[user.id] = row
            NotificationService.create(
                db, user.id, announcement.title, announcement.content,
                NotificationType.ANNOUNCEMENT, sender_id=author_id, commit=False
            )
        commit_or_raise(db, "create_announcement")
        logger.info(f"Announcement {announcement.id} published to {len(rows)} recipients")

        if announcement.send_as_sms:
            relay = sms_relay if sms_relay is not None else config.sms_relay
            text = f"{announcement.title}: {announcement.content}"
            delivered = 0
            for user in recipients:
                if send_sms_best_effort(relay, user.phone, text, SMS_ANNOUNCEMENT_TYPE, db=db):
                    rows[user.id].sms_delivered = True
                    delivered += 1
            if delivered:
                commit_or_raise(db, "announcement_sms_delivery")
            logger.info(f"Announcement {announcement.id} SMS delivered to {delivered} recipients")

        AuditService.log_action(db, "create", user_id=author_id, table_name="announcements", record_id=announcement.id)
        return announcement

    @staticmethod
    def update(db: Session, announcement_id: str, editor_id: str, **changes) -> Announcement:
        announcement = db.get(Announcement, announcement_id)
        if announcement is None:
            raise NotFoundError("Announcement", announcement_id)

        if changes.get("title") is not None:
            announcement.title = require_text(changes["title"], "title")
        if changes.get("content") is not None:
            announcement.content = require_text(changes["content"], "content")
        if changes.get("priority") is not None:
            announcement.priority = parse_priority(changes["priority"])
        if changes.get("send_as_sms") is not None:
            announcement.send_as_sms = bool(changes["send_as_sms"])
        if "expires_at" in changes:
            announcement.expires_at = changes["expires_at"]

        commit_or_raise(db, "update_announcement")
        AuditService.log_action(db, "update", user_id=editor_id, table_name="announcements", record_id=announcement_id)
        return announcement

    @staticmethod
    def delete(db: Session, announcement_id: str, editor_id: str) -> None:
        announcement = db.get(Announcement, announcement_id)
        if announcement is None:
            raise NotFoundError("Announcement", announcement_id)
        db.delete(announcement)
        commit_or_raise(db, "delete_announcement")
        AuditService.log_action(db, "delete", user_id=editor_id, table_name="announcements", record_id=announcement_id)

    @staticmethod
    def list_all(db: Session) -> List[Announcement]:
        """Staff view: every announcement, newest first."""
        return db.query(Announcement).order_by(Announcement.created_at.desc()).all()

    @staticmethod
    def list_active(db: Session, now: Optional[datetime] = None, limit: Optional[int] = None) -> List[Announcement]:
        """Non-expired announcements, newest first."""
        now = now or utcnow()
        query = db.query(Announcement).filter(
            or_(Announcement.expires_at.is_(None), Announcement.expires_at > now)
        ).order_by(Announcement.created_at.desc())
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    @staticmethod
    def mark_viewed(db: Session, user_id: str, announcement_ids: Optional[List[str]] = None) -> int:
        """Set viewed on the user's recipient rows (all of them when ids is None)."""
        query = db.query(AnnouncementRecipient).filter(
            AnnouncementRecipient.user_id == user_id,
            AnnouncementRecipient.viewed == False  # noqa: E712
        )
        if announcement_ids is not None:
            if not announcement_ids:
                return 0
            query = query.filter(AnnouncementRecipient.announcement_id.in_(announcement_ids))
        updated = query.update({AnnouncementRecipient.viewed: True}, synchronize_session="fetch")
        if updated:
            note_change(db, AnnouncementRecipient.__tablename__, "update")
        commit_or_raise(db, "mark_announcements_viewed")
        return updated

    @staticmethod
    def serialize(announcement: Announcement, viewer_id: Optional[str] = None) -> dict:
        data = {
            "id": announcement.id,
            "author_id": announcement.author_id,
            "title": announcement.title,
            "content": announcement.content,
            "priority": announcement.priority.value,
            "send_as_sms": announcement.send_as_sms,
            "expires_at": isoformat(announcement.expires_at),
            "created_at": isoformat(announcement.created_at),
        }
        if viewer_id is None:
            data["recipient_count"] = len(announcement.recipients)
            data["viewed_count"] = sum(1 for r in announcement.recipients if r.viewed)
        return data
