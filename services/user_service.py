"""
User administration and student profiles.
"""
from datetime import date
from typing import Iterable, List, Optional, Union

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from core.exceptions import NotFoundError, ValidationError
from core.logger import logger
from core.utils import isoformat
from core.validators import EMAIL_PATTERN, require_text
from database.connection import commit_or_raise
from database.models import Profile, User, UserRole
from services.audit_service import AuditService
from services.sms_service import SmsRelay, SmsResult
import config

SMS_ADMIN_TYPE = "admin_message"
PROFILE_EDITABLE = (
    "student_id", "university", "course", "nationality", "birth_date",
    "address", "emergency_contact", "city", "bi_number",
)


def parse_role(role: Union[str, UserRole]) -> UserRole:
    try:
        return UserRole(role)
    except ValueError:
        raise ValidationError(f"Invalid role: {role}", field="role")


def filter_users(users: Iterable[User], search: Optional[str] = None, role: Optional[str] = None) -> List[User]:
    """Case-insensitive search on name or e-mail, plus an exact role filter."""
    needle = (search or "").strip().lower()
    result = []
    for user in users:
        if needle and needle not in user.full_name.lower() and needle not in user.email.lower():
            continue
        if role and role != "all" and user.role.value != role:
            continue
        result.append(user)
    return result


class UserService:
    """Service for user management."""

    @staticmethod
    def get(db: Session, user_id: str) -> User:
        user = db.get(User, user_id)
        if user is None or user.is_system:
            raise NotFoundError("User", user_id)
        return user

    @staticmethod
    def list_users(db: Session, search: Optional[str] = None, role: Optional[str] = None) -> List[User]:
        users = db.query(User).filter(User.is_system == False).order_by(User.created_at.desc()).all()  # noqa: E712
        return filter_users(users, search, role)

    @staticmethod
    def count_users(db: Session) -> int:
        return db.query(func.count(User.id)).filter(User.is_system == False).scalar() or 0  # noqa: E712

    @staticmethod
    def contacts(db: Session, viewer: User) -> List[User]:
        """
        Users the viewer can start a conversation with: staff for students,
        everyone for staff.
        """
        query = db.query(User).filter(
            User.is_system == False,  # noqa: E712
            User.is_active == True,  # noqa: E712
            User.id != viewer.id
        )
        if not viewer.is_staff:
            query = query.filter(User.role.in_([UserRole.OFFICER, UserRole.ADMIN]))
        return query.order_by(User.full_name).all()

    @staticmethod
    def update(
        db: Session,
        user_id: str,
        actor_id: str,
        full_name: Optional[str] = None,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        role: Optional[Union[str, UserRole]] = None
    ) -> User:
        """Admin edit of name, e-mail, phone and role. Empty phone clears it."""
        user = UserService.get(db, user_id)
        if full_name is not None:
            user.full_name = require_text(full_name, "full_name")
        if email is not None:
            email = require_text(email, "email")
            if not EMAIL_PATTERN.match(email):
                raise ValidationError("Invalid email address", field="email")
            clash = db.query(User).filter(func.lower(User.email) == email.lower(), User.id != user_id).first()
            if clash:
                raise ValidationError("User with this email already exists", field="email")
            user.email = email
        if phone is not None:
            user.phone = phone.strip() or None
        if role is not None:
            user.role = parse_role(role)
        commit_or_raise(db, "update_user")
        AuditService.log_action(db, "update", user_id=actor_id, table_name="users", record_id=user_id)
        return user

    @staticmethod
    def delete(db: Session, user_id: str, actor_id: str) -> None:
        if user_id == actor_id:
            raise ValidationError("You cannot delete your own account")
        user = UserService.get(db, user_id)
        db.delete(user)
        commit_or_raise(db, "delete_user")
        logger.info(f"User {user_id} deleted by {actor_id}")
        AuditService.log_action(db, "delete", user_id=actor_id, table_name="users", record_id=user_id)

    @staticmethod
    def send_sms(db: Session, user_id: str, message: str, relay: Optional[SmsRelay] = None) -> SmsResult:
        """
        Direct SMS from an admin. Unlike side-channel SMS, relay errors
        propagate to the caller.
        """
        user = UserService.get(db, user_id)
        if not user.phone:
            raise ValidationError("User has no phone number", field="phone")
        text = require_text(message, "message")
        if len(text) > config.SMS_MAX_LENGTH:
            raise ValidationError(f"SMS cannot exceed {config.SMS_MAX_LENGTH} characters", field="message")
        relay = relay if relay is not None else config.sms_relay
        if relay is None:
            raise ValidationError("SMS relay is not configured")
        return relay.send_sms(user.phone, text, SMS_ADMIN_TYPE, db=db)

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    @staticmethod
    def get_profile(db: Session, user_id: str) -> Profile:
        user = db.query(User).options(joinedload(User.profile)).filter(User.id == user_id).first()
        if user is None:
            raise NotFoundError("User", user_id)
        return user.profile or Profile(user_id=user_id)

    @staticmethod
    def upsert_profile(db: Session, user_id: str, **fields) -> Profile:
        profile = db.get(Profile, user_id)
        if profile is None:
            UserService.get(db, user_id)
            profile = Profile(user_id=user_id)
            db.add(profile)
        for name in PROFILE_EDITABLE:
            if name in fields and fields[name] is not None:
                value = fields[name]
                if name == "birth_date" and isinstance(value, str):
                    try:
                        value = date.fromisoformat(value)
                    except ValueError:
                        raise ValidationError("birth_date must be YYYY-MM-DD", field="birth_date")
                setattr(profile, name, value)
        commit_or_raise(db, "upsert_profile")
        return profile

    @staticmethod
    def serialize(user: User) -> dict:
        return {
            "id": user.id,
            "email": user.email,
            "full_name": user.full_name,
            "role": user.role.value,
            "phone": user.phone,
            "is_active": user.is_active,
            "created_at": isoformat(user.created_at),
            "last_login": isoformat(user.last_login),
        }

    @staticmethod
    def serialize_profile(profile: Profile) -> dict:
        data = {name: getattr(profile, name) for name in PROFILE_EDITABLE}
        data["birth_date"] = profile.birth_date.isoformat() if profile.birth_date else None
        data["user_id"] = profile.user_id
        return data
