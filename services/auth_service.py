"""
Authentication service: registration, login and token issuing.
"""
from typing import Optional, Dict, Any
from sqlalchemy.orm import Session
from sqlalchemy import func

from database.models import User, UserRole, Profile
from database.connection import commit_or_raise
from auth.security import verify_password, get_password_hash, validate_password, create_access_token
from core.exceptions import ValidationError
from core.logger import logger
from core.utils import utcnow
from core.validators import EMAIL_PATTERN, require_text

PROFILE_FIELDS = ("university", "city", "bi_number")


class AuthService:
    """Service for authentication operations."""

    @staticmethod
    def register(
        db: Session,
        email: str,
        password: str,
        confirm_password: str,
        full_name: str,
        phone: Optional[str] = None,
        profile: Optional[Dict[str, Any]] = None,
        role: UserRole = UserRole.STUDENT
    ) -> User:
        """
        Create a new account. Self-registration always creates students;
        role is set by scripts/create_admin.py or an admin update.

        Raises:
            ValidationError: mismatched/weak password, bad e-mail, duplicate e-mail
        """
        email = require_text(email, "email")
        full_name = require_text(full_name, "full_name")
        if not EMAIL_PATTERN.match(email):
            raise ValidationError("Invalid email address", field="email")
        if password != confirm_password:
            raise ValidationError("Passwords do not match", field="confirm_password")
        is_valid, error_message = validate_password(password)
        if not is_valid:
            raise ValidationError(error_message, field="password")

        if db.query(User).filter(func.lower(User.email) == email.lower()).first():
            raise ValidationError("User with this email already exists", field="email")

        user = User(
            email=email,
            hashed_password=get_password_hash(password),
            full_name=full_name,
            phone=phone.strip() if phone and phone.strip() else None,
            role=role,
            is_active=True,
        )
        profile_values = {k: v for k, v in (profile or {}).items() if k in PROFILE_FIELDS and v}
        user.profile = Profile(**profile_values)
        db.add(user)
        commit_or_raise(db, "register_user")
        logger.info(f"Created user: {email} (role: {role.value})")
        return user

    @staticmethod
    def authenticate_user(db: Session, email: str, password: str) -> Optional[User]:
        """
        Check credentials and record the login time.

        Returns:
            User if authenticated, None otherwise
        """
        user = db.query(User).filter(func.lower(User.email) == (email or "").strip().lower()).first()
        if not user or user.is_system or not user.is_active:
            return None
        if not verify_password(password, user.hashed_password):
            logger.warning(f"Failed login for {email}")
            return None

        user.last_login = utcnow()
        commit_or_raise(db, "login")
        return user

    @staticmethod
    def create_token(user: User) -> str:
        return create_access_token({
            "sub": user.id,
            "email": user.email,
            "role": user.role.value,
        })
