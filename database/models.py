"""
Database models for the embassy student portal.
"""
import uuid
from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Date, Text,
    ForeignKey, JSON, Index, TypeDecorator
)
from sqlalchemy.orm import declarative_base, relationship
import enum

from core.utils import utcnow

Base = declarative_base()


def new_uuid() -> str:
    return str(uuid.uuid4())


# ============================================================================
# Custom Type Decorator for Enum Values
# ============================================================================

class EnumValue(TypeDecorator):
    """Type decorator to ensure enum values (not names) are stored."""
    impl = String
    cache_ok = True

    def __init__(self, enum_class, *args, **kwargs):
        kwargs.setdefault("length", 50)
        super().__init__(*args, **kwargs)
        self.enum_class = enum_class

    def process_bind_param(self, value, dialect):
        """Convert enum to its value when writing to database."""
        if value is None:
            return None
        if isinstance(value, enum.Enum):
            return value.value
        return value

    def process_result_value(self, value, dialect):
        """Convert database value back to enum when reading."""
        if value is None:
            return None
        if isinstance(value, str):
            try:
                return self.enum_class(value)
            except ValueError:
                return value
        return value


# ============================================================================
# Enums - Must be defined before models that use them
# ============================================================================

class UserRole(str, enum.Enum):
    """User roles for authorization. officer and admin are staff."""
    STUDENT = "student"
    OFFICER = "officer"
    ADMIN = "admin"


class DocumentStatus(str, enum.Enum):
    """Document review status."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class MessageChannel(str, enum.Enum):
    """Delivery channel chosen by the sender."""
    INAPP = "inapp"
    SMS = "sms"


class AnnouncementPriority(str, enum.Enum):
    LOW = "low"
    NORMAL = "normal"
    MEDIUM = "medium"
    HIGH = "high"


class TicketStatus(str, enum.Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class TicketPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class NotificationType(str, enum.Enum):
    """Kinds of side-channel notifications."""
    MESSAGE = "message"
    SMS = "sms"
    SUPPORT_TICKET = "support_ticket"
    SUPPORT_RESPONSE = "support_response"
    DOCUMENT = "document"
    ANNOUNCEMENT = "announcement"


# ============================================================================
# Models
# ============================================================================

class User(Base):
    """User model for authentication and authorization."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_uuid)
    email = Column(String(255), unique=True, nullable=False, index=True)
    hashed_password = Column(String(255), nullable=False, default="")
    full_name = Column(String(255), nullable=False)
    role = Column(EnumValue(UserRole), default=UserRole.STUDENT, nullable=False)
    phone = Column(String(50), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    is_system = Column(Boolean, default=False, nullable=False)  # SMS bookkeeping sender

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    last_login = Column(DateTime, nullable=True)

    # Relationships
    profile = relationship("Profile", back_populates="user", uselist=False, cascade="all, delete-orphan")
    documents = relationship("Document", back_populates="user", foreign_keys="Document.user_id", cascade="all, delete-orphan")
    notifications = relationship("Notification", back_populates="user", foreign_keys="Notification.user_id", cascade="all, delete-orphan")
    tickets = relationship("SupportTicket", back_populates="user", foreign_keys="SupportTicket.user_id", cascade="all, delete-orphan")

    __table_args__ = (
        Index('idx_user_role', 'role'),
    )

    @property
    def is_staff(self) -> bool:
        return self.role in (UserRole.OFFICER, UserRole.ADMIN)


class Profile(Base):
    """Student profile details."""
    __tablename__ = "profiles"

    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    student_id = Column(String(100), nullable=True)
    university = Column(String(255), nullable=True)
    course = Column(String(255), nullable=True)
    nationality = Column(String(100), nullable=True)
    birth_date = Column(Date, nullable=True)
    address = Column(Text, nullable=True)
    emergency_contact = Column(String(255), nullable=True)
    city = Column(String(255), nullable=True)
    bi_number = Column(String(100), nullable=True)  # identity card number

    user = relationship("User", back_populates="profile")


class DocumentType(Base):
    """Kinds of documents a student can upload."""
    __tablename__ = "document_types"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    required = Column(Boolean, default=False, nullable=False)
    valid_period_months = Column(Integer, nullable=True)  # None = never expires

    documents = relationship("Document", back_populates="document_type")


class Document(Base):
    """Uploaded student document under review."""
    __tablename__ = "documents"

    id = Column(String(36), primary_key=True, default=new_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    document_type_id = Column(Integer, ForeignKey("document_types.id"), nullable=False)
    status = Column(EnumValue(DocumentStatus), default=DocumentStatus.PENDING, nullable=False)
    file_url = Column(String(1024), nullable=False)
    file_path = Column(String(512), nullable=True)  # Object store key
    file_hash = Column(String(64), nullable=True)  # sha256 hex
    expires_at = Column(DateTime, nullable=True)
    verification_notes = Column(Text, nullable=True)
    verified_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    extra_metadata = Column("metadata", JSON, nullable=True)  # {fileName, fileSize, uploadedAt}
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    user = relationship("User", back_populates="documents", foreign_keys=[user_id])
    verifier = relationship("User", foreign_keys=[verified_by])
    document_type = relationship("DocumentType", back_populates="documents")

    __table_args__ = (
        Index('idx_document_user', 'user_id'),
        Index('idx_document_status', 'status'),
        Index('idx_document_type', 'document_type_id'),
        Index('idx_document_created', 'created_at'),
    )


class Message(Base):
    """Directional message; receiver_id NULL marks a broadcast/SMS bookkeeping row."""
    __tablename__ = "messages"

    id = Column(String(36), primary_key=True, default=new_uuid)
    sender_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    receiver_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    content = Column(Text, nullable=False)
    read = Column(Boolean, default=False, nullable=False)
    is_sms = Column(Boolean, default=False, nullable=False)
    sms_status = Column(String(50), nullable=True)
    group_id = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    sender = relationship("User", foreign_keys=[sender_id])
    receiver = relationship("User", foreign_keys=[receiver_id])

    __table_args__ = (
        Index('idx_message_sender', 'sender_id'),
        Index('idx_message_receiver', 'receiver_id'),
        Index('idx_message_receiver_read', 'receiver_id', 'read'),
        Index('idx_message_created', 'created_at'),
    )


class Notification(Base):
    """In-app notification generated as a side effect of another action."""
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=new_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    sender_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(EnumValue(NotificationType), nullable=False)
    read = Column(Boolean, default=False, nullable=False)
    extra_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    user = relationship("User", back_populates="notifications", foreign_keys=[user_id])

    __table_args__ = (
        Index('idx_notification_user', 'user_id'),
        Index('idx_notification_user_read', 'user_id', 'read'),
    )


class Announcement(Base):
    """Staff-authored broadcast announcement."""
    __tablename__ = "announcements"

    id = Column(String(36), primary_key=True, default=new_uuid)
    author_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    title = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    priority = Column(EnumValue(AnnouncementPriority), default=AnnouncementPriority.NORMAL, nullable=False)
    send_as_sms = Column(Boolean, default=False, nullable=False)
    expires_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    recipients = relationship("AnnouncementRecipient", back_populates="announcement", cascade="all, delete-orphan")

    __table_args__ = (
        Index('idx_announcement_created', 'created_at'),
    )


class AnnouncementRecipient(Base):
    """Per-recipient read/delivery state of an announcement."""
    __tablename__ = "announcement_recipients"

    announcement_id = Column(String(36), ForeignKey("announcements.id", ondelete="CASCADE"), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    viewed = Column(Boolean, default=False, nullable=False)
    sms_delivered = Column(Boolean, default=False, nullable=False)

    announcement = relationship("Announcement", back_populates="recipients")

    __table_args__ = (
        Index('idx_recipient_user', 'user_id'),
    )


class SupportTicket(Base):
    """Student support request."""
    __tablename__ = "support_tickets"

    id = Column(String(36), primary_key=True, default=new_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    subject = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    category = Column(String(100), nullable=False, default="general")
    priority = Column(EnumValue(TicketPriority), default=TicketPriority.MEDIUM, nullable=False)
    status = Column(EnumValue(TicketStatus), default=TicketStatus.OPEN, nullable=False)
    assigned_to = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    user = relationship("User", back_populates="tickets", foreign_keys=[user_id])

    __table_args__ = (
        Index('idx_ticket_user', 'user_id'),
        Index('idx_ticket_status', 'status'),
    )


class AuditLog(Base):
    """Append-only audit trail."""
    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, default=new_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    action_type = Column(String(100), nullable=False)  # create, update, delete, login...
    table_name = Column(String(100), nullable=True)
    record_id = Column(String(100), nullable=True)
    extra_metadata = Column("metadata", JSON, nullable=True)
    ip_address = Column(String(45), nullable=True)  # IPv6 compatible
    user_agent = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    __table_args__ = (
        Index('idx_audit_user', 'user_id'),
        Index('idx_audit_action', 'action_type'),
        Index('idx_audit_table', 'table_name'),
    )
