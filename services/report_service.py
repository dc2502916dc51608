"""
Dashboard aggregates and the CSV summary report.
"""
import csv
import io
from datetime import datetime
from typing import Dict, Optional

from sqlalchemy.orm import Session

from core.utils import utcnow
from database.models import Document, DocumentStatus, User
from services.announcement_service import AnnouncementService
from services.audit_service import AuditService
from services.document_service import DocumentService, document_stats
from services.message_service import MessageService
from services.notification_service import NotificationService
from services.user_service import UserService

REPORT_ROWS = (
    ("Usuários Totais", "total_users"),
    ("Documentos Totais", "total_documents"),
    ("Documentos Pendentes", "pending_documents"),
    ("Documentos Aprovados", "approved_documents"),
    ("Documentos Rejeitados", "rejected_documents"),
)


class ReportService:
    """Read-only aggregates for the dashboards."""

    @staticmethod
    def student_dashboard(db: Session, user: User, now: Optional[datetime] = None) -> dict:
        now = now or utcnow()
        documents = DocumentService.list_documents(db, user)
        return {
            "document_stats": document_stats(documents),
            "recent_documents": [DocumentService.serialize(d, now) for d in documents[:3]],
            "announcements": [
                AnnouncementService.serialize(a, viewer_id=user.id)
                for a in AnnouncementService.list_active(db, now, limit=3)
            ],
            "requirements": DocumentService.requirement_status(db, user.id, now),
            "unread_messages": MessageService.unread_total(db, user.id),
            "unread_notifications": NotificationService.unread_count(db, user.id),
        }

    @staticmethod
    def admin_dashboard(db: Session) -> dict:
        pending = db.query(Document).filter(Document.status == DocumentStatus.PENDING).count()
        return {
            "total_users": UserService.count_users(db),
            "pending_documents": pending,
            "unread_messages": MessageService.unread_total(db),
            "recent_activity": [AuditService.serialize(log) for log in AuditService.recent(db, limit=5)],
        }

    @staticmethod
    def report_data(db: Session) -> Dict[str, int]:
        stats = document_stats(db.query(Document).all())
        return {
            "total_users": UserService.count_users(db),
            "total_documents": stats["total"],
            "pending_documents": stats[DocumentStatus.PENDING.value],
            "approved_documents": stats[DocumentStatus.APPROVED.value],
            "rejected_documents": stats[DocumentStatus.REJECTED.value],
        }

    @staticmethod
    def report_csv(data: Dict[str, int]) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(["Tipo", "Valor"])
        for label, key in REPORT_ROWS:
            writer.writerow([label, data.get(key, 0)])
        return buffer.getvalue()
