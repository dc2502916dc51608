"""
Audit logging service for security and compliance.
"""
import csv
import io
from datetime import datetime, timedelta
from typing import Optional, Dict, Any, Iterable, List
from sqlalchemy.orm import Session
from fastapi import Request

from core.exceptions import ValidationError
from core.utils import utcnow
from database.connection import commit_or_raise
from database.models import AuditLog

AUDIT_CSV_HEADER = ["Data", "Usuário", "Ação", "Tabela", "Registro", "IP", "User Agent"]
SYSTEM_ACTOR = "Sistema"
DATE_WINDOWS = ("all", "today", "week", "month")


class AuditService:
    """Service for audit logging."""

    @staticmethod
    def log_action(
        db: Session,
        action_type: str,
        user_id: Optional[str] = None,
        table_name: Optional[str] = None,
        record_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> AuditLog:
        """
        Append an entry to the audit log.

        Args:
            db: Database session
            action_type: Action name (e.g., "create", "update", "delete", "login")
            user_id: Acting user, None for system actions
            table_name: Affected table (e.g., "documents")
            record_id: Affected row id
            ip_address: IP address
            user_agent: User agent string
            metadata: Additional details

        Returns:
            Created AuditLog
        """
        audit_log = AuditLog(
            user_id=user_id,
            action_type=action_type,
            table_name=table_name,
            record_id=str(record_id) if record_id is not None else None,
            ip_address=ip_address,
            user_agent=user_agent[:500] if user_agent else None,
            extra_metadata=metadata
        )
        db.add(audit_log)
        commit_or_raise(db, "audit_log")
        return audit_log

    @staticmethod
    def log_from_request(
        db: Session,
        request: Optional[Request],
        action_type: str,
        user_id: Optional[str] = None,
        table_name: Optional[str] = None,
        record_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> AuditLog:
        """Log an action with the client IP and user agent taken from the request."""
        ip_address = request.client.host if request is not None and request.client else None
        user_agent = request.headers.get("user-agent") if request is not None else None

        return AuditService.log_action(
            db=db,
            action_type=action_type,
            user_id=user_id,
            table_name=table_name,
            record_id=record_id,
            ip_address=ip_address,
            user_agent=user_agent,
            metadata=metadata
        )

    @staticmethod
    def recent(db: Session, limit: Optional[int] = 100) -> List[AuditLog]:
        """Newest entries first; limit=None returns the whole log."""
        query = db.query(AuditLog).order_by(AuditLog.created_at.desc(), AuditLog.id)
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    @staticmethod
    def serialize(log: AuditLog) -> dict:
        return {
            "id": log.id,
            "user_id": log.user_id,
            "action_type": log.action_type,
            "table_name": log.table_name,
            "record_id": log.record_id,
            "metadata": log.extra_metadata,
            "ip_address": log.ip_address,
            "user_agent": log.user_agent,
            "created_at": log.created_at.isoformat() if log.created_at else None,
        }


def _in_window(created_at: datetime, window: str, now: datetime) -> bool:
    if window == "today":
        return created_at.date() == now.date()
    if window == "week":
        return created_at >= now - timedelta(days=7)
    if window == "month":
        return created_at >= now - timedelta(days=30)
    return True


def filter_logs(
    logs: Iterable[AuditLog],
    search: Optional[str] = None,
    action: Optional[str] = None,
    table: Optional[str] = None,
    window: str = "all",
    now: Optional[datetime] = None
) -> List[AuditLog]:
    """
    Filter already-fetched audit entries.

    Search is a case-insensitive substring match on action type, table name
    and user id. "all" (or None) disables the action/table filters.
    """
    if window not in DATE_WINDOWS:
        raise ValidationError(f"Invalid date window: {window}", field="window")
    now = now or utcnow()
    needle = (search or "").strip().lower()

    result = []
    for log in logs:
        if needle and not any(
            needle in value.lower()
            for value in (log.action_type, log.table_name, log.user_id)
            if value
        ):
            continue
        if action and action != "all" and log.action_type != action:
            continue
        if table and table != "all" and log.table_name != table:
            continue
        if not _in_window(log.created_at, window, now):
            continue
        result.append(log)
    return result


def distinct_values(logs: Iterable[AuditLog], field: str) -> List[str]:
    """Sorted, non-empty distinct values of one column (for filter dropdowns)."""
    return sorted({getattr(log, field) for log in logs if getattr(log, field)})


def export_csv(logs: Iterable[AuditLog]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(AUDIT_CSV_HEADER)
    for log in logs:
        writer.writerow([
            log.created_at.strftime("%d/%m/%Y %H:%M:%S") if log.created_at else "",
            log.user_id or SYSTEM_ACTOR,
            log.action_type,
            log.table_name or "",
            log.record_id or "",
            log.ip_address or "",
            log.user_agent or "",
        ])
    return buffer.getvalue()
