"""
Notification inbox routes.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from database.models import User
from auth.dependencies import get_current_user, get_db_session
from services.notification_service import NotificationService


router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("")
async def list_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    notifications = NotificationService.list_for_user(db, current_user.id, unread_only=unread_only, limit=limit)
    return [NotificationService.serialize(n) for n in notifications]


@router.get("/unread-count")
async def unread_count(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    return {"unread": NotificationService.unread_count(db, current_user.id)}


@router.post("/read-all")
async def mark_all_read(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    return {"updated": NotificationService.mark_all_read(db, current_user.id)}


@router.post("/{notification_id}/read")
async def mark_read(
    notification_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    return NotificationService.serialize(NotificationService.mark_read(db, notification_id, current_user.id))
