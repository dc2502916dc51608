"""
Announcement routes. Staff publish, everyone reads.
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from pydantic import BaseModel
from typing import List, Optional

from database.models import User
from auth.dependencies import get_current_user, get_db_session, require_staff
from core.exceptions import ValidationError
from core.utils import parse_iso_datetime
from services.announcement_service import AnnouncementService


router = APIRouter(prefix="/api/announcements", tags=["announcements"])


def _parse_expiry(value: Optional[str]):
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"Invalid expiry date: {value}", field="expires_at")


class AnnouncementRequest(BaseModel):
    title: str
    content: str
    priority: Optional[str] = "normal"
    send_as_sms: bool = False
    expires_at: Optional[str] = None


class AnnouncementUpdateRequest(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    priority: Optional[str] = None
    send_as_sms: Optional[bool] = None
    expires_at: Optional[str] = None


class ViewedRequest(BaseModel):
    announcement_ids: Optional[List[str]] = None


@router.get("")
async def list_active_announcements(
    limit: Optional[int] = Query(None, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """Non-expired announcements. Opening the list marks them viewed for the caller."""
    announcements = AnnouncementService.list_active(db, limit=limit)
    AnnouncementService.mark_viewed(db, current_user.id, [a.id for a in announcements])
    return [AnnouncementService.serialize(a, viewer_id=current_user.id) for a in announcements]


@router.get("/all")
async def list_all_announcements(
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db_session)
):
    return [AnnouncementService.serialize(a) for a in AnnouncementService.list_all(db)]


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_announcement(
    body: AnnouncementRequest,
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db_session)
):
    announcement = AnnouncementService.create(
        db,
        author_id=current_user.id,
        title=body.title,
        content=body.content,
        priority=body.priority,
        send_as_sms=body.send_as_sms,
        expires_at=_parse_expiry(body.expires_at),
    )
    return AnnouncementService.serialize(announcement)


@router.put("/{announcement_id}")
async def update_announcement(
    announcement_id: str,
    body: AnnouncementUpdateRequest,
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db_session)
):
    changes = body.model_dump(exclude_unset=True)
    if "expires_at" in changes:
        changes["expires_at"] = _parse_expiry(changes["expires_at"])
    announcement = AnnouncementService.update(db, announcement_id, current_user.id, **changes)
    return AnnouncementService.serialize(announcement)


@router.delete("/{announcement_id}")
async def delete_announcement(
    announcement_id: str,
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db_session)
):
    AnnouncementService.delete(db, announcement_id, current_user.id)
    return {"status": "success", "message": "Announcement deleted"}


@router.post("/viewed")
async def mark_announcements_viewed(
    body: ViewedRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    return {"updated": AnnouncementService.mark_viewed(db, current_user.id, body.announcement_ids)}
