"""
User management and profile routes.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from pydantic import BaseModel
from typing import Optional

from database.models import User
from auth.dependencies import get_current_user, get_db_session, require_admin, require_staff
from services.user_service import UserService


router = APIRouter(prefix="/api/users", tags=["users"])


class UserUpdateRequest(BaseModel):
    full_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    role: Optional[str] = None


class ProfileUpdateRequest(BaseModel):
    student_id: Optional[str] = None
    university: Optional[str] = None
    course: Optional[str] = None
    nationality: Optional[str] = None
    birth_date: Optional[str] = None
    address: Optional[str] = None
    emergency_contact: Optional[str] = None
    city: Optional[str] = None
    bi_number: Optional[str] = None


class SendSmsToUserRequest(BaseModel):
    message: str


@router.get("")
async def list_users(
    search: Optional[str] = Query(None),
    role: Optional[str] = Query(None),
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db_session)
):
    """List users, filtered by name/e-mail search and role. Staff only."""
    users = UserService.list_users(db, search=search, role=role)
    return {"data": [UserService.serialize(u) for u in users], "total": len(users)}


@router.get("/contacts")
async def list_contacts(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """Users the caller can start a conversation with."""
    return [UserService.serialize(u) for u in UserService.contacts(db, current_user)]


@router.get("/me/profile")
async def get_my_profile(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    return UserService.serialize_profile(UserService.get_profile(db, current_user.id))


@router.put("/me/profile")
async def update_my_profile(
    body: ProfileUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    profile = UserService.upsert_profile(db, current_user.id, **body.model_dump(exclude_unset=True))
    return UserService.serialize_profile(profile)


@router.get("/{user_id}")
async def get_user(
    user_id: str,
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db_session)
):
    user = UserService.get(db, user_id)
    data = UserService.serialize(user)
    data["profile"] = UserService.serialize_profile(UserService.get_profile(db, user_id))
    return data


@router.put("/{user_id}")
async def update_user(
    user_id: str,
    body: UserUpdateRequest,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    user = UserService.update(db, user_id, current_user.id, **body.model_dump(exclude_unset=True))
    return UserService.serialize(user)


@router.delete("/{user_id}")
async def delete_user(
    user_id: str,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    UserService.delete(db, user_id, current_user.id)
    return {"status": "success", "message": f"User {user_id} deleted"}


@router.post("/{user_id}/sms")
async def send_sms_to_user(
    user_id: str,
    body: SendSmsToUserRequest,
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db_session)
):
    """Send a direct SMS (max 160 characters) to a user with a phone on file."""
    return UserService.send_sms(db, user_id, body.message).to_dict()
