"""
Authentication routes: registration, login and current user.
"""
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session
from pydantic import BaseModel
from typing import Optional

from database.models import User
from auth.dependencies import get_current_user, get_db_session
from services.auth_service import AuthService
from services.audit_service import AuditService
from services.email_service import EmailService
from services.user_service import UserService


router = APIRouter(prefix="/api/auth", tags=["authentication"])


class RegisterRequest(BaseModel):
    """Self-registration request. Extra profile fields are optional."""
    email: str
    password: str
    confirm_password: str
    full_name: str
    phone: Optional[str] = None
    university: Optional[str] = None
    city: Optional[str] = None
    bi_number: Optional[str] = None


class LoginRequest(BaseModel):
    email: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: dict


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def register(
    body: RegisterRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db_session)
):
    """Create a student account and return an access token."""
    user = AuthService.register(
        db,
        email=body.email,
        password=body.password,
        confirm_password=body.confirm_password,
        full_name=body.full_name,
        phone=body.phone,
        profile={"university": body.university, "city": body.city, "bi_number": body.bi_number},
    )
    AuditService.log_from_request(db, request, "create", user_id=user.id, table_name="users", record_id=user.id)

    mail = getattr(request.app.state, "mail", None)
    if mail is not None:
        background_tasks.add_task(EmailService.send_welcome_email, mail, user.email, user.full_name)

    return TokenResponse(access_token=AuthService.create_token(user), user=UserService.serialize(user))


@router.post("/login", response_model=TokenResponse)
async def login(body: LoginRequest, request: Request, db: Session = Depends(get_db_session)):
    user = AuthService.authenticate_user(db, body.email, body.password)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    AuditService.log_from_request(db, request, "login", user_id=user.id, table_name="users", record_id=user.id)
    return TokenResponse(access_token=AuthService.create_token(user), user=UserService.serialize(user))


@router.get("/me")
async def me(current_user: User = Depends(get_current_user)):
    return UserService.serialize(current_user)
