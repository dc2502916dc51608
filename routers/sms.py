"""
SMS relay endpoint.
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from pydantic import BaseModel
from typing import Optional

from database.models import User
from auth.dependencies import get_current_user, get_db_session
from core.exceptions import ValidationError
import config


router = APIRouter(prefix="/api/sms", tags=["sms"])


class SendSmsRequest(BaseModel):
    phone: Optional[str] = None
    message: Optional[str] = None
    type: str = "general"


@router.post("/send")
async def send_sms(
    body: SendSmsRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """
    Hand one SMS to the configured relay.

    Missing phone or message is a 400. With the stub relay nothing leaves the
    server: the request is logged and a system-sent bookkeeping message row
    is written.
    """
    if not body.phone or not body.phone.strip():
        raise ValidationError("Phone is required", field="phone")
    if not body.message or not body.message.strip():
        raise ValidationError("Message is required", field="message")
    if config.sms_relay is None:
        raise HTTPException(status_code=503, detail="SMS relay not initialized")
    result = config.sms_relay.send_sms(body.phone, body.message, body.type, db=db)
    return result.to_dict()
