"""
SMS relay.

There is no carrier integration: StubSmsRelay logs the request and records a
bookkeeping Message row sent by the system user. HttpSmsRelay forwards the
same request to an external relay endpoint configured by SMS_RELAY_URL.
"""
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import requests
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.exceptions import ValidationError
from core.logger import logger
from database.models import Message
import config

SMS_QUEUED_MESSAGE = "SMS queued for delivery"


@dataclass
class SmsResult:
    success: bool
    sms_id: Optional[str] = None
    message: str = SMS_QUEUED_MESSAGE

    def to_dict(self) -> dict:
        return {"success": self.success, "message": self.message, "sms_id": self.sms_id}


class SmsRelay(ABC):
    """Interface for sending one SMS."""

    @abstractmethod
    def send_sms(self, phone: str, message: str, sms_type: str, db: Optional[Session] = None) -> SmsResult:
        """Send one SMS; db is the caller's session when it has one."""


class StubSmsRelay(SmsRelay):
    """Logs the SMS and writes one system-sent Message row with no receiver."""

    def __init__(self, database=None, system_sender_id: Optional[str] = None):
        """
        Args:
            database: Database used when the caller does not pass a session
            system_sender_id: Sentinel sender of bookkeeping rows
        """
        self.database = database
        self.system_sender_id = system_sender_id or config.SMS_SYSTEM_SENDER_ID

    def send_sms(self, phone: str, message: str, sms_type: str, db: Optional[Session] = None) -> SmsResult:
        if not phone or not message:
            raise ValidationError("Phone and message are required")

        logger.info(f"SMS to {phone}: {message}")

        row = Message(
            sender_id=self.system_sender_id,
            receiver_id=None,
            content=message,
            is_sms=True,
            sms_status="sent",
            group_id=f"sms_{sms_type}_{int(time.time() * 1000)}",
        )
        try:
            if db is not None:
                db.add(row)
                db.commit()
            elif self.database is not None:
                with self.database.get_session() as session:
                    session.add(row)
            else:
                return SmsResult(success=True)
        except SQLAlchemyError as e:
            if db is not None:
                db.rollback()
            logger.error(f"Error recording SMS for {phone}: {e}", exc_info=True)
            return SmsResult(success=True)

        return SmsResult(success=True, sms_id=row.id)


class HttpSmsRelay(SmsRelay):
    """Forwards SMS requests to an HTTP relay speaking the same JSON contract."""

    def __init__(self, url: str, token: str = "", timeout: float = 10.0):
        self.url = url
        self.token = token
        self.timeout = timeout

    def send_sms(self, phone: str, message: str, sms_type: str, db: Optional[Session] = None) -> SmsResult:
        if not phone or not message:
            raise ValidationError("Phone and message are required")

        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        response = requests.post(
            self.url,
            json={"phone": phone, "message": message, "type": sms_type},
            headers=headers,
            timeout=self.timeout,
        )
        response.raise_for_status()
        data = response.json()
        return SmsResult(
            success=bool(data.get("success", True)),
            sms_id=data.get("sms_id"),
            message=data.get("message", SMS_QUEUED_MESSAGE),
        )


def create_sms_relay(database=None) -> SmsRelay:
    """Relay selected by configuration: HTTP when SMS_RELAY_URL is set, stub otherwise."""
    if config.SMS_RELAY_URL:
        logger.info(f"Using HTTP SMS relay at {config.SMS_RELAY_URL}")
        return HttpSmsRelay(config.SMS_RELAY_URL, config.SMS_RELAY_TOKEN, config.SMS_RELAY_TIMEOUT)
    logger.info("Using stub SMS relay (no carrier delivery)")
    return StubSmsRelay(database)


def send_sms_best_effort(
    relay: Optional[SmsRelay],
    phone: Optional[str],
    message: str,
    sms_type: str,
    db: Optional[Session] = None
) -> bool:
    """
    Send an SMS as an optional side channel.

    Missing relay or phone skips silently. Relay failures are logged and
    never propagate, the primary action has already been committed.

    Returns:
        True if the relay reported success
    """
    if relay is None or not phone:
        return False
    try:
        return relay.send_sms(phone, message, sms_type, db=db).success
    except Exception as e:
        logger.error(f"SMS relay failed for {phone} ({sms_type}): {e}", exc_info=True)
        return False
