"""
Test configuration and fixtures.

Every test gets a fresh in-memory SQLite database, a local object store in a
temporary directory and an SMS relay that records what it was asked to send.
"""
import os

# Set testing environment before config is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key-for-testing-only"
os.environ["RATE_LIMIT_PER_MINUTE"] = "100000"
os.environ["RATE_LIMIT_PER_HOUR"] = "1000000"
os.environ["SMS_RELAY_URL"] = ""
os.environ["SMTP_USER"] = ""
os.environ["SMTP_PASSWORD"] = ""
os.environ["ENVIRONMENT"] = "testing"

from typing import List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient

import config
from auth.security import create_access_token, get_password_hash
from database.connection import Database
from database.models import DocumentType, User, UserRole
from services.sms_service import SmsRelay, SmsResult
from storage.local_store import LocalObjectStore


class RecordingSmsRelay(SmsRelay):
    """Relay double: remembers every request, optionally failing."""

    def __init__(self, fail: bool = False):
        self.sent: List[Tuple[str, str, str]] = []
        self.fail = fail

    def send_sms(self, phone, message, sms_type, db=None):
        if self.fail:
            raise RuntimeError("relay unavailable")
        self.sent.append((phone, message, sms_type))
        return SmsResult(success=True, sms_id=f"sms-{len(self.sent)}")


@pytest.fixture
def database() -> Database:
    """Fresh in-memory database with the SMS system user."""
    db = Database(database_url="sqlite://")
    db.create_tables()
    db.ensure_system_user(config.SMS_SYSTEM_SENDER_ID)
    yield db
    db.engine.dispose()


@pytest.fixture
def db_session(database: Database):
    session = database.SessionLocal()
    yield session
    session.close()


@pytest.fixture
def object_store(tmp_path) -> LocalObjectStore:
    return LocalObjectStore(tmp_path / "objects", public_base_url="http://testserver")


@pytest.fixture
def sms_relay() -> RecordingSmsRelay:
    return RecordingSmsRelay()


@pytest.fixture
def client(database, object_store, sms_relay, monkeypatch) -> TestClient:
    """API client wired to the test database, store and relay."""
    monkeypatch.setattr(config, "db", database)
    monkeypatch.setattr(config, "object_store", object_store)
    monkeypatch.setattr(config, "sms_relay", sms_relay)

    from app import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def make_user(db_session):
    """Factory creating users directly in the database."""
    def _make(
        email: str,
        full_name: str,
        role: UserRole = UserRole.STUDENT,
        phone: Optional[str] = None,
        password: Optional[str] = None,
        is_active: bool = True
    ) -> User:
        user = User(
            email=email,
            full_name=full_name,
            role=role,
            phone=phone,
            is_active=is_active,
            hashed_password=get_password_hash(password) if password else "",
        )
        db_session.add(user)
        db_session.commit()
        return user
    return _make


@pytest.fixture
def student(make_user) -> User:
    return make_user("ana@x.com", "Ana Silva", phone="+244900000001")


@pytest.fixture
def other_student(make_user) -> User:
    return make_user("b@x.com", "Bruno Costa")


@pytest.fixture
def officer(make_user) -> User:
    return make_user("officer@embassy.gov", "Carla Officer", role=UserRole.OFFICER)


@pytest.fixture
def admin(make_user) -> User:
    return make_user("admin@embassy.gov", "Diego Admin", role=UserRole.ADMIN)


def auth_headers(user: User) -> dict:
    """Bearer headers for a user."""
    token = create_access_token({"sub": user.id, "email": user.email, "role": user.role.value})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def passport_type(db_session) -> DocumentType:
    document_type = DocumentType(name="Passaporte", required=True, valid_period_months=12)
    db_session.add(document_type)
    db_session.commit()
    return document_type


@pytest.fixture
def enrollment_type(db_session) -> DocumentType:
    document_type = DocumentType(name="Matrícula", required=False)
    db_session.add(document_type)
    db_session.commit()
    return document_type
