"""
conftest.py — Shared Test Fixtures for SubScout

Provides an in-memory SQLite database, FastAPI TestClient with auth
overrides, factory fixtures for core models, and Gmail message builders.

Business Rules:
- All tests run against isolated in-memory DB (no prod data risk)
- Auth is overridden so tests don't need Google sessions
- Each test function gets fresh tables
- No test talks to Google or Anthropic: services are patched per test

Called by: all test files via pytest autodiscovery
Depends on: app.models (Base), app.database (get_db), app.dependencies
"""

import os

os.environ["TESTING"] = "1"  # Must be set before importing app modules
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["CRON_SECRET"] = "test-cron-secret"
os.environ["PUBSUB_VERIFICATION_TOKEN"] = "test-pubsub-token"
os.environ["ANTHROPIC_API_KEY"] = "test-anthropic-key"
os.environ["GCP_PROJECT_ID"] = "test-project"

import base64
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.models import Base, User, UserSettings
from app.services.gmail_service import MailMessage

# ── In-memory SQLite engine ──────────────────────────────────────────

TEST_DB_URL = "sqlite://"  # in-memory, fresh per session

engine = create_engine(
    TEST_DB_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@event.listens_for(engine, "connect")
def _enable_fk(dbapi_conn, _):
    """SQLite ignores FKs by default, turn them on."""
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


# ── Fixtures ─────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def db_session():
    """Create all tables, yield a session, then tear down."""
    Base.metadata.create_all(bind=engine)
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def test_user(db_session: Session) -> User:
    """A connected account with a fresh Google token and a history cursor."""
    user = User(
        email="user@example.com",
        name="Test User",
        google_access_token="access-token",
        google_refresh_token="refresh-token",
        google_token_expiry=datetime.now(timezone.utc) + timedelta(hours=1),
        gmail_history_id="90",
        created_at=datetime.now(timezone.utc),
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture()
def user_settings(db_session: Session, test_user: User) -> UserSettings:
    row = UserSettings(user_id=test_user.id, reminder_days_before=2, enabled=True)
    db_session.add(row)
    db_session.commit()
    db_session.refresh(row)
    return row


@pytest.fixture()
def client(db_session: Session, test_user: User) -> TestClient:
    """FastAPI TestClient with auth overridden to return test_user."""
    from app.database import get_db
    from app.dependencies import require_user
    from app.main import app

    def _override_db():
        yield db_session

    def _override_user():
        return test_user

    app.dependency_overrides[get_db] = _override_db
    app.dependency_overrides[require_user] = _override_user

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture()
def cron_headers() -> dict:
    return {"Authorization": "Bearer test-cron-secret"}


# ── Gmail message builders ───────────────────────────────────────────


def b64url(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode()).decode().rstrip("=")


def make_message(
    message_id: str,
    subject: str = "Your trial has started",
    sender: str = "Acme <billing@acme.com>",
    body: str = "Your 14-day free trial has started.",
    labels: list[str] | None = None,
    sent_at: datetime | None = None,
) -> MailMessage:
    sent_at = sent_at or datetime(2026, 1, 10, 12, 0, tzinfo=timezone.utc)
    return MailMessage(
        id=message_id,
        thread_id=f"t-{message_id}",
        label_ids=labels if labels is not None else ["INBOX", "CATEGORY_PERSONAL"],
        snippet=body[:100],
        payload={
            "mimeType": "text/plain",
            "headers": [
                {"name": "Subject", "value": subject},
                {"name": "From", "value": sender},
            ],
            "body": {"data": b64url(body)},
        },
        internal_date=str(int(sent_at.timestamp() * 1000)),
    )


@pytest.fixture()
def make_msg():
    """Factory fixture: make_msg("m1", subject=..., labels=[...])."""
    return make_message
