"""Account models — mailbox owner, Google credentials, watch state, settings."""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from ..database import UTCDateTime
from ..utils.encrypted_type import EncryptedText
from .base import Base


def _now():
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True)
    email = Column(String(255), unique=True, nullable=False)
    name = Column(String(255))
    image = Column(String(500))

    # Google OAuth credentials
    google_access_token = Column(EncryptedText)
    google_refresh_token = Column(EncryptedText)
    google_token_expiry = Column(UTCDateTime)

    # Gmail change cursor + push watch
    gmail_history_id = Column(String(64))
    gmail_watch_expiry = Column(UTCDateTime)
    last_sync_at = Column(UTCDateTime)

    created_at = Column(UTCDateTime, default=_now)
    updated_at = Column(UTCDateTime, default=_now, onupdate=_now)

    settings = relationship(
        "UserSettings", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )
    subscriptions = relationship(
        "Subscription", back_populates="user", cascade="all, delete-orphan"
    )


class UserSettings(Base):
    """Per-account reminder lead time and monitoring switch."""

    __tablename__ = "settings"
    id = Column(Integer, primary_key=True)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    reminder_days_before = Column(Integer, nullable=False, default=2)
    enabled = Column(Boolean, nullable=False, default=True)
    created_at = Column(UTCDateTime, default=_now)
    updated_at = Column(UTCDateTime, default=_now, onupdate=_now)

    user = relationship("User", back_populates="settings")
