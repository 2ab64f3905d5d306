"""Detected subscriptions and trials."""

from datetime import datetime, timezone

from sqlalchemy import Column, Enum, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from ..database import UTCDateTime
from .base import Base

SUBSCRIPTION_TYPES = ("trial", "subscription")
SUBSCRIPTION_STATUSES = ("active", "expiring_soon", "expired", "cancelled")


def _now():
    return datetime.now(timezone.utc)


class Subscription(Base):
    __tablename__ = "subscriptions"
    id = Column(Integer, primary_key=True)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    service_name = Column(String(255), nullable=False)
    type = Column(
        Enum(*SUBSCRIPTION_TYPES, name="subscription_type"), nullable=False
    )
    detected_date = Column(UTCDateTime, nullable=False)
    end_date = Column(UTCDateTime)
    calendar_event_id = Column(String(255))
    status = Column(
        Enum(*SUBSCRIPTION_STATUSES, name="subscription_status"),
        nullable=False,
        default="active",
    )
    email_subject = Column(Text, nullable=False)
    email_snippet = Column(Text)
    confidence = Column(Integer)  # percent, 0-100
    created_at = Column(UTCDateTime, default=_now)
    updated_at = Column(UTCDateTime, default=_now, onupdate=_now)

    user = relationship("User", back_populates="subscriptions")

    __table_args__ = (
        Index("ix_subscriptions_user_subject", "user_id", "email_subject"),
    )
