"""Email pipeline models — processed-message ledger."""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, ForeignKey, Index, Integer, Text

from ..database import UTCDateTime
from .base import Base


class ProcessedMessage(Base):
    """Dedup ledger — one row per (user, Gmail message) ever classified."""

    __tablename__ = "processed_emails"
    id = Column(Integer, primary_key=True)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    gmail_message_id = Column(Text, nullable=False)
    is_subscription = Column(Boolean, nullable=False, default=False)
    processed_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        Index("ix_processed_user_message", "user_id", "gmail_message_id", unique=True),
    )
