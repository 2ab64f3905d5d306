"""
settings.py — Pydantic schemas for account settings and subscription edits.

Called by: routers/settings.py, routers/subscriptions.py
Depends on: pydantic
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict

MIN_REMINDER_DAYS = 1
MAX_REMINDER_DAYS = 14


class SettingsUpdate(BaseModel):
    """PUT /api/settings body. Out-of-range lead times are clamped, not rejected."""

    reminderDaysBefore: int | None = None
    enabled: bool | None = None


class SettingsOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    reminder_days_before: int
    enabled: bool
    updated_at: datetime | None = None


class SubscriptionUpdate(BaseModel):
    """PATCH /api/subscriptions/{id} body."""

    endDate: datetime | None = None
    status: Literal["active", "expiring_soon", "expired", "cancelled"] | None = None


class SubscriptionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    service_name: str
    type: str
    status: str
    detected_date: datetime
    end_date: datetime | None = None
    calendar_event_id: str | None = None
    email_subject: str
    email_snippet: str | None = None
    confidence: int | None = None
    created_at: datetime | None = None
