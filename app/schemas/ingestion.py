"""
ingestion.py — Pydantic schemas for the ingestion pipeline.

Covers the classifier output contract, Gmail Pub/Sub push payloads, and
the aggregate result returned by every ingestion trigger.

Called by: services/classifier.py, services/ingestion.py, routers/webhooks.py, routers/sync.py
Depends on: pydantic
"""

from __future__ import annotations

import base64
import json
from datetime import date
from typing import Literal

from pydantic import BaseModel, Field, field_validator


# ── Classification ──────────────────────────────────────────────────


class Classification(BaseModel):
    """Structured classifier verdict for one email."""

    is_subscription: bool = False
    confidence: float = 0.0
    service_name: str | None = None
    type: Literal["trial", "subscription"] | None = None
    duration_days: int | None = None
    end_date: date | None = None
    reasoning: str = ""

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v) -> float:
        if v is None:
            return 0.0
        return min(1.0, max(0.0, float(v)))

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v):
        if isinstance(v, str):
            v = v.strip().lower()
            return v if v in ("trial", "subscription") else None
        return v

    @field_validator("duration_days", mode="before")
    @classmethod
    def positive_duration(cls, v):
        if v in (None, ""):
            return None
        v = int(v)
        return v if v > 0 else None

    @field_validator("end_date", mode="before")
    @classmethod
    def parse_end_date(cls, v):
        if v in (None, ""):
            return None
        if isinstance(v, str):
            return date.fromisoformat(v[:10])
        return v

    @classmethod
    def failed(cls, reason: str) -> Classification:
        return cls(is_subscription=False, confidence=0.0, reasoning=f"Failed to classify: {reason}")


# ── Gmail push (Pub/Sub) ────────────────────────────────────────────


class PubSubMessage(BaseModel):
    data: str | None = None
    messageId: str | None = None
    publishTime: str | None = None


class GmailPushEnvelope(BaseModel):
    """Pub/Sub push request body."""

    message: PubSubMessage = Field(default_factory=PubSubMessage)
    subscription: str | None = None

    def decode(self) -> GmailPushData:
        raw = base64.b64decode(self.message.data or "").decode("utf-8")
        return GmailPushData.model_validate(json.loads(raw))


class GmailPushData(BaseModel):
    emailAddress: str
    historyId: str

    @field_validator("historyId", mode="before")
    @classmethod
    def coerce_history_id(cls, v) -> str:
        return str(v)


# ── Results ─────────────────────────────────────────────────────────


class MessageResult(BaseModel):
    """Per-message outcome, surfaced by the diagnostic scan."""

    message_id: str
    subject: str = ""
    sender: str = ""
    status: Literal[
        "already_processed",
        "promotional",
        "not_subscription",
        "subscription_created",
        "subscription_already_exists",
        "error",
    ]
    classification: Classification | None = None
    error: str | None = None


class IngestionResult(BaseModel):
    """Aggregate counts for one ingestion run."""

    user_id: int
    mode: Literal["cursor", "recent"]
    trigger: str = ""
    fetched: int = 0
    processed: int = 0
    skipped: int = 0
    new_subscriptions: int = 0
    errors: int = 0
    new_cursor: str | None = None
    skipped_reason: Literal["disabled", "no_token"] | None = None
    results: list[MessageResult] = Field(default_factory=list)

    def summary(self) -> str:
        return (
            f"{self.processed} processed, {self.new_subscriptions} subscriptions created, "
            f"{self.skipped} skipped, {self.errors} errors"
        )
