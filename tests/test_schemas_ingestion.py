"""
test_schemas_ingestion.py — Tests for ingestion schemas

Covers Classification normalization, the failed() default, and Pub/Sub
envelope decoding.

Called by: pytest
Depends on: app.schemas.ingestion
"""

import base64
import json
from datetime import date

import pytest
from pydantic import ValidationError

from app.schemas.ingestion import Classification, GmailPushEnvelope, IngestionResult


class TestClassification:
    def test_defaults_are_negative(self):
        c = Classification()
        assert c.is_subscription is False
        assert c.confidence == 0.0

    @pytest.mark.parametrize("raw,expected", [(-0.5, 0.0), (0.7, 0.7), (3, 1.0), (None, 0.0)])
    def test_confidence_clamped(self, raw, expected):
        assert Classification(confidence=raw).confidence == expected

    def test_type_normalized(self):
        assert Classification(type=" Trial ").type == "trial"
        assert Classification(type="monthly").type is None

    def test_end_date_parsed(self):
        assert Classification(end_date="2026-02-01T00:00:00Z").end_date == date(2026, 2, 1)

    def test_bad_end_date_rejected(self):
        with pytest.raises(ValidationError):
            Classification(end_date="soon")

    def test_failed(self):
        c = Classification.failed("timeout")
        assert c.is_subscription is False
        assert c.confidence == 0.0
        assert c.reasoning == "Failed to classify: timeout"


class TestPushEnvelope:
    def test_decode(self):
        data = base64.b64encode(json.dumps({"emailAddress": "u@x.com", "historyId": 100}).encode()).decode()
        push = GmailPushEnvelope.model_validate({"message": {"data": data}}).decode()
        assert push.emailAddress == "u@x.com"
        assert push.historyId == "100"

    def test_missing_message_defaults(self):
        assert GmailPushEnvelope.model_validate({}).message.data is None


def test_ingestion_summary():
    r = IngestionResult(user_id=1, mode="recent", processed=3, new_subscriptions=1, skipped=2, errors=0)
    assert r.summary() == "3 processed, 1 subscriptions created, 2 skipped, 0 errors"
