"""
classifier.py — Subscription/trial detection with Claude

Given one email's subject, sender, body and date, asks Claude for a
structured verdict: is this a subscription or trial signup, which service,
and when does it end.

Business Rules:
- Body is truncated to 4000 characters before submission
- Never raises: any call, parse or validation failure becomes a negative
  Classification with confidence 0 and a "Failed to classify: ..." reason
- Callers only gate on is_subscription + confidence

Called by: services/ingestion.py
Depends on: utils/claude_client.py, schemas/ingestion.py
"""

import logging
from datetime import datetime

from pydantic import ValidationError

from app.config import settings
from app.schemas.ingestion import Classification
from app.utils.claude_client import ClaudeError, claude_structured

log = logging.getLogger("subscout.classifier")

MAX_BODY_CHARS = 4000

SYSTEM_PROMPT = """You are an email classification assistant helping users track subscriptions and trials so they can review them before renewal or expiration.

Determine if the email represents a subscription signup, trial activation, or free trial confirmation that the user should be reminded about.

Mark as subscription (is_subscription = true) when the email explicitly confirms:
- Trial activation: "free trial", "trial period", "trial started", "X-day trial", "trial expires on", "trial will end"
- Subscription start: "subscription confirmed", "membership activated", "billing started", "recurring payment"
- Time-limited access: access ending on a specific date or after a duration

Mark as NOT a subscription (is_subscription = false) for:
- Generic welcome/onboarding emails without trial or billing language
- Account creation confirmations without subscription context
- One-time purchase receipts
- Newsletters, marketing emails, promotional offers
- Password resets, verifications, shipping notifications
- Product updates, feedback requests, team introductions

The email must explicitly reference a trial period, subscription, billing cycle, or time-limited access, not just account creation.

Extraction rules:
1. service_name: from the sender name, domain, or prominent branding
2. end_date: if explicitly stated, as YYYY-MM-DD
3. duration_days: if mentioned ("14-day trial"); monthly = 30, yearly = 365
4. type: "trial" for free trials, "subscription" for paid recurring services
5. confidence: 0.0 to 1.0
6. reasoning: one sentence explaining the decision

Examples:
Email: "Welcome to Notion! Your 14-day Pro trial has started. Your trial ends on Feb 1, 2026."
-> {"is_subscription": true, "confidence": 0.95, "service_name": "Notion", "type": "trial", "duration_days": 14, "end_date": "2026-02-01", "reasoning": "Explicitly confirms 14-day trial activation with end date."}

Email: "Thanks for joining Acme! We're excited to have you. Check out our getting started guide."
-> {"is_subscription": false, "confidence": 0.9, "service_name": "Acme", "type": null, "duration_days": null, "end_date": null, "reasoning": "Generic welcome email with no mention of trial, subscription, or billing."}"""

CLASSIFICATION_SCHEMA = {
    "type": "object",
    "properties": {
        "is_subscription": {"type": "boolean"},
        "confidence": {"type": "number", "minimum": 0, "maximum": 1},
        "service_name": {"type": ["string", "null"]},
        "type": {"type": ["string", "null"], "enum": ["trial", "subscription", None]},
        "duration_days": {"type": ["integer", "null"]},
        "end_date": {"type": ["string", "null"], "description": "YYYY-MM-DD"},
        "reasoning": {"type": "string"},
    },
    "required": ["is_subscription", "confidence", "reasoning"],
}


def _format_date(occurred_at: datetime | None) -> str:
    if not occurred_at:
        return "Not provided"
    return occurred_at.strftime("%a, %b %d, %Y %H:%M %Z").strip()


def build_prompt(subject: str, sender: str, body: str, occurred_at: datetime | None = None) -> str:
    return (
        "Email to analyze:\n"
        f"Subject: {subject}\n"
        f"From: {sender}\n"
        f"Date: {_format_date(occurred_at)}\n"
        f"Body: {(body or '')[:MAX_BODY_CHARS]}"
    )


async def classify_email(
    subject: str, sender: str, body: str, occurred_at: datetime | None = None
) -> Classification:
    """Classify one email. Always returns a Classification."""
    prompt = build_prompt(subject, sender, body, occurred_at)
    try:
        raw = await claude_structured(
            prompt,
            CLASSIFICATION_SCHEMA,
            system=SYSTEM_PROMPT,
            model_tier=settings.classifier_model_tier,
            max_tokens=500,
            raise_errors=True,
        )
        return Classification.model_validate(raw or {})
    except ClaudeError as e:
        log.error(f"Classifier call failed for '{subject[:80]}': {e}")
        return Classification.failed(str(e))
    except (ValidationError, ValueError, TypeError) as e:
        log.error(f"Classifier returned unusable output for '{subject[:80]}': {e}")
        return Classification.failed(str(e))
    except Exception as e:
        log.exception(f"Unexpected classifier failure for '{subject[:80]}': {e}")
        return Classification.failed(str(e))
