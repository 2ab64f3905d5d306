"""Gmail push webhook — Pub/Sub push endpoint.

Pub/Sub redelivers anything that is not acknowledged with a 2xx, and each
redelivery costs Gmail quota. So after the verification token and payload
shape checks, every outcome is acknowledged with 200; failures are logged
and reported as {"status": "error_logged"}.
"""

import hmac

from fastapi import APIRouter, Depends, HTTPException, Request
from loguru import logger
from pydantic import ValidationError
from sqlalchemy.orm import Session

from .. import repository
from ..config import settings
from ..database import get_db
from ..rate_limit import limiter
from ..schemas.ingestion import GmailPushEnvelope
from ..services.ingestion import run_ingestion

router = APIRouter(tags=["webhooks"])


def _token_ok(token: str | None) -> bool:
    expected = settings.pubsub_verification_token
    return bool(expected) and bool(token) and hmac.compare_digest(token, expected)


@router.get("/api/webhooks/gmail")
async def gmail_webhook_ready():
    return {"status": "Gmail webhook endpoint ready"}


@router.post("/api/webhooks/gmail")
@limiter.limit(settings.rate_limit_webhook)
async def gmail_webhook(request: Request, db: Session = Depends(get_db)):
    """Receive a Gmail change notification and run cursor-mode ingestion."""
    if not _token_ok(request.query_params.get("token")):
        raise HTTPException(403, "Invalid token")

    try:
        envelope = GmailPushEnvelope.model_validate(await request.json())
    except (ValueError, ValidationError):
        raise HTTPException(400, "Invalid payload")
    if not envelope.message.data:
        raise HTTPException(400, "Invalid payload")

    try:
        push = envelope.decode()
        user = repository.get_user_by_email(db, push.emailAddress)
        if not user or not user.google_access_token:
            logger.info(f"[webhook] Unknown account or no token: {push.emailAddress}")
            return {"status": "ok"}

        result = await run_ingestion(
            user, db, mode="cursor", cursor_hint=push.historyId, trigger="webhook"
        )
        if result.skipped_reason:
            logger.info(f"[webhook] User {user.id} skipped: {result.skipped_reason}")
        return {"status": "ok"}
    except Exception as e:
        db.rollback()
        logger.exception(f"[webhook] Failed to process notification: {e}")
        return {"status": "error_logged"}
