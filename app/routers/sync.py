"""Manual sync, diagnostic scan, and the watch-renewal cron.

/api/sync/manual is the dashboard button. /api/test/scan-recent and
/api/cron/renew-watches are shared-secret routes for operators and the
external scheduler.
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from loguru import logger
from sqlalchemy.orm import Session

from .. import repository
from ..config import settings
from ..database import get_db
from ..dependencies import require_cron_secret, require_user
from ..models import User
from ..services.gmail_service import GmailApiError
from ..services.ingestion import run_ingestion
from ..services.watch_service import renew_expiring_watches

router = APIRouter(tags=["sync"])


@router.post("/api/sync/manual")
async def manual_sync(user: User = Depends(require_user), db: Session = Depends(get_db)):
    """Scan the most recent primary-inbox messages for the signed-in user."""
    try:
        result = await run_ingestion(
            user, db, mode="recent", recent_count=settings.manual_sync_count, trigger="manual"
        )
    except GmailApiError as e:
        db.rollback()
        logger.error(f"[manual] Gmail error for user {user.id}: {e}")
        raise HTTPException(502, "Could not read your mailbox. Please try again.")
    except Exception as e:
        db.rollback()
        logger.exception(f"[manual] Sync failed for user {user.id}: {e}")
        raise HTTPException(500, f"Sync failed: {str(e)[:200]}")

    if result.skipped_reason == "no_token":
        raise HTTPException(401, "No valid access token. Please reconnect your Google account.")

    if result.skipped_reason == "disabled":
        message = "Monitoring is disabled. Enable it in settings to sync."
    elif result.fetched == 0:
        message = "No new emails to process."
    elif result.new_subscriptions:
        message = f"Found {result.new_subscriptions} new subscription(s)!"
    else:
        message = f"Processed {result.processed} email(s). No new subscriptions found."

    return {
        "success": True,
        "processed": result.processed,
        "newSubscriptions": result.new_subscriptions,
        "skipped": result.skipped,
        "errors": result.errors,
        "message": message,
    }


@router.get("/api/test/scan-recent", dependencies=[Depends(require_cron_secret)])
async def scan_recent(
    email: str = Query(""),
    count: int = Query(3, ge=1, le=50),
    force: bool = Query(False),
    db: Session = Depends(get_db),
):
    """Diagnostic: classify the last `count` messages and report per-message outcomes."""
    if not email:
        raise HTTPException(400, "?email= required")
    user = repository.get_user_by_email(db, email)
    if not user:
        raise HTTPException(404, "User not found")

    try:
        result = await run_ingestion(
            user, db, mode="recent", recent_count=count, force=force,
            trigger="scan", ignore_disabled=True,
        )
    except Exception as e:
        db.rollback()
        logger.exception(f"[scan] Failed for user {user.id}: {e}")
        raise HTTPException(500, f"Scan failed: {str(e)[:200]}")

    if result.skipped_reason == "no_token":
        raise HTTPException(401, "No valid token")

    return {
        "processed": len(result.results),
        "results": [r.model_dump(mode="json") for r in result.results],
    }


@router.get("/api/cron/renew-watches", dependencies=[Depends(require_cron_secret)])
async def renew_watches(db: Session = Depends(get_db)):
    try:
        return await renew_expiring_watches(db)
    except Exception as e:
        db.rollback()
        logger.exception(f"[cron] Watch renewal failed: {e}")
        raise HTTPException(500, "Internal server error")
