"""Gmail push-watch lifecycle — register, stop, renew.

Gmail watches lapse after ~7 days. The renewal sweep is triggered by an
external cron hitting /api/cron/renew-watches; there is no in-process loop.

Business Rules:
- enable_watch persists the returned history id as the new cursor
- disable_watch always clears cursor + expiry, even if users.stop fails
- Renewal candidates: stored access token AND expiry before now + window
- One account's failure never stops the sweep
"""

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Session

from app import repository
from app.config import settings
from app.database import as_utc
from app.models import User
from app.services.gmail_service import GmailService
from app.services.token_service import get_valid_token

log = logging.getLogger("subscout.watch")


class WatchError(Exception):
    """Watch could not be registered for an account."""


def watch_state(user: User, now: datetime | None = None) -> str:
    if not user.gmail_watch_expiry:
        return "inactive"
    now = now or datetime.now(timezone.utc)
    expiry = as_utc(user.gmail_watch_expiry)
    if expiry <= now + timedelta(hours=settings.watch_renew_window_hours):
        return "expiring"
    return "active"


async def enable_watch(user: User, db: Session, access_token: str | None = None) -> datetime:
    """Register the watch and persist the cursor. Returns the expiry."""
    access_token = access_token or await get_valid_token(user, db)
    if not access_token:
        raise WatchError("No valid access token")

    history_id, expiry = await GmailService(access_token).register_watch()
    repository.set_watch(db, user, history_id, expiry)
    db.commit()
    log.info(f"Gmail watch registered for user {user.id}, expires {expiry.isoformat()}")
    return expiry


async def disable_watch(user: User, db: Session, access_token: str | None = None) -> None:
    access_token = access_token or await get_valid_token(user, db)
    if access_token:
        try:
            await GmailService(access_token).deregister_watch()
        except Exception as e:
            log.warning(f"Failed to stop Gmail watch for user {user.id}: {e}")
    else:
        log.info(f"No token to stop Gmail watch for user {user.id}; clearing locally")

    repository.set_watch(db, user, None, None)
    db.commit()
    log.info(f"Gmail watch cleared for user {user.id}")


async def renew_expiring_watches(db: Session) -> dict:
    """Re-register every watch that lapses within the renewal window."""
    window = timedelta(hours=settings.watch_renew_window_hours)
    candidates = repository.users_with_expiring_watch(db, window)
    results = []

    for user in candidates:
        user_id = user.id
        try:
            access_token = await get_valid_token(user, db)
            if not access_token:
                results.append({"user_id": user_id, "status": "failed", "error": "Token refresh failed"})
                continue
            await enable_watch(user, db, access_token=access_token)
            results.append({"user_id": user_id, "status": "renewed"})
        except Exception as e:
            db.rollback()
            log.error(f"Failed to renew watch for user {user_id}: {e}")
            results.append({"user_id": user_id, "status": "failed", "error": str(e)[:200]})

    renewed = sum(1 for r in results if r["status"] == "renewed")
    log.info(f"Watch renewal: {renewed}/{len(candidates)} renewed")
    return {"processed": len(candidates), "results": results}
