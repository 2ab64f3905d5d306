"""Google token management — keep each account's access token valid.

Use get_valid_token() before EVERY Gmail or Calendar call (webhook, manual
sync, renewal sweep, settings toggle). A None return means "skip this
account for this run", never a fatal error for a batch job.
"""

import logging
from datetime import datetime, timedelta, timezone

import httpx
from sqlalchemy.orm import Session

from app import repository
from app.config import settings
from app.database import as_utc
from app.models import User

log = logging.getLogger("subscout.token")

TOKEN_URL = "https://oauth2.googleapis.com/token"


def is_token_fresh(expires_at: datetime | None, now: datetime | None = None) -> bool:
    """True when the token expires more than the safety buffer from now."""
    if not expires_at:
        return False
    now = now or datetime.now(timezone.utc)
    buffer = timedelta(minutes=settings.token_expiry_buffer_minutes)
    return as_utc(expires_at) > now + buffer


async def get_valid_token(user: User, db: Session) -> str | None:
    """Get a valid Google access token for user, refreshing if near expiry.

    Returns the access token string, or None when there is no token, no
    refresh token, or the refresh fails. Stored tokens are left untouched
    on failure.
    """
    if not user.google_access_token:
        log.info(f"No access token stored for user {user.id}")
        return None

    if is_token_fresh(user.google_token_expiry):
        return user.google_access_token

    if not user.google_refresh_token:
        log.info(f"Token expired and no refresh token for user {user.id}")
        return None

    return await refresh_user_token(user, db)


async def refresh_user_token(user: User, db: Session) -> str | None:
    """Refresh a single user's Google token. Returns new access token or None."""
    result = await _refresh_access_token(
        user.google_refresh_token,
        settings.google_client_id,
        settings.google_client_secret,
    )
    if not result:
        log.warning(f"Token refresh failed for user {user.id}")
        return None

    access_token, expires_in, new_refresh = result
    expires_at = datetime.now(timezone.utc) + timedelta(seconds=expires_in)
    try:
        repository.update_tokens(db, user, access_token, expires_at, new_refresh)
        db.commit()
    except Exception as e:
        # The fresh token is still usable for this run
        db.rollback()
        log.error(f"Failed to persist refreshed token for user {user.id}: {e}")
        return access_token

    log.info(f"Token refreshed for user {user.id}")
    return access_token


async def _refresh_access_token(
    refresh_token: str, client_id: str, client_secret: str
) -> tuple[str, int, str | None] | None:
    """Use a refresh token to get a new access token from Google.

    Returns (access_token, expires_in_seconds, new_refresh_token_or_None)
    or None on failure.
    """
    async with httpx.AsyncClient(timeout=15) as client:
        try:
            r = await client.post(
                TOKEN_URL,
                data={
                    "client_id": client_id,
                    "client_secret": client_secret,
                    "refresh_token": refresh_token,
                    "grant_type": "refresh_token",
                },
            )
        except httpx.HTTPError as e:
            log.warning(f"Token refresh error: {e}")
            return None

    if r.status_code != 200:
        log.warning(f"Token refresh failed: {r.status_code} — {r.text[:200]}")
        return None

    tokens = r.json()
    access_token = tokens.get("access_token")
    if not access_token:
        log.warning("Token refresh response had no access_token")
        return None
    return access_token, int(tokens.get("expires_in", 3600)), tokens.get("refresh_token")
