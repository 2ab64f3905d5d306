"""
dependencies.py — Shared FastAPI Dependencies

Authentication dependencies used by every router.

Business Rules:
- get_user returns None if not logged in (non-throwing)
- require_user raises 401 if not logged in
- require_cron_secret raises 401 unless `Authorization: Bearer <CRON_SECRET>`
  matches; an unset secret rejects everything

Called by: all routers
Depends on: repository, models, database, config
"""

import hmac
import logging

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from . import repository
from .config import settings
from .database import get_db
from .models import User

log = logging.getLogger("subscout.auth")


def get_user(request: Request, db: Session) -> User | None:
    """Return current user from session, or None if not logged in."""
    uid = request.session.get("user_id")
    if not uid:
        return None
    try:
        return repository.get_user(db, uid)
    except Exception:
        request.session.clear()
        return None


def require_user(request: Request, db: Session = Depends(get_db)) -> User:
    """Dependency: raises 401 if no authenticated user."""
    user = get_user(request, db)
    if not user:
        raise HTTPException(401, "Not authenticated")
    return user


def require_cron_secret(request: Request) -> None:
    """Dependency: shared-secret bearer auth for cron and diagnostic routes."""
    expected = settings.cron_secret
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if not expected or scheme.lower() != "bearer" or not hmac.compare_digest(token, expected):
        log.warning(f"Rejected cron request to {request.url.path}")
        raise HTTPException(401, "Unauthorized")
