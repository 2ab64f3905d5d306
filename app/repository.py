"""
repository.py — Storage contract for the ingestion pipeline

Narrow set of queries and writes used by the orchestrator, the watch
manager, and the routers. Every write to the account row (tokens, cursor,
watch expiry, last sync) goes through here so the two owners of that row
never clobber each other's fields.

Business Rules:
- Ledger identity is (user_id, gmail_message_id); inserting an existing
  pair is a no-op that returns False (a concurrent run won the race)
- Subscription duplicate identity is (user_id, email_subject)
- Reminder lead time is clamped to 1–14 days on every write
- Functions flush and the caller decides when to commit, except
  mark_processed, which commits so "processed" is durable per message

Called by: services/*, routers/*
Depends on: models
"""

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .models import ProcessedMessage, Subscription, User, UserSettings
from .schemas.settings import MAX_REMINDER_DAYS, MIN_REMINDER_DAYS

log = logging.getLogger("subscout.repository")

DEFAULT_REMINDER_DAYS = 2


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ── Accounts ─────────────────────────────────────────────────────────


def get_user(db: Session, user_id: int) -> User | None:
    return db.get(User, user_id)


def get_user_by_email(db: Session, email: str) -> User | None:
    if not email:
        return None
    return db.query(User).filter(func.lower(User.email) == email.strip().lower()).first()


def update_tokens(
    db: Session, user: User, access_token: str, expires_at: datetime,
    refresh_token: str | None = None,
) -> None:
    user.google_access_token = access_token
    user.google_token_expiry = expires_at
    if refresh_token:
        user.google_refresh_token = refresh_token
    db.flush()


def advance_cursor(db: Session, user: User, history_id: str | None) -> None:
    """Persist a new change cursor. A None cursor leaves the stored one alone."""
    if history_id:
        user.gmail_history_id = str(history_id)
    user.last_sync_at = _now()
    db.flush()


def set_watch(db: Session, user: User, history_id: str | None, expiry: datetime | None) -> None:
    """Record (or clear, when both are None) the push-watch state."""
    user.gmail_history_id = str(history_id) if history_id else None
    user.gmail_watch_expiry = expiry
    db.flush()


def touch_last_sync(db: Session, user: User) -> None:
    user.last_sync_at = _now()
    db.flush()


def users_with_expiring_watch(db: Session, window: timedelta) -> list[User]:
    """Accounts whose watch expires before now + window and that have a token."""
    cutoff = _now() + window
    return (
        db.query(User)
        .filter(
            User.gmail_watch_expiry.isnot(None),
            User.gmail_watch_expiry < cutoff,
            User.google_access_token.isnot(None),
        )
        .order_by(User.id)
        .all()
    )


# ── Settings ─────────────────────────────────────────────────────────


def clamp_reminder_days(days: int) -> int:
    return min(MAX_REMINDER_DAYS, max(MIN_REMINDER_DAYS, int(days)))


def get_settings(db: Session, user_id: int) -> UserSettings | None:
    return db.query(UserSettings).filter(UserSettings.user_id == user_id).first()


def get_or_create_settings(db: Session, user_id: int) -> UserSettings:
    existing = get_settings(db, user_id)
    if existing:
        return existing
    row = UserSettings(
        user_id=user_id, reminder_days_before=DEFAULT_REMINDER_DAYS, enabled=True
    )
    db.add(row)
    db.flush()
    return row


def update_settings(
    db: Session, row: UserSettings, *,
    reminder_days_before: int | None = None, enabled: bool | None = None,
) -> UserSettings:
    if reminder_days_before is not None:
        row.reminder_days_before = clamp_reminder_days(reminder_days_before)
    if enabled is not None:
        row.enabled = enabled
    row.updated_at = _now()
    db.flush()
    return row


# ── Processed-message ledger ─────────────────────────────────────────


def is_processed(db: Session, user_id: int, message_id: str) -> bool:
    return (
        db.query(ProcessedMessage.id)
        .filter(
            ProcessedMessage.user_id == user_id,
            ProcessedMessage.gmail_message_id == message_id,
        )
        .first()
        is not None
    )


def already_processed(db: Session, user_id: int, message_ids: list[str]) -> set[str]:
    """One query: which of these message ids are already in the ledger."""
    if not message_ids:
        return set()
    rows = (
        db.query(ProcessedMessage.gmail_message_id)
        .filter(
            ProcessedMessage.user_id == user_id,
            ProcessedMessage.gmail_message_id.in_(message_ids),
        )
        .all()
    )
    return {r[0] for r in rows}


def mark_processed(db: Session, user_id: int, message_id: str, is_subscription: bool) -> bool:
    """Insert and commit the ledger row.

    Returns False if another run already inserted it. The session must
    have no other pending work: a duplicate key rolls the session back.
    """
    try:
        db.add(
            ProcessedMessage(
                user_id=user_id,
                gmail_message_id=message_id,
                is_subscription=is_subscription,
                processed_at=_now(),
            )
        )
        db.commit()
    except IntegrityError:
        # Duplicate key: a concurrent run processed it first
        db.rollback()
        log.info(f"Message {message_id} already in ledger for user {user_id}")
        return False
    return True


# ── Subscriptions ────────────────────────────────────────────────────


def find_subscription_by_subject(db: Session, user_id: int, subject: str) -> Subscription | None:
    return (
        db.query(Subscription)
        .filter(Subscription.user_id == user_id, Subscription.email_subject == subject)
        .first()
    )


def get_subscription(db: Session, user_id: int, subscription_id: int) -> Subscription | None:
    return (
        db.query(Subscription)
        .filter(Subscription.id == subscription_id, Subscription.user_id == user_id)
        .first()
    )


def list_subscriptions(db: Session, user_id: int) -> list[Subscription]:
    return (
        db.query(Subscription)
        .filter(Subscription.user_id == user_id)
        .order_by(Subscription.end_date.is_(None), Subscription.end_date, Subscription.id)
        .all()
    )


def insert_subscription(db: Session, **fields) -> Subscription:
    sub = Subscription(**fields)
    db.add(sub)
    db.flush()
    return sub


def update_subscription(db: Session, sub: Subscription, **fields) -> Subscription:
    for key, value in fields.items():
        setattr(sub, key, value)
    sub.updated_at = _now()
    db.flush()
    return sub


def delete_subscription(db: Session, sub: Subscription) -> None:
    db.delete(sub)
    db.flush()
