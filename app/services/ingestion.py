"""
ingestion.py — Mailbox ingestion orchestrator

One entry point, run_ingestion(), shared by the push webhook (cursor mode),
the manual sync button and the diagnostic scan (recent mode). Turns new
mailbox messages into ledger rows, subscription records and calendar
reminders.

Business Rules:
- Cursor is persisted BEFORE any message is classified; a crash mid-run
  never makes the next notification re-resolve the same window
- Ledger (user_id, gmail_message_id) is the idempotence key. A racing run
  that inserted first wins; the loser counts the message as skipped
- Subscription only when is_subscription and confidence >= threshold
  (inclusive), and no existing record has the same email subject
- End date: explicit -> detected + duration_days -> detected + 14 days
- Reminder failures never block the subscription insert
- A database failure on one message rolls back and counts as an error for
  that message only; the rest of the batch continues
- Classification is the only concurrent stage, in fixed-size batches

Called by: routers/webhooks.py, routers/sync.py
Depends on: repository, services/{token_service,gmail_service,classifier,calendar}
"""

import asyncio
import logging
from datetime import datetime, time, timedelta, timezone
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app import repository
from app.config import settings
from app.database import as_utc
from app.models import User
from app.schemas.ingestion import Classification, IngestionResult, MessageResult
from app.services.calendar import CalendarService
from app.services.classifier import classify_email
from app.services.gmail_service import (
    EmailContent,
    GmailService,
    MailMessage,
    extract_content,
    is_promotional,
)
from app.services.token_service import get_valid_token

log = logging.getLogger("subscout.ingestion")

T = TypeVar("T")
R = TypeVar("R")

UNKNOWN_SERVICE = "Unknown Service"


def compute_end_date(classification: Classification, detected: datetime) -> datetime:
    """Explicit end date wins, then detected + duration, then detected + default."""
    if classification.end_date:
        return datetime.combine(classification.end_date, time.min, tzinfo=timezone.utc)
    detected = as_utc(detected)
    days = classification.duration_days or settings.default_duration_days
    return detected + timedelta(days=days)


async def classify_in_batches(
    items: list[T],
    fn: Callable[[T], Awaitable[R]],
    batch_size: int | None = None,
) -> list[R | BaseException]:
    """Run fn over items, batch_size at a time. Results keep input order.

    A failing item yields its exception in place; siblings are unaffected.
    """
    batch_size = max(1, batch_size or settings.classify_batch_size)
    results: list[R | BaseException] = []
    for i in range(0, len(items), batch_size):
        batch = items[i:i + batch_size]
        results.extend(await asyncio.gather(*[fn(item) for item in batch], return_exceptions=True))
    return results


async def _classify_message(message: MailMessage) -> tuple[MailMessage, EmailContent, Classification]:
    content = extract_content(message)
    classification = await classify_email(content.subject, content.sender, content.body, content.date)
    return message, content, classification


async def run_ingestion(
    user: User,
    db: Session,
    *,
    mode: str,
    cursor_hint: str | None = None,
    recent_count: int | None = None,
    force: bool = False,
    trigger: str = "",
    ignore_disabled: bool = False,
) -> IngestionResult:
    """Process new mail for one account. See module docstring for the rules.

    Raises GmailApiError when message resolution fails; anything committed
    before that (cursor, ledger rows, subscriptions) stays committed.
    """
    trigger = trigger or mode
    result = IngestionResult(user_id=user.id, mode=mode, trigger=trigger)

    # 1. Settings gate
    if mode == "cursor":
        user_settings = repository.get_settings(db, user.id)
    else:
        user_settings = repository.get_or_create_settings(db, user.id)
        db.commit()
    if not ignore_disabled and (user_settings is None or not user_settings.enabled):
        log.info(f"[{trigger}] Monitoring disabled for user {user.id}, skipping")
        result.skipped_reason = "disabled"
        return result
    reminder_days = (
        user_settings.reminder_days_before if user_settings else repository.DEFAULT_REMINDER_DAYS
    )

    # 2. Credentials
    access_token = await get_valid_token(user, db)
    if not access_token:
        log.warning(f"[{trigger}] No valid access token for user {user.id}")
        result.skipped_reason = "no_token"
        return result

    gmail = GmailService(access_token)
    calendar = CalendarService(access_token)

    # 3. Resolve + 4. advance cursor before processing
    if mode == "cursor":
        cursor = user.gmail_history_id or cursor_hint
        messages: list[MailMessage] = []
        latest = None
        if cursor:
            messages, latest = await gmail.resolve_since(cursor)
        else:
            log.warning(f"[{trigger}] No cursor known for user {user.id}")
        result.new_cursor = latest or cursor_hint
        repository.advance_cursor(db, user, result.new_cursor)
        db.commit()
    else:
        messages = await gmail.list_recent(recent_count or settings.manual_sync_count)

    result.fetched = len(messages)
    if not messages:
        log.info(f"[{trigger}] No new messages for user {user.id}")
        _finish(db, user, result)
        return result

    # 5. Promotional filter
    candidates = []
    for message in messages:
        if is_promotional(message):
            log.debug(f"[{trigger}] Message {message.id}: skipped, promotional")
            result.skipped += 1
            result.results.append(MessageResult(message_id=message.id, status="promotional"))
            continue
        candidates.append(message)

    # 6. Batch dedup against the ledger
    seen = set() if force else repository.already_processed(db, user.id, [m.id for m in candidates])
    to_classify = []
    for message in candidates:
        if message.id in seen:
            content = extract_content(message)
            log.debug(f"[{trigger}] Message {message.id}: skipped, already processed")
            result.skipped += 1
            result.results.append(
                MessageResult(
                    message_id=message.id, subject=content.subject,
                    sender=content.sender, status="already_processed",
                )
            )
            continue
        to_classify.append(message)

    # 7. Classify in bounded batches
    outcomes = await classify_in_batches(to_classify, _classify_message)

    # 8-9. Ledger, confidence gate, subscription + reminder
    for message, outcome in zip(to_classify, outcomes):
        if isinstance(outcome, BaseException):
            log.error(f"[{trigger}] Message {message.id}: classification error: {outcome}")
            result.errors += 1
            result.results.append(
                MessageResult(message_id=message.id, status="error", error=str(outcome)[:200])
            )
            continue
        _, content, classification = outcome
        result.results.append(
            await _apply_classification(
                db, user, calendar, message, content, classification,
                reminder_days, result, trigger, force,
            )
        )

    # 10-11. Last sync + summary
    _finish(db, user, result)
    return result


async def _apply_classification(
    db: Session,
    user: User,
    calendar: CalendarService,
    message: MailMessage,
    content: EmailContent,
    classification: Classification,
    reminder_days: int,
    result: IngestionResult,
    trigger: str,
    force: bool,
) -> MessageResult:
    item = MessageResult(
        message_id=message.id, subject=content.subject, sender=content.sender,
        status="not_subscription", classification=classification,
    )

    try:
        if force and repository.is_processed(db, user.id, message.id):
            inserted = False
        else:
            inserted = repository.mark_processed(db, user.id, message.id, classification.is_subscription)
    except SQLAlchemyError as e:
        return _persistence_failed(db, item, result, trigger, "record processed message", e)

    if inserted or force:
        result.processed += 1
    else:
        result.skipped += 1
        item.status = "already_processed"
        return item

    confidence = classification.confidence
    if not (classification.is_subscription and confidence >= settings.subscription_confidence_threshold):
        log.info(
            f"[{trigger}] Message {message.id}: not a subscription | "
            f"Subject: \"{content.subject}\" | Confidence: {round(confidence * 100)}% | "
            f"Reasoning: {classification.reasoning or 'N/A'}"
        )
        return item

    try:
        existing = repository.find_subscription_by_subject(db, user.id, content.subject)
    except SQLAlchemyError as e:
        return _persistence_failed(db, item, result, trigger, "look up subscription", e)
    if existing:
        log.info(f"[{trigger}] Message {message.id}: subscription already exists for \"{content.subject}\"")
        item.status = "subscription_already_exists"
        return item

    service_name = classification.service_name or UNKNOWN_SERVICE
    kind = classification.type or "subscription"
    end_date = compute_end_date(classification, content.date)
    event_id = await calendar.create_reminder(service_name, kind, end_date, reminder_days)

    try:
        repository.insert_subscription(
            db,
            user_id=user.id,
            service_name=service_name,
            type=kind,
            detected_date=content.date,
            end_date=end_date,
            calendar_event_id=event_id,
            status="active",
            email_subject=content.subject,
            email_snippet=message.snippet,
            confidence=round(confidence * 100),
        )
        db.commit()
    except Exception as e:
        _persistence_failed(db, item, result, trigger, "save subscription", e)
        if event_id:
            await calendar.delete_reminder(event_id)
        return item

    result.new_subscriptions += 1
    item.status = "subscription_created"
    log.info(
        f"[{trigger}] Message {message.id}: subscription created | Service: {service_name} | "
        f"Type: {kind} | Confidence: {round(confidence * 100)}% | EndDate: {end_date.date()}"
    )
    return item


def _persistence_failed(
    db: Session, item: MessageResult, result: IngestionResult, trigger: str,
    action: str, error: Exception,
) -> MessageResult:
    db.rollback()
    log.error(f"[{trigger}] Message {item.message_id}: failed to {action}: {error}")
    result.errors += 1
    item.status = "error"
    item.error = str(error)[:200]
    return item


def _finish(db: Session, user: User, result: IngestionResult) -> None:
    repository.touch_last_sync(db, user)
    db.commit()
    log.info(f"[{result.trigger}] Summary for user {user.id}: {result.summary()}")
