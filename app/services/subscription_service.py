"""Subscription record maintenance from the dashboard.

Updates and deletes keep the calendar reminder in step with the record:
changing the end date moves the reminder (or creates one if none exists),
deleting the record deletes its reminder first. Calendar failures are
logged by CalendarService and never block the database write.
"""

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from app import repository
from app.database import as_utc
from app.models import Subscription, User
from app.services.calendar import CalendarService
from app.services.token_service import get_valid_token

log = logging.getLogger("subscout.subscriptions")


def _reminder_days(db: Session, user: User) -> int:
    row = repository.get_settings(db, user.id)
    return row.reminder_days_before if row else repository.DEFAULT_REMINDER_DAYS


def _same_day(a: datetime | None, b: datetime | None) -> bool:
    if a is None or b is None:
        return a is b
    return a.date() == b.date()


async def update_subscription(
    db: Session, user: User, sub: Subscription, *,
    end_date: datetime | None = None, status: str | None = None,
) -> Subscription:
    fields = {}
    if status:
        fields["status"] = status
    resync = False
    if end_date is not None:
        end_date = as_utc(end_date)
        resync = not _same_day(sub.end_date, end_date)
        fields["end_date"] = end_date

    if resync:
        access_token = await get_valid_token(user, db)
        if access_token:
            calendar = CalendarService(access_token)
            days = _reminder_days(db, user)
            if sub.calendar_event_id:
                await calendar.update_reminder(
                    sub.calendar_event_id, sub.service_name, sub.type, end_date, days
                )
            else:
                event_id = await calendar.create_reminder(sub.service_name, sub.type, end_date, days)
                if event_id:
                    fields["calendar_event_id"] = event_id
        else:
            log.warning(f"No valid token for user {user.id}; reminder for subscription {sub.id} not moved")

    repository.update_subscription(db, sub, **fields)
    db.commit()
    return sub


async def delete_subscription(db: Session, user: User, sub: Subscription) -> None:
    sub_id = sub.id
    if sub.calendar_event_id:
        access_token = await get_valid_token(user, db)
        if access_token:
            await CalendarService(access_token).delete_reminder(sub.calendar_event_id)
    repository.delete_subscription(db, sub)
    db.commit()
    log.info(f"Subscription {sub_id} deleted for user {user.id}")
