"""Calendar reminder service — review reminders before a trial ends or renews.

Creates an all-day Google Calendar event `reminder_days_before` days ahead
of a subscription's end date.

Business Rules:
- No retroactive reminders: if end_date - lead time is already past,
  create_reminder returns None without calling the API
- Event title: "Review: {service} {type}"; trials "end", subscriptions "renew"
- Popup at 9h and email at 24h before the all-day event
- Graceful degradation: an unreachable calendar returns None/False and is
  logged; the owning subscription is still saved

Called by: services/ingestion.py, services/subscription_service.py
Depends on: utils/google_client.py
"""

import logging
from datetime import date, datetime, timedelta, timezone

from app.utils.google_client import CALENDAR_BASE, GoogleApiError, GoogleClient

log = logging.getLogger("subscout.calendar")

EVENTS_URL = f"{CALENDAR_BASE}/calendars/primary/events"

_REMINDER_OVERRIDES = [
    {"method": "popup", "minutes": 60 * 9},
    {"method": "email", "minutes": 60 * 24},
]


def reminder_date(end_date: datetime | date, reminder_days_before: int) -> date:
    end = end_date.date() if isinstance(end_date, datetime) else end_date
    return end - timedelta(days=reminder_days_before)


def _event_body(service_name: str, kind: str, end_date: datetime | date,
                reminder_days_before: int) -> dict:
    day = reminder_date(end_date, reminder_days_before)
    end_str = (end_date.date() if isinstance(end_date, datetime) else end_date).isoformat()
    verb = "ends" if kind == "trial" else "renews"
    return {
        "summary": f"Review: {service_name} {kind}",
        "description": (
            f"Your {service_name} {kind} {verb} on {end_str}.\n\n"
            "Review and decide whether to continue or cancel.\n\n"
            "Created by SubScout"
        ),
        "start": {"date": day.isoformat()},
        # all-day events end exclusively on the next day
        "end": {"date": (day + timedelta(days=1)).isoformat()},
        "reminders": {"useDefault": False, "overrides": _REMINDER_OVERRIDES},
    }


class CalendarService:
    """Per-account Google Calendar reminder scheduler."""

    def __init__(self, access_token: str):
        self.gc = GoogleClient(access_token)

    async def create_reminder(
        self, service_name: str, kind: str, end_date: datetime | date,
        reminder_days_before: int, today: date | None = None,
    ) -> str | None:
        """Create the reminder event. Returns the event id or None."""
        today = today or datetime.now(timezone.utc).date()
        if reminder_date(end_date, reminder_days_before) < today:
            log.info(f"Reminder for {service_name} would be in the past, skipping")
            return None

        body = _event_body(service_name, kind, end_date, reminder_days_before)
        try:
            result = await self.gc.post_json(EVENTS_URL, body)
        except GoogleApiError as e:
            log.warning(f"Calendar create failed for {service_name}: {e}")
            return None
        return result.get("id") or None

    async def update_reminder(
        self, event_id: str, service_name: str, kind: str,
        end_date: datetime | date, reminder_days_before: int,
    ) -> bool:
        body = _event_body(service_name, kind, end_date, reminder_days_before)
        try:
            await self.gc.put_json(f"{EVENTS_URL}/{event_id}", body)
        except GoogleApiError as e:
            log.warning(f"Calendar update failed for event {event_id}: {e}")
            return False
        return True

    async def delete_reminder(self, event_id: str) -> bool:
        try:
            await self.gc.delete(f"{EVENTS_URL}/{event_id}")
        except GoogleApiError as e:
            log.warning(f"Calendar delete failed for event {event_id}: {e}")
            return False
        return True
