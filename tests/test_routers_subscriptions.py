"""
test_routers_subscriptions.py — Tests for the subscriptions API

Covers listing, user scoping, status edits, end-date edits moving (or
creating) the calendar reminder, and delete cancelling the reminder.

Called by: pytest
Depends on: app.routers.subscriptions, app.services.subscription_service
"""

from datetime import date, datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest

from app.models import Subscription, User


@pytest.fixture()
def sub(db_session, test_user):
    row = Subscription(
        user_id=test_user.id,
        service_name="Notion",
        type="trial",
        detected_date=datetime(2026, 1, 10, tzinfo=timezone.utc),
        end_date=datetime(2026, 2, 1, tzinfo=timezone.utc),
        calendar_event_id="evt-1",
        status="active",
        email_subject="Your Notion trial",
        confidence=95,
    )
    db_session.add(row)
    db_session.commit()
    return row


@pytest.fixture()
def calendar():
    with patch("app.services.subscription_service.get_valid_token", new_callable=AsyncMock, return_value="tok"), \
         patch("app.services.subscription_service.CalendarService") as cls:
        inst = cls.return_value
        inst.create_reminder = AsyncMock(return_value="evt-new")
        inst.update_reminder = AsyncMock(return_value=True)
        inst.delete_reminder = AsyncMock(return_value=True)
        yield inst


def test_list(client, sub):
    resp = client.get("/api/subscriptions")
    assert resp.status_code == 200
    body = resp.json()
    assert len(body) == 1
    assert body[0]["service_name"] == "Notion"
    assert body[0]["confidence"] == 95


def test_other_users_subscription_is_404(client, db_session, calendar):
    other = User(email="other@example.com")
    db_session.add(other)
    db_session.commit()
    foreign = Subscription(
        user_id=other.id, service_name="X", type="trial",
        detected_date=datetime(2026, 1, 1, tzinfo=timezone.utc), email_subject="x",
    )
    db_session.add(foreign)
    db_session.commit()

    assert client.patch(f"/api/subscriptions/{foreign.id}", json={"status": "cancelled"}).status_code == 404
    assert client.delete(f"/api/subscriptions/{foreign.id}").status_code == 404


def test_status_only_update_leaves_calendar(client, db_session, sub, calendar):
    resp = client.patch(f"/api/subscriptions/{sub.id}", json={"status": "cancelled"})
    assert resp.status_code == 200
    db_session.refresh(sub)
    assert sub.status == "cancelled"
    calendar.update_reminder.assert_not_awaited()


def test_invalid_status_rejected(client, sub):
    assert client.patch(f"/api/subscriptions/{sub.id}", json={"status": "paused"}).status_code == 422


def test_end_date_change_moves_reminder(client, db_session, sub, user_settings, calendar):
    resp = client.patch(f"/api/subscriptions/{sub.id}", json={"endDate": "2026-03-01T00:00:00Z"})
    assert resp.status_code == 200
    db_session.refresh(sub)
    assert sub.end_date.date() == date(2026, 3, 1)
    args = calendar.update_reminder.await_args.args
    assert args[0] == "evt-1"
    assert args[4] == 2


def test_same_end_date_does_not_touch_calendar(client, sub, calendar):
    client.patch(f"/api/subscriptions/{sub.id}", json={"endDate": "2026-02-01T00:00:00Z"})
    calendar.update_reminder.assert_not_awaited()
    calendar.create_reminder.assert_not_awaited()


def test_end_date_change_creates_missing_reminder(client, db_session, sub, calendar):
    sub.calendar_event_id = None
    db_session.commit()

    client.patch(f"/api/subscriptions/{sub.id}", json={"endDate": "2026-03-01T00:00:00Z"})

    db_session.refresh(sub)
    assert sub.calendar_event_id == "evt-new"
    calendar.create_reminder.assert_awaited_once()


def test_delete_cancels_reminder(client, db_session, sub, calendar):
    sub_id = sub.id
    resp = client.delete(f"/api/subscriptions/{sub_id}")
    assert resp.status_code == 200
    calendar.delete_reminder.assert_awaited_once_with("evt-1")
    assert db_session.get(Subscription, sub_id) is None


def test_delete_survives_calendar_failure(client, db_session, sub, calendar):
    calendar.delete_reminder.return_value = False
    sub_id = sub.id
    assert client.delete(f"/api/subscriptions/{sub_id}").status_code == 200
    assert db_session.get(Subscription, sub_id) is None
