"""
test_database.py — Tests for the UTC datetime helpers in app/database.py

Called by: pytest
Depends on: app.database
"""

from datetime import datetime, timedelta, timezone

from app.database import UTCDateTime, as_utc


def test_as_utc_tags_naive_datetimes():
    assert as_utc(datetime(2026, 1, 10, 12, 0)) == datetime(2026, 1, 10, 12, 0, tzinfo=timezone.utc)


def test_as_utc_keeps_aware_datetimes():
    plus_two = timezone(timedelta(hours=2))
    aware = datetime(2026, 1, 10, 12, 0, tzinfo=plus_two)
    assert as_utc(aware).tzinfo is plus_two


def test_as_utc_none():
    assert as_utc(None) is None


def test_utc_column_loads_aware():
    loaded = UTCDateTime().process_result_value(datetime(2026, 1, 10), dialect=None)
    assert loaded.tzinfo is timezone.utc
