from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from riven.features.streaks.status import calculate_status, hours_remaining, studied_today

NOW = datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "elapsed, expected",
    [
        (timedelta(hours=1), "active"),
        (timedelta(hours=23), "active"),
        (timedelta(hours=23, minutes=59), "active"),
        (timedelta(hours=24), "at-risk"),
        (timedelta(hours=30), "at-risk"),
        (timedelta(hours=47, minutes=59), "at-risk"),
        (timedelta(hours=48), "broken"),
        (timedelta(hours=48, minutes=1), "broken"),
        (timedelta(days=30), "broken"),
    ],
)
def test_status_boundaries(elapsed, expected):
    assert calculate_status(NOW - elapsed, NOW) == expected


def test_no_study_is_broken():
    assert calculate_status(None, NOW) == "broken"
    assert hours_remaining(None, NOW) == 0


def test_hours_remaining_counts_down_and_floors_at_zero():
    assert hours_remaining(NOW, NOW) == pytest.approx(48.0)
    assert hours_remaining(NOW - timedelta(hours=30), NOW) == pytest.approx(18.0)
    assert hours_remaining(NOW - timedelta(hours=72), NOW) == 0


def test_custom_windows():
    last = NOW - timedelta(hours=10)
    assert calculate_status(last, NOW, grace_hours=12, at_risk_hours=6) == "at-risk"
    assert calculate_status(last, NOW, grace_hours=36, at_risk_hours=6) == "active"


def test_naive_timestamps_are_treated_as_utc():
    naive_last = datetime(2024, 3, 10, 0, 0)
    assert hours_remaining(naive_last, NOW) == pytest.approx(36.0)


def test_studied_today_depends_on_local_calendar():
    utc = ZoneInfo("UTC")
    tokyo = ZoneInfo("Asia/Tokyo")
    last = datetime(2024, 3, 9, 23, 30, tzinfo=timezone.utc)
    now = datetime(2024, 3, 10, 0, 30, tzinfo=timezone.utc)

    assert studied_today(last, now, utc) is False
    assert studied_today(last, now, tokyo) is True
    assert studied_today(None, now, utc) is False
