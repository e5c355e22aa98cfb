"""Tests for due-ness decisions."""

from datetime import datetime
from zoneinfo import ZoneInfo

from dingbuddy.db.models import (
    CalendarEvent,
    CalendarInfo,
    DailySchedule,
    Place,
    Reminder,
    WeatherSubscription,
)
from dingbuddy.engine.due import (
    event_start_ms,
    is_meeting_due,
    is_reminder_due,
    is_subscription_due,
    notified_key,
    pick_primary_calendar_id,
    prune_terminal_reminders,
    remember_notified_key,
)
from dingbuddy.utils.time_utils import project, utc_to_ms

UTC = ZoneInfo("UTC")
MINUTE = 60 * 1000
DAY = 24 * 60 * MINUTE


def make_reminder(reminder_id: str = "r1", scheduled_at_ms: int = 1_000_000, **kwargs) -> Reminder:
    return Reminder(
        id=reminder_id,
        user_id="u1",
        text="开会",
        scheduled_at_ms=scheduled_at_ms,
        time_zone="Asia/Shanghai",
        created_at_ms=0,
        **kwargs,
    )


def make_subscription(time_hhmm: str = "08:00", last_sent: str | None = None) -> WeatherSubscription:
    return WeatherSubscription(
        user_id="u1",
        place=Place("成都", "成都 · 四川 · 中国", 30.67, 104.07, "Asia/Shanghai"),
        schedule=DailySchedule(time=time_hhmm),
        created_at_ms=0,
        updated_at_ms=0,
        last_sent_local_date=last_sent,
    )


def test_reminder_due_window():
    """Test that a reminder fires from its instant until the overdue limit."""
    reminder = make_reminder(scheduled_at_ms=1_000_000)

    assert not is_reminder_due(reminder, 999_999)
    assert is_reminder_due(reminder, 1_000_000)
    assert is_reminder_due(reminder, 1_000_000 + 60 * MINUTE)
    # Missed by more than an hour: never delivered
    assert not is_reminder_due(reminder, 1_000_000 + 60 * MINUTE + 1)


def test_reminder_not_due_once_terminal():
    """Test sent and canceled reminders never fire."""
    assert not is_reminder_due(make_reminder(sent_at_ms=1_000_000), 1_000_000)
    assert not is_reminder_due(make_reminder(canceled_at_ms=5), 1_000_000)


def test_subscription_due_in_place_zone():
    """Test the daily window is judged in the place's local time."""
    subscription = make_subscription("08:00")

    # 00:01 UTC = 08:01 Shanghai
    reading = project(utc_to_ms(datetime(2026, 5, 1, 0, 1, tzinfo=UTC)), "Asia/Shanghai")
    assert is_subscription_due(subscription, reading)

    # 08:03 is past the two-minute grace window
    late = project(utc_to_ms(datetime(2026, 5, 1, 0, 3, tzinfo=UTC)), "Asia/Shanghai")
    assert not is_subscription_due(subscription, late)

    early = project(utc_to_ms(datetime(2026, 4, 30, 23, 59, tzinfo=UTC)), "Asia/Shanghai")
    assert not is_subscription_due(subscription, early)


def test_subscription_fires_once_per_local_day():
    """Test that a subscription already sent today is not due again."""
    reading = project(utc_to_ms(datetime(2026, 5, 1, 0, 0, tzinfo=UTC)), "Asia/Shanghai")

    assert not is_subscription_due(make_subscription("08:00", last_sent="2026-05-01"), reading)
    assert is_subscription_due(make_subscription("08:00", last_sent="2026-04-30"), reading)
    assert not is_subscription_due(make_subscription("bogus"), reading)


def test_event_start_ms():
    """Test event start parsing with and without offsets."""
    with_offset = CalendarEvent(id="e1", start_date_time="2026-05-01T10:00:00+08:00")
    assert event_start_ms(with_offset) == utc_to_ms(datetime(2026, 5, 1, 2, 0, tzinfo=UTC))

    # No offset: read in the event's zone
    naive = CalendarEvent(
        id="e2", start_date_time="2026-05-01T10:00:00", start_time_zone="Asia/Shanghai"
    )
    assert event_start_ms(naive) == utc_to_ms(datetime(2026, 5, 1, 2, 0, tzinfo=UTC))

    # ...falling back to the default zone
    fallback = CalendarEvent(id="e3", start_date_time="2026-05-01T10:00:00")
    assert event_start_ms(fallback, "UTC") == utc_to_ms(datetime(2026, 5, 1, 10, 0, tzinfo=UTC))


def test_event_start_ms_unusable():
    """Test all-day, start-less and garbage events have no start."""
    assert event_start_ms(CalendarEvent(id="a", start_date_time="2026-05-01T10:00:00Z", is_all_day=True)) is None
    assert event_start_ms(CalendarEvent(id="b")) is None
    assert event_start_ms(CalendarEvent(id="c", start_date_time="not a date")) is None


def test_meeting_due_window():
    """Test meetings are due only within minutes_before of their start."""
    start = utc_to_ms(datetime(2026, 5, 1, 2, 0, tzinfo=UTC))
    event = CalendarEvent(id="e1", start_date_time="2026-05-01T02:00:00Z")

    assert is_meeting_due(event, start - 10 * MINUTE, 10)
    assert is_meeting_due(event, start, 10)
    assert not is_meeting_due(event, start - 10 * MINUTE - 1, 10)
    # Already started
    assert not is_meeting_due(event, start + 1, 10)


def test_notified_keys():
    """Test the bounded notified-key history."""
    event = CalendarEvent(id="e1", start_date_time="2026-05-01T02:00:00Z")
    assert notified_key(event) == "e1|2026-05-01T02:00:00Z"

    keys = remember_notified_key(["a", "b", "c"], "d", keep=3)
    assert keys == ["b", "c", "d"]

    # Re-adding moves to the end without duplicating
    assert remember_notified_key(["a", "b"], "a", keep=3) == ["b", "a"]


def test_pick_primary_calendar_id():
    """Test primary calendar selection."""
    calendars = [
        CalendarInfo("other", "shared"),
        CalendarInfo("mine", "primary"),
    ]
    assert pick_primary_calendar_id(calendars) == "mine"
    assert pick_primary_calendar_id([CalendarInfo("only", None)]) == "only"
    assert pick_primary_calendar_id([]) is None


def test_prune_terminal_reminders():
    """Test old sent/canceled reminders are dropped and pending ones kept."""
    now = 10 * DAY
    reminders = {
        "pending": make_reminder("pending", scheduled_at_ms=0),
        "old_sent": make_reminder("old_sent", sent_at_ms=now - 8 * DAY),
        "recent_sent": make_reminder("recent_sent", sent_at_ms=now - DAY),
        "old_canceled": make_reminder("old_canceled", canceled_at_ms=now - 8 * DAY),
        # Sent at the epoch counts as sent, not as missing
        "sent_at_zero": make_reminder("sent_at_zero", sent_at_ms=0),
    }

    kept = prune_terminal_reminders(reminders, now)
    assert list(kept) == ["pending", "recent_sent"]


def test_subscription_daily_cycle():
    """Test a 10:20 subscription across two days."""
    subscription = make_subscription("10:20", last_sent="2026-04-30")

    at_1021 = project(utc_to_ms(datetime(2026, 5, 1, 2, 21, tzinfo=UTC)), "Asia/Shanghai")
    assert is_subscription_due(subscription, at_1021)

    subscription.last_sent_local_date = at_1021.date_key
    at_1025 = project(utc_to_ms(datetime(2026, 5, 1, 2, 25, tzinfo=UTC)), "Asia/Shanghai")
    assert not is_subscription_due(subscription, at_1025)

    next_day = project(utc_to_ms(datetime(2026, 5, 2, 2, 20, tzinfo=UTC)), "Asia/Shanghai")
    assert is_subscription_due(subscription, next_day)
