"""Tests for the reminder, subscription and calendar poll engines."""

from datetime import datetime
from zoneinfo import ZoneInfo

import pytest
from conftest import CHENGDU, FakeCalendar, FakeSender, FakeWeather

from dingbuddy.db.models import (
    CalendarEvent,
    CalendarInfo,
    CalendarWatch,
    DailySchedule,
    EventsPage,
    Reminder,
    WeatherSubscription,
)
from dingbuddy.db.repository import CalendarRepository, ReminderRepository, SubscriptionRepository
from dingbuddy.engine.calendar_engine import CalendarEngine, clamp_window_hours
from dingbuddy.engine.reminder_engine import ReminderEngine
from dingbuddy.engine.subscription_engine import SubscriptionEngine
from dingbuddy.utils.time_utils import utc_to_ms

UTC = ZoneInfo("UTC")
NOW = utc_to_ms(datetime(2026, 5, 1, 2, 0, tzinfo=UTC))  # 10:00 in Shanghai
DAY = 24 * 60 * 60 * 1000


def make_reminder(reminder_id: str, scheduled_at_ms: int, user_id: str = "u1", **kwargs) -> Reminder:
    return Reminder(
        id=reminder_id,
        user_id=user_id,
        text=f"事项 {reminder_id}",
        scheduled_at_ms=scheduled_at_ms,
        time_zone="Asia/Shanghai",
        created_at_ms=0,
        **kwargs,
    )


# Reminders


@pytest.mark.asyncio
async def test_reminder_engine_sends_all_due(store):
    """Test reminders a few seconds apart are all sent in one tick."""
    repo = ReminderRepository(store, "acct")
    await repo.add(make_reminder("a", NOW - 10_000))
    await repo.add(make_reminder("b", NOW - 5_000))
    await repo.add(make_reminder("future", NOW + 60_000))

    sender = FakeSender()
    await ReminderEngine(repo, sender, clock=lambda: NOW).tick()

    assert [user for user, _ in sender.sent] == ["u1", "u1"]
    assert "事项 a" in sender.sent[0][1]
    assert "id=a" in sender.sent[0][1]

    document = await repo.load()
    assert document.reminders["a"].sent_at_ms == NOW
    assert document.reminders["b"].sent_at_ms == NOW
    assert document.reminders["future"].is_pending
    assert document.last_sent_reminder_id_by_user["u1"] == "b"


@pytest.mark.asyncio
async def test_reminder_engine_failed_send_is_retried(store):
    """Test a failed push leaves the reminder pending for the next tick."""
    repo = ReminderRepository(store, "acct")
    await repo.add(make_reminder("a", NOW - 1000, user_id="broken"))
    await repo.add(make_reminder("b", NOW - 1000, user_id="u1"))

    sender = FakeSender(failing={"broken"})
    await ReminderEngine(repo, sender, clock=lambda: NOW).tick()

    document = await repo.load()
    assert document.reminders["a"].is_pending
    assert document.reminders["b"].sent_at_ms == NOW

    sender.failing.clear()
    await ReminderEngine(repo, sender, clock=lambda: NOW + 1000).tick()
    assert (await repo.get("a")).sent_at_ms == NOW + 1000


@pytest.mark.asyncio
async def test_reminder_engine_skips_long_overdue(store):
    """Test a reminder missed by more than an hour is never delivered."""
    repo = ReminderRepository(store, "acct")
    await repo.add(make_reminder("missed", NOW - 2 * 60 * 60 * 1000))

    sender = FakeSender()
    await ReminderEngine(repo, sender, clock=lambda: NOW).tick()

    assert sender.sent == []
    assert (await repo.get("missed")).is_pending


@pytest.mark.asyncio
async def test_reminder_engine_prunes_history(store):
    """Test old terminal reminders are pruned when a tick saves."""
    repo = ReminderRepository(store, "acct")
    await repo.add(make_reminder("old", NOW - 10 * DAY, sent_at_ms=NOW - 9 * DAY))
    await repo.add(make_reminder("due", NOW - 1000))

    await ReminderEngine(repo, FakeSender(), clock=lambda: NOW).tick()

    document = await repo.load()
    assert "old" not in document.reminders
    assert "due" in document.reminders


# Weather subscriptions


async def add_subscription(store, time_hhmm: str = "10:00", last_sent: str | None = None):
    repo = SubscriptionRepository(store, "acct")
    await repo.upsert(
        WeatherSubscription(
            user_id="u1",
            place=CHENGDU,
            schedule=DailySchedule(time=time_hhmm),
            created_at_ms=0,
            updated_at_ms=0,
            last_sent_local_date=last_sent,
        )
    )
    return repo


@pytest.mark.asyncio
async def test_subscription_engine_pushes_once_per_day(store):
    """Test a daily push fires in its window and only once."""
    repo = await add_subscription(store, "10:00")
    sender = FakeSender()
    engine = SubscriptionEngine(repo, sender, FakeWeather(), clock=lambda: NOW + 60_000)

    await engine.tick()
    assert len(sender.sent) == 1
    assert sender.sent[0][1].startswith("天气推送（成都·四川）")
    assert (await repo.get("u1")).last_sent_local_date == "2026-05-01"

    await engine.tick()
    assert len(sender.sent) == 1


@pytest.mark.asyncio
async def test_subscription_engine_outside_window(store):
    """Test nothing is pushed before the scheduled local time."""
    repo = await add_subscription(store, "10:30")
    sender = FakeSender()

    await SubscriptionEngine(repo, sender, FakeWeather(), clock=lambda: NOW).tick()
    assert sender.sent == []


@pytest.mark.asyncio
async def test_subscription_engine_failure_not_marked(store):
    """Test a failed forecast leaves the day unmarked for a retry."""
    repo = await add_subscription(store, "10:00")
    sender = FakeSender()

    await SubscriptionEngine(repo, sender, FakeWeather(fail=True), clock=lambda: NOW).tick()

    assert sender.sent == []
    assert (await repo.get("u1")).last_sent_local_date is None


# Calendar meetings


def test_clamp_window_hours():
    """Test look-ahead window bounds."""
    assert clamp_window_hours(None) == 24
    assert clamp_window_hours(0) == 1
    assert clamp_window_hours(1000) == 168


async def add_watch(store, user_id: str = "u1", enabled: bool = True):
    repo = CalendarRepository(store, "acct")
    await repo.upsert_watch(CalendarWatch(user_id, enabled, 10, "Asia/Shanghai", 0, 0))
    return repo


def paged_calendar() -> FakeCalendar:
    return FakeCalendar(
        calendars=[CalendarInfo("shared", "shared"), CalendarInfo("cal-1", "primary")],
        pages=[
            EventsPage(
                events=[
                    CalendarEvent(id="e1", summary="周会", start_date_time="2026-05-01T02:05:00Z",
                                  location="3楼会议室"),
                    CalendarEvent(id="e2", summary="晚些", start_date_time="2026-05-01T04:00:00Z"),
                    CalendarEvent(id="e4", summary="全天", start_date_time="2026-05-01T00:00:00Z",
                                  is_all_day=True),
                ],
                next_token="1",
            ),
            EventsPage(
                events=[
                    CalendarEvent(id="e3", summary="评审", start_date_time="2026-05-01T10:08:00+08:00"),
                ],
            ),
        ],
    )


@pytest.mark.asyncio
async def test_calendar_engine_notifies_due_meetings_once(store):
    """Test due meetings across pages are announced exactly once."""
    repo = await add_watch(store)
    sender = FakeSender()
    calendar = paged_calendar()
    engine = CalendarEngine(repo, sender, calendar, clock=lambda: NOW)

    await engine.tick()

    texts = [text for _, text in sender.sent]
    assert len(texts) == 2
    assert texts[0].startswith("会议提醒：周会")
    assert "还有 5 分钟" in texts[0]
    assert "地点：3楼会议室" in texts[0]
    assert texts[1].startswith("会议提醒：评审")

    # Both pages of the primary calendar were read
    assert [c["calendar_id"] for c in calendar.event_calls] == ["cal-1", "cal-1"]
    assert calendar.event_calls[0]["time_min"] == "2026-05-01T01:55:00.000Z"
    assert calendar.event_calls[0]["time_max"] == "2026-05-02T02:00:00.000Z"

    await engine.tick()
    assert len(sender.sent) == 2
    # Primary calendar id is cached after the first lookup
    assert calendar.calendar_calls == 1
    assert await repo.get_primary_calendar_id("u1") == "cal-1"


@pytest.mark.asyncio
async def test_calendar_engine_renotifies_rescheduled_meeting(store):
    """Test a meeting moved to a new start is announced again."""
    repo = await add_watch(store)
    sender = FakeSender()
    calendar = paged_calendar()
    engine = CalendarEngine(repo, sender, calendar, clock=lambda: NOW)
    await engine.tick()

    calendar.pages[0].events[0].start_date_time = "2026-05-01T02:07:00Z"
    await engine.tick()

    assert len(sender.sent) == 3
    assert sender.sent[-1][1].startswith("会议提醒：周会")


@pytest.mark.asyncio
async def test_calendar_engine_isolates_user_failures(store):
    """Test one user's failure doesn't stop the others."""
    await add_watch(store, "broken")
    repo = await add_watch(store, "u1")
    await add_watch(store, "off", enabled=False)
    sender = FakeSender(failing={"broken"})

    await CalendarEngine(repo, sender, paged_calendar(), clock=lambda: NOW).tick()

    assert {user for user, _ in sender.sent} == {"u1"}
    notified = (await repo.load()).notified_keys_by_user
    assert "e1|2026-05-01T02:05:00Z" not in notified.get("broken", [])
    assert "e1|2026-05-01T02:05:00Z" in notified["u1"]


@pytest.mark.asyncio
async def test_calendar_engine_failed_send_does_not_skip_later_meetings(store):
    """Test a failed push for one meeting still lets the user's next meeting through."""
    repo = await add_watch(store)
    calendar = FakeCalendar(
        calendars=[CalendarInfo("cal-1", "primary")],
        pages=[
            EventsPage(
                events=[
                    CalendarEvent(id="e1", summary="第一", start_date_time="2026-05-01T02:05:00Z"),
                    CalendarEvent(id="e2", summary="第二", start_date_time="2026-05-01T02:08:00Z"),
                ],
            ),
        ],
    )
    sender = FakeSender(failing_texts={"第一"})
    engine = CalendarEngine(repo, sender, calendar, clock=lambda: NOW)

    await engine.tick()

    assert [text.splitlines()[0] for _, text in sender.sent] == ["会议提醒：第二"]
    notified = (await repo.load()).notified_keys_by_user["u1"]
    assert notified == ["e2|2026-05-01T02:08:00Z"]

    # The failed one is retried on the next tick
    sender.failing_texts.clear()
    await engine.tick()
    assert [text.splitlines()[0] for _, text in sender.sent] == ["会议提醒：第二", "会议提醒：第一"]


@pytest.mark.asyncio
async def test_calendar_engine_without_calendars(store):
    """Test a user without any calendar is skipped quietly."""
    repo = await add_watch(store)
    sender = FakeSender()
    calendar = FakeCalendar(calendars=[], pages=[])

    await CalendarEngine(repo, sender, calendar, clock=lambda: NOW).tick()

    assert sender.sent == []
    assert calendar.event_calls == []
