"""Due-ness decisions for reminders, subscriptions and meetings."""

import logging

from dateutil import parser as date_parser

from dingbuddy.db.models import CalendarEvent, CalendarInfo, Reminder, WeatherSubscription
from dingbuddy.utils.constants import (
    REMINDER_MAX_OVERDUE_MS,
    REMINDER_RETENTION_MS,
    SUBSCRIPTION_GRACE_MINUTES,
)
from dingbuddy.utils.time_utils import ZonedClockReading, parse_hhmm, resolve_zone, utc_to_ms

logger = logging.getLogger(__name__)


def is_reminder_due(
    reminder: Reminder, now_ms: int, max_overdue_ms: int = REMINDER_MAX_OVERDUE_MS
) -> bool:
    """Check whether a one-shot reminder should fire now.

    Due once its instant has passed, for at most ``max_overdue_ms``. A missed
    reminder is never delivered late, and sent or canceled ones never fire.
    """
    if not reminder.is_pending:
        return False
    if now_ms < reminder.scheduled_at_ms:
        return False
    return now_ms - reminder.scheduled_at_ms <= max_overdue_ms


def is_subscription_due(
    subscription: WeatherSubscription,
    reading: ZonedClockReading,
    grace_minutes: int = SUBSCRIPTION_GRACE_MINUTES,
) -> bool:
    """Check whether a daily subscription should push now.

    ``reading`` must be "now" projected through the subscription's own zone.
    Fires at most once per local day, only within the grace window.
    """
    if subscription.last_sent_local_date == reading.date_key:
        return False

    target = parse_hhmm(subscription.schedule.time)
    if target is None:
        return False

    target_minutes = target[0] * 60 + target[1]
    return target_minutes <= reading.minutes_of_day <= target_minutes + grace_minutes


def event_start_ms(event: CalendarEvent, default_tz: str | None = None) -> int | None:
    """Parse an event's start into epoch ms.

    Timestamps without an offset are read in the event's own zone, falling
    back to ``default_tz``. Returns None for all-day, start-less or
    unparseable events.
    """
    if event.is_all_day or not event.start_date_time:
        return None

    try:
        start = date_parser.isoparse(event.start_date_time)
    except (ValueError, OverflowError):
        logger.warning(f"Unparseable start for event {event.id}: {event.start_date_time!r}")
        return None

    if start.tzinfo is None:
        start = start.replace(tzinfo=resolve_zone(event.start_time_zone or default_tz))
    return utc_to_ms(start)


def is_meeting_due(
    event: CalendarEvent,
    now_ms: int,
    minutes_before: int,
    default_tz: str | None = None,
) -> bool:
    """Check whether an event starts within the next ``minutes_before`` minutes."""
    start_ms = event_start_ms(event, default_tz)
    if start_ms is None:
        return False

    delta = start_ms - now_ms
    return 0 <= delta <= minutes_before * 60 * 1000


def notified_key(event: CalendarEvent) -> str:
    """De-duplication key of a meeting: id plus the raw start timestamp."""
    return f"{event.id}|{event.start_date_time or ''}"


def remember_notified_key(keys: list[str], key: str, keep: int) -> list[str]:
    """Append a key to a bounded history, moving it to the end if present."""
    history = [k for k in keys if k != key]
    history.append(key)
    return history[-keep:]


def pick_primary_calendar_id(calendars: list[CalendarInfo]) -> str | None:
    """Pick the calendar typed "primary", otherwise the first one listed."""
    for calendar in calendars:
        if calendar.calendar_type == "primary" and calendar.calendar_id:
            return calendar.calendar_id
    for calendar in calendars:
        if calendar.calendar_id:
            return calendar.calendar_id
    return None


def prune_terminal_reminders(
    reminders: dict[str, Reminder],
    now_ms: int,
    retention_ms: int = REMINDER_RETENTION_MS,
) -> dict[str, Reminder]:
    """Drop sent or canceled reminders whose terminal state is older than retention.

    Pending reminders are always kept; insertion order is preserved.
    """
    kept: dict[str, Reminder] = {}
    for reminder_id, reminder in reminders.items():
        terminal_at = (
            reminder.sent_at_ms if reminder.sent_at_ms is not None else reminder.canceled_at_ms
        )
        if terminal_at is not None and now_ms - terminal_at > retention_ms:
            continue
        kept[reminder_id] = reminder
    return kept
