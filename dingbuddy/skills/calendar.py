"""Calendar skill - meeting reminder switch and today's agenda."""

import logging
from typing import Callable

from dingbuddy.bot.formatters import format_today_agenda
from dingbuddy.db.models import CalendarWatch, SkillResult
from dingbuddy.db.repository import CalendarRepository
from dingbuddy.engine.calendar_engine import CalendarSource
from dingbuddy.engine.due import event_start_ms, pick_primary_calendar_id
from dingbuddy.utils.constants import (
    CALENDAR_LOOKBEHIND_MS,
    CALENDAR_PAGE_SIZE,
    DEFAULT_MINUTES_BEFORE,
    DEFAULT_TIMEZONE,
    MAX_MINUTES_BEFORE,
    MAX_TODAY_EVENTS,
    MIN_MINUTES_BEFORE,
)
from dingbuddy.utils.time_utils import (
    is_valid_timezone,
    local_to_instant,
    now_ms,
    project,
    to_iso_utc,
)

logger = logging.getLogger(__name__)


def clamp_minutes_before(minutes: int | None) -> int:
    if minutes is None:
        return DEFAULT_MINUTES_BEFORE
    return max(MIN_MINUTES_BEFORE, min(MAX_MINUTES_BEFORE, minutes))


class CalendarSkill:
    def __init__(
        self,
        repo: CalendarRepository,
        calendar: CalendarSource,
        default_timezone: str = DEFAULT_TIMEZONE,
        clock: Callable[[], int] = now_ms,
    ):
        self.repo = repo
        self.calendar = calendar
        self.default_timezone = default_timezone
        self.clock = clock

    async def watch(
        self,
        user_id: str,
        enabled: bool,
        minutes_before: int | None = None,
        time_zone: str | None = None,
    ) -> SkillResult:
        """Turn meeting reminders on or off for a user."""
        now = self.clock()
        existing = await self.repo.get_watch(user_id)
        watch = CalendarWatch(
            user_id=user_id,
            enabled=enabled,
            minutes_before=clamp_minutes_before(minutes_before),
            time_zone=time_zone.strip() if is_valid_timezone(time_zone) else self.default_timezone,
            created_at_ms=existing.created_at_ms if existing else now,
            updated_at_ms=now,
        )
        await self.repo.upsert_watch(watch)

        if enabled:
            text = f"好的～会议提醒已开启：我会在会议开始前 {watch.minutes_before} 分钟提醒你。"
        else:
            text = "好的，会议提醒已关闭。"
        return SkillResult(text, data={"watch": watch})

    async def _calendar_id(self, user_id: str) -> str | None:
        cached = await self.repo.get_primary_calendar_id(user_id)
        if cached:
            return cached
        calendar_id = pick_primary_calendar_id(await self.calendar.list_calendars(user_id))
        if calendar_id:
            await self.repo.remember_primary_calendar_id(user_id, calendar_id)
        return calendar_id

    async def today(self, user_id: str, time_zone: str | None = None) -> SkillResult:
        """Upcoming non-all-day events from a few minutes ago to the end of the local day."""
        tz = time_zone.strip() if is_valid_timezone(time_zone) else self.default_timezone
        calendar_id = await self._calendar_id(user_id)
        if not calendar_id:
            return SkillResult(
                "我没取到你的日历列表（可能没有开通日历权限/或账号不支持）。",
                ok=False,
                reason="no_calendar",
            )

        now = self.clock()
        reading = project(now, tz)
        start = now - CALENDAR_LOOKBEHIND_MS
        end_of_day = local_to_instant(tz, reading.year, reading.month, reading.day, 23, 59, 59) + 999

        page = await self.calendar.list_events_view(
            user_id,
            calendar_id,
            to_iso_utc(start),
            to_iso_utc(end_of_day),
            max_results=CALENDAR_PAGE_SIZE,
        )

        upcoming = []
        for event in page.events:
            start_ms = event_start_ms(event, tz)
            if start_ms is None or start_ms < start:
                continue
            upcoming.append((start_ms, event.summary.strip() or "日程", event.location))
        upcoming.sort(key=lambda e: e[0])
        upcoming = upcoming[:MAX_TODAY_EVENTS]

        logger.debug(f"Today's agenda for {user_id}: {len(upcoming)} events")
        return SkillResult(format_today_agenda(upcoming, tz), data={"events": upcoming})
