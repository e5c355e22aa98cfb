"""Calendar engine - pings users shortly before their meetings start."""

import logging
from typing import Callable, Protocol

from dingbuddy.bot.formatters import format_meeting_push
from dingbuddy.db.models import CalendarDocument, CalendarInfo, CalendarWatch, EventsPage
from dingbuddy.db.repository import CalendarRepository, clamp_notified_keep
from dingbuddy.engine.due import (
    event_start_ms,
    is_meeting_due,
    notified_key,
    pick_primary_calendar_id,
    remember_notified_key,
)
from dingbuddy.engine.poller import TextSender
from dingbuddy.utils.constants import CALENDAR_LOOKBEHIND_MS, CALENDAR_MAX_PAGES, CALENDAR_PAGE_SIZE
from dingbuddy.utils.time_utils import now_ms, to_iso_utc

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_HOURS = 24
MIN_WINDOW_HOURS = 1
MAX_WINDOW_HOURS = 168


class CalendarSource(Protocol):
    async def list_calendars(self, user_id: str) -> list[CalendarInfo]:
        ...

    async def list_events_view(
        self,
        user_id: str,
        calendar_id: str,
        time_min: str,
        time_max: str,
        next_token: str | None = None,
        max_results: int = CALENDAR_PAGE_SIZE,
    ) -> EventsPage:
        ...


def clamp_window_hours(hours: int | None) -> int:
    if hours is None:
        return DEFAULT_WINDOW_HOURS
    return max(MIN_WINDOW_HOURS, min(MAX_WINDOW_HOURS, hours))


class CalendarEngine:
    """One tick: scan each enabled watch's primary calendar for imminent meetings."""

    def __init__(
        self,
        repo: CalendarRepository,
        sender: TextSender,
        calendar: CalendarSource,
        window_hours: int | None = None,
        notified_keep: int | None = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.repo = repo
        self.sender = sender
        self.calendar = calendar
        self.window_hours = clamp_window_hours(window_hours)
        self.notified_keep = clamp_notified_keep(notified_keep)
        self.clock = clock

    async def tick(self) -> None:
        document = await self.repo.load()
        watches = [w for w in document.watches.values() if w.enabled]
        if not watches:
            return

        now = self.clock()
        time_min = to_iso_utc(now - CALENDAR_LOOKBEHIND_MS)
        time_max = to_iso_utc(now + self.window_hours * 60 * 60 * 1000)

        for watch in watches:
            try:
                await self._poll_watch(document, watch, now, time_min, time_max)
            except Exception as e:
                logger.warning(f"Calendar poll failed (user={watch.user_id}): {e}")

    async def _resolve_calendar_id(self, document: CalendarDocument, user_id: str) -> str | None:
        cached = document.primary_calendar_id_by_user.get(user_id)
        if cached:
            return cached

        calendars = await self.calendar.list_calendars(user_id)
        calendar_id = pick_primary_calendar_id(calendars)
        if calendar_id:
            document.primary_calendar_id_by_user[user_id] = calendar_id
            await self.repo.save(document)
            logger.info(f"Cached primary calendar for user {user_id}")
        return calendar_id

    async def _poll_watch(
        self,
        document: CalendarDocument,
        watch: CalendarWatch,
        now: int,
        time_min: str,
        time_max: str,
    ) -> None:
        calendar_id = await self._resolve_calendar_id(document, watch.user_id)
        if not calendar_id:
            return

        next_token = None
        for _ in range(CALENDAR_MAX_PAGES):
            page = await self.calendar.list_events_view(
                watch.user_id,
                calendar_id,
                time_min,
                time_max,
                next_token=next_token,
                max_results=CALENDAR_PAGE_SIZE,
            )

            for event in page.events:
                if not is_meeting_due(event, now, watch.minutes_before, watch.time_zone):
                    continue

                key = notified_key(event)
                notified = document.notified_keys_by_user.get(watch.user_id, [])
                if key in notified:
                    continue

                text = format_meeting_push(
                    event.summary,
                    event_start_ms(event, watch.time_zone),
                    now,
                    watch.time_zone,
                    event.location,
                )
                try:
                    await self.sender.send_text_to_user(watch.user_id, text)
                except Exception as e:
                    logger.warning(f"Meeting reminder {key} for user {watch.user_id} failed: {e}")
                    continue

                document.notified_keys_by_user[watch.user_id] = remember_notified_key(
                    notified, key, self.notified_keep
                )
                await self.repo.save(document)
                logger.info(f"Sent meeting reminder to user {watch.user_id} ({key})")

            next_token = page.next_token
            if not next_token:
                break
