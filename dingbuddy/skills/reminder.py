"""Reminder skill - create, list, cancel and acknowledge one-shot reminders."""

import logging
import uuid
from typing import Callable

from dingbuddy.bot.formatters import (
    MULTIPLE_TIMES_REMINDER,
    format_need_time,
    format_reminder_created,
    format_reminder_list,
)
from dingbuddy.db.models import AckCommand, Reminder, SkillResult
from dingbuddy.db.repository import ReminderRepository
from dingbuddy.parser.nlp import parse_reminder_text
from dingbuddy.utils.constants import DEFAULT_TIMEZONE, MAX_REMINDERS_LISTED
from dingbuddy.utils.time_utils import (
    add_calendar_days,
    format_duration,
    format_local,
    is_valid_timezone,
    local_to_instant,
    now_ms,
    project,
)

logger = logging.getLogger(__name__)

DEFAULT_MESSAGE = "提醒你一下"


def _new_id() -> str:
    return str(uuid.uuid4())


def schedule_instant(
    now: int, time_zone: str, hour: int, minute: int, day_offset: int
) -> int:
    """Resolve a parsed wall-clock time to an instant.

    Without an explicit day word, a time already past today rolls to tomorrow.
    """
    reading = project(now, time_zone)
    year, month, day = add_calendar_days(reading.ymd, day_offset)
    if day_offset == 0 and hour * 60 + minute < reading.minutes_of_day:
        year, month, day = add_calendar_days((year, month, day), 1)
    return local_to_instant(time_zone, year, month, day, hour, minute)


class ReminderSkill:
    def __init__(
        self,
        repo: ReminderRepository,
        default_timezone: str = DEFAULT_TIMEZONE,
        clock: Callable[[], int] = now_ms,
        id_factory: Callable[[], str] = _new_id,
    ):
        self.repo = repo
        self.default_timezone = default_timezone
        self.clock = clock
        self.id_factory = id_factory

    async def create(self, user_id: str, text: str, time_zone: str | None = None) -> SkillResult:
        """Create a reminder from free text such as "明天早上八点半提醒我开会"."""
        raw = (text or "").strip()
        if not raw:
            return SkillResult(
                "请告诉我你想什么时候提醒（例如：16:40 叫我一下）。", ok=False, reason="empty"
            )

        tz = time_zone.strip() if is_valid_timezone(time_zone) else self.default_timezone
        parsed = parse_reminder_text(raw)
        logger.debug(f"Reminder text from {user_id} parsed as {parsed.kind}")

        if parsed.kind == "multiple_times":
            return SkillResult(MULTIPLE_TIMES_REMINDER, ok=False, reason="multiple_times")
        if parsed.kind == "need_time":
            return SkillResult(
                format_need_time(parsed.message),
                ok=False,
                reason="need_time",
                data={"message": parsed.message},
            )

        now = self.clock()
        reminder = Reminder(
            id=self.id_factory(),
            user_id=user_id,
            text=parsed.message or DEFAULT_MESSAGE,
            scheduled_at_ms=schedule_instant(now, tz, parsed.hour, parsed.minute, parsed.day_offset),
            time_zone=tz,
            created_at_ms=now,
        )
        await self.repo.add(reminder)
        return SkillResult(format_reminder_created(reminder), data={"reminder": reminder})

    async def list_pending(self, user_id: str) -> SkillResult:
        reminders = await self.repo.list_pending(user_id)
        return SkillResult(
            format_reminder_list(reminders[:MAX_REMINDERS_LISTED]),
            data={"reminders": reminders},
        )

    async def cancel(self, user_id: str, reminder_id: str) -> SkillResult:
        reminder_id = (reminder_id or "").strip()
        if not reminder_id:
            return SkillResult(
                "请提供要取消的提醒 id（从“我的提醒”里复制）。", ok=False, reason="missing_id"
            )

        canceled = await self.repo.cancel(reminder_id, user_id, self.clock())
        if not canceled:
            return SkillResult(
                "没找到这条提醒，可能已触发或已取消。", ok=False, reason="not_found"
            )
        return SkillResult("已取消提醒。", data={"id": reminder_id})

    async def acknowledge(self, user_id: str, command: AckCommand) -> SkillResult | None:
        """Apply a reply such as "完成" / "延后10分钟" / "取消 id=...".

        Without an explicit id the last reminder pushed to the user is the
        target. Returns None when there is nothing outstanding to acknowledge,
        so the message can be handled as something else. Only a pushed,
        unacknowledged reminder takes an ack; "取消" on one still waiting to
        fire cancels it.
        """
        explicit = command.reminder_id is not None
        reminder_id = command.reminder_id or await self.repo.last_sent_id(user_id)
        if not reminder_id:
            return None

        reminder = await self.repo.get(reminder_id)
        if reminder is None or reminder.user_id != user_id:
            if not explicit:
                return None
            return SkillResult("没找到这条提醒。", ok=False, reason="not_found")
        if reminder.sent_at_ms is None or reminder.acknowledged_at_ms is not None:
            if not explicit:
                return None
            if command.action == "canceled" and reminder.is_pending:
                return await self.cancel(user_id, reminder.id)
            return SkillResult(
                "这条提醒还没触发或已经处理过了。", ok=False, reason="already_handled"
            )

        now = self.clock()

        if command.action == "snoozed":
            follow_up = Reminder(
                id=self.id_factory(),
                user_id=user_id,
                text=reminder.text,
                scheduled_at_ms=now + command.minutes * 60 * 1000,
                time_zone=reminder.time_zone,
                created_at_ms=now,
            )
            await self.repo.acknowledge(reminder.id, user_id, "snoozed", now, next_reminder=follow_up)
            local = format_local(follow_up.scheduled_at_ms, follow_up.time_zone)
            return SkillResult(
                f"好的～{format_duration(command.minutes)}后（{local}）再提醒你：{follow_up.text}",
                data={"reminder": follow_up},
            )

        await self.repo.acknowledge(reminder.id, user_id, command.action, now)
        if command.action == "canceled":
            return SkillResult("好的，这条提醒已取消。", data={"id": reminder.id})
        return SkillResult("好的，已标记完成～", data={"id": reminder.id})
