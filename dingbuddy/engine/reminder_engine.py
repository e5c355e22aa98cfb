"""Reminder engine - fires one-shot reminders when they come due."""

import logging
from typing import Callable

from dingbuddy.bot.formatters import format_reminder_push
from dingbuddy.db.repository import ReminderRepository
from dingbuddy.engine.due import is_reminder_due, prune_terminal_reminders
from dingbuddy.engine.poller import TextSender
from dingbuddy.utils.constants import REMINDER_STALE_PENDING_MS
from dingbuddy.utils.time_utils import now_ms

logger = logging.getLogger(__name__)


class ReminderEngine:
    """One tick: push every due reminder, mark it sent, prune old history."""

    def __init__(
        self,
        repo: ReminderRepository,
        sender: TextSender,
        clock: Callable[[], int] = now_ms,
    ):
        self.repo = repo
        self.sender = sender
        self.clock = clock

    async def tick(self) -> None:
        document = await self.repo.load()
        pending = [r for r in document.reminders.values() if r.is_pending]
        if not pending:
            return

        now = self.clock()
        changed = False

        for reminder in pending:
            if not is_reminder_due(reminder, now):
                continue

            try:
                await self.sender.send_text_to_user(reminder.user_id, format_reminder_push(reminder))
            except Exception as e:
                # Left unsent; retried next tick while still inside the grace window
                logger.warning(
                    f"Reminder push failed (id={reminder.id} user={reminder.user_id}): {e}"
                )
                continue

            reminder.sent_at_ms = now
            document.last_sent_reminder_id_by_user[reminder.user_id] = reminder.id
            changed = True
            logger.info(f"Sent reminder {reminder.id} to user {reminder.user_id}")

        oldest = min(r.scheduled_at_ms for r in pending)
        if changed or now - oldest > REMINDER_STALE_PENDING_MS:
            before = len(document.reminders)
            document.reminders = prune_terminal_reminders(document.reminders, now)
            if len(document.reminders) < before:
                logger.info(f"Pruned {before - len(document.reminders)} old reminders")
            await self.repo.save(document)
