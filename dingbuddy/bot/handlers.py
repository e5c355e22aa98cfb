"""Text message router - maps an inbound utterance to a skill call."""

import logging
import re

from dingbuddy.bot.formatters import HELP_TEXT
from dingbuddy.db.models import SkillResult
from dingbuddy.parser.nlp import find_time_matches, parse_ack_command
from dingbuddy.parser.normalizer import normalize_text, parse_zh_int
from dingbuddy.parser.patterns import (
    CALENDAR_OFF_PATTERN,
    CALENDAR_ON_PATTERN,
    CALENDAR_TODAY_PATTERN,
    EXIT_FLOW_PATTERN,
    HELP_PATTERN,
    MINUTES_PATTERN,
    NON_SUBSCRIBE_CONTEXT_PATTERN,
    PICK_INDEX_PATTERN,
    REMINDER_CANCEL_PATTERN,
    REMINDER_INTENT_PATTERN,
    REMINDER_LIST_PATTERN,
    SUBSCRIPTION_LIST_PATTERN,
    UNSUBSCRIBE_PATTERN,
    WEATHER_DETAILS_PATTERN,
    WEATHER_PATTERN,
    WEATHER_QUERY_NOISE,
    WHITESPACE_PATTERN,
)
from dingbuddy.skills.calendar import CalendarSkill
from dingbuddy.skills.reminder import ReminderSkill
from dingbuddy.skills.weather import WeatherSkill

logger = logging.getLogger(__name__)


def is_subscribe_intent(text: str) -> bool:
    """Recognize "订阅天气 ..." style requests without catching chatter about subscriptions."""
    if not text or NON_SUBSCRIBE_CONTEXT_PATTERN.search(text):
        return False
    if re.match(r'^(订阅天气|天气订阅|订阅)', text):
        return True
    if re.search(r'订阅.*天气', text):
        return True
    return bool(re.search(r'天气.*订阅', text)) and len(text) <= 12


def extract_weather_place(text: str) -> str:
    """Strip question words from "成都天气怎么样" to leave "成都"."""
    return WHITESPACE_PATTERN.sub(' ', WEATHER_QUERY_NOISE.sub(' ', text)).strip()


class MessageRouter:
    """Route one user's text to the reminder, weather or calendar skill.

    Returns None when nothing matched; the caller decides what to say then.
    """

    def __init__(
        self,
        reminders: ReminderSkill,
        weather: WeatherSkill,
        calendar: CalendarSkill | None = None,
    ):
        self.reminders = reminders
        self.weather = weather
        self.calendar = calendar

    async def route(self, user_id: str, session_key: str, raw_text: str) -> SkillResult | None:
        text = normalize_text(raw_text)
        if not text:
            return None

        if HELP_PATTERN.match(text):
            return SkillResult(HELP_TEXT)

        # Answer to "which of these places?"
        pick = PICK_INDEX_PATTERN.match(text)
        if pick and self.weather.has_pending_selection(session_key):
            index = parse_zh_int(pick.group(1))
            return await self.weather.pick_place(user_id, session_key, index or 0)

        if REMINDER_LIST_PATTERN.match(text):
            return await self.reminders.list_pending(user_id)

        cancel = REMINDER_CANCEL_PATTERN.match(text)
        if cancel:
            return await self.reminders.cancel(user_id, cancel.group(1) or "")

        if self.weather.has_draft(session_key) and EXIT_FLOW_PATTERN.match(text):
            self.weather.clear_draft(session_key)
            return SkillResult("好的，已退出订阅设置。")

        ack = parse_ack_command(text)
        if ack is not None:
            result = await self.reminders.acknowledge(user_id, ack)
            if result is not None:
                return result

        if SUBSCRIPTION_LIST_PATTERN.match(text):
            return await self.weather.list_subscription(user_id)
        if UNSUBSCRIBE_PATTERN.match(text):
            return await self.weather.unsubscribe(user_id)

        if self.calendar is not None:
            result = await self._route_calendar(user_id, text)
            if result is not None:
                return result

        if is_subscribe_intent(text) or self.weather.has_draft(session_key):
            return await self.weather.subscribe(user_id, session_key, text)

        if WEATHER_DETAILS_PATTERN.search(text):
            return await self.weather.details(user_id, session_key, extract_weather_place(text))
        if WEATHER_PATTERN.search(text):
            return await self.weather.now(user_id, session_key, extract_weather_place(text))

        if REMINDER_INTENT_PATTERN.search(text) or find_time_matches(text):
            return await self.reminders.create(user_id, text)

        logger.debug(f"No route for message from {user_id}")
        return None

    async def _route_calendar(self, user_id: str, text: str) -> SkillResult | None:
        if CALENDAR_OFF_PATTERN.search(text):
            return await self.calendar.watch(user_id, enabled=False)

        if CALENDAR_ON_PATTERN.search(text):
            minutes = None
            match = MINUTES_PATTERN.search(text)
            if match:
                minutes = parse_zh_int(match.group(1))
            return await self.calendar.watch(user_id, enabled=True, minutes_before=minutes)

        if CALENDAR_TODAY_PATTERN.match(text):
            return await self.calendar.today(user_id)

        return None
