"""Shared test doubles."""

from typing import Any

import pytest

from dingbuddy.db.models import CalendarInfo, EventsPage, Place
from dingbuddy.db.repository import JsonDocumentStore

CHENGDU = Place("成都", "成都 · 四川 · 中国", 30.67, 104.07, "Asia/Shanghai")

FORECAST = {
    "current": {"temperature_2m": 21.5, "weather_code": 3, "relative_humidity_2m": 60},
    "current_units": {"temperature_2m": "°C", "relative_humidity_2m": "%"},
    "daily": {
        "temperature_2m_max": [25.0],
        "temperature_2m_min": [16.0],
        "precipitation_probability_max": [20],
        "weather_code": [3],
    },
    "daily_units": {"temperature_2m_max": "°C", "temperature_2m_min": "°C"},
}


class FakeSender:
    """Records pushed texts.

    Fails for users listed in ``failing`` and for texts containing any of
    ``failing_texts``.
    """

    def __init__(self, failing: set[str] | None = None, failing_texts: set[str] | None = None):
        self.sent: list[tuple[str, str]] = []
        self.failing = failing or set()
        self.failing_texts = failing_texts or set()

    async def send_text_to_user(self, user_id: str, text: str) -> None:
        if user_id in self.failing or any(part in text for part in self.failing_texts):
            raise RuntimeError("send failed")
        self.sent.append((user_id, text))


class FakeWeather:
    def __init__(self, places: dict[str, list[Place]] | None = None, fail: bool = False):
        self.places = places if places is not None else {"成都": [CHENGDU]}
        self.fail = fail
        self.forecasts: list[Place] = []

    async def geocode(self, query: str, count: int = 3) -> list[Place]:
        return self.places.get(query, [])

    async def fetch_forecast(self, place: Place) -> dict[str, Any]:
        if self.fail:
            raise RuntimeError("forecast unavailable")
        self.forecasts.append(place)
        return FORECAST


class FakeCalendar:
    """Serves fixed calendars and paged events."""

    def __init__(self, calendars: list[CalendarInfo], pages: list[EventsPage]):
        self.calendars = calendars
        self.pages = pages
        self.calendar_calls = 0
        self.event_calls: list[dict[str, Any]] = []

    async def list_calendars(self, user_id: str) -> list[CalendarInfo]:
        self.calendar_calls += 1
        return self.calendars

    async def list_events_view(
        self,
        user_id: str,
        calendar_id: str,
        time_min: str,
        time_max: str,
        next_token: str | None = None,
        max_results: int = 50,
    ) -> EventsPage:
        self.event_calls.append(
            {"user_id": user_id, "calendar_id": calendar_id, "next_token": next_token,
             "time_min": time_min, "time_max": time_max}
        )
        index = int(next_token) if next_token else 0
        return self.pages[index] if index < len(self.pages) else EventsPage()


@pytest.fixture
def store(tmp_path):
    return JsonDocumentStore(tmp_path)
