"""DingTalk OpenAPI client: access token, robot messages and calendar reads."""

import asyncio
import json
import logging
import time
from typing import Any
from urllib.parse import quote

import httpx

from dingbuddy.db.models import CalendarEvent, CalendarInfo, EventsPage
from dingbuddy.utils.constants import CALENDAR_PAGE_SIZE

logger = logging.getLogger(__name__)

API_BASE = "https://api.dingtalk.com"
TOKEN_SAFETY_MARGIN_SECONDS = 60


class DingtalkApiError(RuntimeError):
    pass


class DingtalkOpenApiClient:
    """Thin async wrapper over the DingTalk OpenAPI endpoints the bot uses.

    The access token is cached until shortly before it expires; concurrent
    callers share a single refresh.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        robot_code: str,
        timeout: float = 8.0,
        api_base: str = API_BASE,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.robot_code = robot_code
        self.timeout = timeout
        self.api_base = api_base.rstrip("/")
        self._transport = transport
        self._token: str | None = None
        self._expires_at: float = 0.0
        self._lock = asyncio.Lock()

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def _fetch_access_token(self) -> tuple[str, int]:
        async with self._client() as client:
            response = await client.post(
                f"{self.api_base}/v1.0/oauth2/accessToken",
                json={"appKey": self.client_id, "appSecret": self.client_secret},
            )
            response.raise_for_status()
            data = response.json()

        token = data.get("accessToken")
        if not token:
            raise DingtalkApiError("dingtalk_access_token_missing")
        return token, int(data.get("expireIn") or 0)

    async def get_access_token(self) -> str:
        async with self._lock:
            if self._token and time.time() < self._expires_at:
                return self._token
            try:
                token, expire_in = await self._fetch_access_token()
            except Exception as e:
                logger.warning(f"Failed to fetch DingTalk access token: {e}")
                raise
            self._token = token
            self._expires_at = time.time() + max(0, expire_in - TOKEN_SAFETY_MARGIN_SECONDS)
            return token

    async def _headers(self) -> dict[str, str]:
        return {"x-acs-dingtalk-access-token": await self.get_access_token()}

    async def send_text_to_users(self, user_ids: list[str], text: str) -> None:
        """Send a plain-text robot message to one-on-one chats."""
        user_ids = [u.strip() for u in user_ids if u and u.strip()]
        if not user_ids:
            return

        headers = await self._headers()
        async with self._client() as client:
            response = await client.post(
                f"{self.api_base}/v1.0/robot/oToMessages/batchSend",
                headers=headers,
                json={
                    "robotCode": self.robot_code,
                    "userIds": user_ids,
                    "msgKey": "sampleText",
                    "msgParam": json.dumps({"content": text}, ensure_ascii=False),
                },
            )
            response.raise_for_status()

    async def send_text_to_user(self, user_id: str, text: str) -> None:
        await self.send_text_to_users([user_id], text)

    async def list_calendars(self, user_id: str) -> list[CalendarInfo]:
        headers = await self._headers()
        async with self._client() as client:
            response = await client.get(
                f"{self.api_base}/v1.0/calendar/users/{quote(user_id, safe='')}/calendars",
                headers=headers,
            )
            response.raise_for_status()
            data = response.json()
        return parse_calendars(data)

    async def list_events_view(
        self,
        user_id: str,
        calendar_id: str,
        time_min: str,
        time_max: str,
        next_token: str | None = None,
        max_results: int = CALENDAR_PAGE_SIZE,
    ) -> EventsPage:
        params: dict[str, Any] = {
            "timeMin": time_min,
            "timeMax": time_max,
            "maxResults": max_results,
        }
        if next_token:
            params["nextToken"] = next_token

        headers = await self._headers()
        async with self._client() as client:
            response = await client.get(
                f"{self.api_base}/v1.0/calendar/users/{quote(user_id, safe='')}"
                f"/calendars/{quote(calendar_id, safe='')}/eventsview",
                headers=headers,
                params=params,
            )
            response.raise_for_status()
            data = response.json()
        return parse_events_page(data)


def parse_calendars(data: Any) -> list[CalendarInfo]:
    """Read the calendar list, tolerating the shapes the API has returned."""
    if not isinstance(data, dict):
        return []
    nested = data.get("response")
    raw = nested.get("calendars") if isinstance(nested, dict) else data.get("calendars")
    if not isinstance(raw, list):
        return []

    calendars = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        calendar_id = str(item.get("id") or item.get("calendarId") or "").strip()
        if not calendar_id:
            continue
        calendar_type = item.get("type") or item.get("calendarType")
        calendars.append(
            CalendarInfo(
                calendar_id=calendar_id,
                calendar_type=str(calendar_type).lower() if calendar_type else None,
                time_zone=item.get("timeZone"),
            )
        )
    return calendars


def parse_events_page(data: Any) -> EventsPage:
    if not isinstance(data, dict):
        return EventsPage()

    events = []
    for item in data.get("events") or []:
        if not isinstance(item, dict):
            continue
        start = item.get("start") if isinstance(item.get("start"), dict) else {}
        location = item.get("location") if isinstance(item.get("location"), dict) else {}
        events.append(
            CalendarEvent(
                id=str(item.get("id") or ""),
                summary=str(item.get("summary") or ""),
                start_date_time=start.get("dateTime"),
                start_time_zone=start.get("timeZone"),
                is_all_day=bool(item.get("isAllDay")),
                location=str(location.get("displayName") or "").strip(),
            )
        )
    return EventsPage(events=events, next_token=data.get("nextToken") or None)
