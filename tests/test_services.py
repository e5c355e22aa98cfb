"""Tests for the DingTalk and Open-Meteo HTTP clients."""

import json

import httpx
import pytest

from dingbuddy.services.dingtalk import (
    DingtalkApiError,
    DingtalkOpenApiClient,
    parse_calendars,
    parse_events_page,
)
from dingbuddy.services.weather import OpenMeteoClient, parse_geocoding
from dingbuddy.utils.error_handler import GENERIC_ERROR_MESSAGE, friendly_error_message


class Recorder:
    """MockTransport handler that records requests and answers by path."""

    def __init__(self, routes: dict[str, httpx.Response]):
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.routes.get(request.url.path, httpx.Response(404))

    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]


TOKEN_PATH = "/v1.0/oauth2/accessToken"
SEND_PATH = "/v1.0/robot/oToMessages/batchSend"


def make_client(recorder: Recorder) -> DingtalkOpenApiClient:
    return DingtalkOpenApiClient(
        "app-key", "app-secret", "robot-1", transport=httpx.MockTransport(recorder)
    )


@pytest.mark.asyncio
async def test_send_text_caches_token():
    """Test robot messages carry the token, fetched only once."""
    recorder = Recorder(
        {
            TOKEN_PATH: httpx.Response(200, json={"accessToken": "tok", "expireIn": 7200}),
            SEND_PATH: httpx.Response(200, json={"processQueryKey": "k"}),
        }
    )
    client = make_client(recorder)

    await client.send_text_to_user("u1", "你好")
    await client.send_text_to_users(["u2", " "], "再见")

    assert recorder.paths() == [TOKEN_PATH, SEND_PATH, SEND_PATH]
    token_body = json.loads(recorder.requests[0].content)
    assert token_body == {"appKey": "app-key", "appSecret": "app-secret"}

    send = recorder.requests[1]
    assert send.headers["x-acs-dingtalk-access-token"] == "tok"
    body = json.loads(send.content)
    assert body["robotCode"] == "robot-1"
    assert body["userIds"] == ["u1"]
    assert body["msgKey"] == "sampleText"
    assert json.loads(body["msgParam"]) == {"content": "你好"}
    assert json.loads(recorder.requests[2].content)["userIds"] == ["u2"]


@pytest.mark.asyncio
async def test_send_to_nobody_is_noop():
    """Test no request is made without recipients."""
    recorder = Recorder({})
    await make_client(recorder).send_text_to_users(["", "  "], "hi")
    assert recorder.requests == []


@pytest.mark.asyncio
async def test_missing_token_raises():
    """Test a token response without a token is an API error."""
    recorder = Recorder({TOKEN_PATH: httpx.Response(200, json={"code": "bad"})})
    with pytest.raises(DingtalkApiError):
        await make_client(recorder).get_access_token()


@pytest.mark.asyncio
async def test_http_error_propagates():
    """Test a rejected send raises for the caller to report."""
    recorder = Recorder(
        {
            TOKEN_PATH: httpx.Response(200, json={"accessToken": "tok", "expireIn": 7200}),
            SEND_PATH: httpx.Response(403, json={"code": "Forbidden"}),
        }
    )
    with pytest.raises(httpx.HTTPStatusError):
        await make_client(recorder).send_text_to_user("u1", "hi")


@pytest.mark.asyncio
async def test_list_events_view_request():
    """Test the events view query and its parsing."""
    events_path = "/v1.0/calendar/users/u%201/calendars/primary/eventsview"
    recorder = Recorder(
        {
            TOKEN_PATH: httpx.Response(200, json={"accessToken": "tok", "expireIn": 7200}),
            "/v1.0/calendar/users/u 1/calendars/primary/eventsview": httpx.Response(
                200,
                json={
                    "events": [
                        {
                            "id": "e1",
                            "summary": "周会",
                            "start": {"dateTime": "2026-05-01T10:00:00+08:00", "timeZone": "Asia/Shanghai"},
                            "location": {"displayName": " 3楼 "},
                        }
                    ],
                    "nextToken": "n2",
                },
            ),
        }
    )
    page = await make_client(recorder).list_events_view(
        "u 1", "primary", "2026-05-01T00:00:00.000Z", "2026-05-02T00:00:00.000Z", next_token="n1"
    )

    request = recorder.requests[-1]
    assert request.url.raw_path.decode().startswith(events_path)
    assert request.url.params["timeMin"] == "2026-05-01T00:00:00.000Z"
    assert request.url.params["maxResults"] == "50"
    assert request.url.params["nextToken"] == "n1"

    assert page.next_token == "n2"
    assert page.events[0].summary == "周会"
    assert page.events[0].start_time_zone == "Asia/Shanghai"
    assert page.events[0].location == "3楼"


def test_parse_calendars_shapes():
    """Test both calendar list shapes are understood."""
    nested = parse_calendars({"response": {"calendars": [{"id": "c1", "type": "PRIMARY"}]}})
    assert nested[0].calendar_id == "c1"
    assert nested[0].calendar_type == "primary"

    flat = parse_calendars({"calendars": [{"calendarId": "c2", "calendarType": "shared"}, {"x": 1}]})
    assert [c.calendar_id for c in flat] == ["c2"]

    assert parse_calendars(None) == []
    assert parse_calendars({"calendars": "nope"}) == []


def test_parse_events_page_tolerates_junk():
    """Test odd event payloads degrade to empty fields."""
    page = parse_events_page({"events": [{"id": "e1", "isAllDay": True}, "junk"]})
    assert len(page.events) == 1
    assert page.events[0].is_all_day
    assert page.events[0].start_date_time is None
    assert page.next_token is None


def test_parse_geocoding():
    """Test geocoding results become labelled places."""
    places = parse_geocoding(
        "成都",
        {
            "results": [
                {"name": "成都", "admin1": "四川", "country": "中国", "latitude": 30.67,
                 "longitude": 104.07, "timezone": "Asia/Shanghai"},
                {"name": "无坐标", "latitude": None, "longitude": 1.0},
                {"name": "", "latitude": 1.0, "longitude": 2.0},
            ]
        },
    )

    assert [p.label for p in places] == ["成都 · 四川 · 中国", "成都"]
    assert places[1].timezone == "UTC"
    assert parse_geocoding("x", {}) == []


@pytest.mark.asyncio
async def test_open_meteo_requests():
    """Test geocoding and forecast query parameters."""
    recorder = Recorder(
        {
            "/v1/search": httpx.Response(
                200,
                json={"results": [{"name": "成都", "latitude": 30.67, "longitude": 104.07,
                                   "timezone": "Asia/Shanghai"}]},
            ),
            "/v1/forecast": httpx.Response(200, json={"current": {"temperature_2m": 20}}),
        }
    )
    client = OpenMeteoClient(transport=httpx.MockTransport(recorder))

    places = await client.geocode(" 成都 ")
    assert places[0].query == "成都"
    search = recorder.requests[0].url.params
    assert search["name"] == "成都"
    assert search["count"] == "3"
    assert search["language"] == "zh"

    forecast = await client.fetch_forecast(places[0])
    assert forecast == {"current": {"temperature_2m": 20}}
    params = recorder.requests[1].url.params
    assert params["timezone"] == "Asia/Shanghai"
    assert "weather_code" in params["current"]
    assert "sunrise" in params["daily"]

    assert await client.geocode("  ") == []
    assert len(recorder.requests) == 2


def test_friendly_error_message():
    """Test exceptions map to user-facing explanations."""
    request = httpx.Request("POST", "https://api.dingtalk.com/x")

    def status_error(code: int) -> httpx.HTTPStatusError:
        return httpx.HTTPStatusError("err", request=request, response=httpx.Response(code, request=request))

    assert "权限" in friendly_error_message(status_error(403))
    assert "频繁" in friendly_error_message(status_error(429))
    assert "暂时不可用" in friendly_error_message(status_error(502))
    assert "超时" in friendly_error_message(httpx.ReadTimeout("slow", request=request))
    assert "网络连接失败" in friendly_error_message(httpx.ConnectError("down", request=request))
    assert "钉钉" in friendly_error_message(DingtalkApiError("dingtalk_access_token_missing"))
    assert friendly_error_message(ValueError("x")) == GENERIC_ERROR_MESSAGE
