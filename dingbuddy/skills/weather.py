"""Weather skill - current weather, details and daily subscriptions."""

import logging
import re
from typing import Any, Callable, Protocol

from dingbuddy.bot.formatters import (
    format_forecast_details,
    format_forecast_summary,
    format_place_choices,
    format_subscription,
    format_subscription_created,
)
from dingbuddy.db.models import (
    DailySchedule,
    PendingActionKind,
    PendingPlaceSelection,
    Place,
    SkillResult,
    SubscriptionDraft,
    WeatherSubscription,
)
from dingbuddy.db.repository import SubscriptionRepository
from dingbuddy.parser.nlp import parse_place_and_daily_time
from dingbuddy.utils.session_cache import SessionCache
from dingbuddy.utils.time_utils import now_ms

logger = logging.getLogger(__name__)

PLACE_NOT_FOUND_HINT = "你可以换个写法再试一次（例如：北京朝阳 / 深圳南山）。"

_NON_PLACE_RE = re.compile(r"拼贴|整理|总结|对话|回顾|复述")


class WeatherSource(Protocol):
    async def geocode(self, query: str, count: int = 3) -> list[Place]:
        ...

    async def fetch_forecast(self, place: Place) -> dict[str, Any]:
        ...


class WeatherSkill:
    """Weather tools for one account.

    Ambiguous place names park a pending selection in ``selections`` until the
    user answers with an index. Incomplete subscribe requests park their
    known slot in ``drafts``.
    """

    def __init__(
        self,
        repo: SubscriptionRepository,
        weather: WeatherSource,
        selections: SessionCache[PendingPlaceSelection] | None = None,
        drafts: SessionCache[SubscriptionDraft] | None = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.repo = repo
        self.weather = weather
        self.selections = selections if selections is not None else SessionCache()
        self.drafts = drafts if drafts is not None else SessionCache()
        self.clock = clock

    def has_pending_selection(self, session_key: str) -> bool:
        return self.selections.get(session_key) is not None

    def has_draft(self, session_key: str) -> bool:
        return self.drafts.get(session_key) is not None

    def clear_draft(self, session_key: str) -> None:
        self.drafts.pop(session_key)

    async def _summary(self, place: Place, title: str = "天气预览") -> str:
        forecast = await self.weather.fetch_forecast(place)
        return format_forecast_summary(place, forecast, title=title)

    async def _details(self, place: Place) -> str:
        forecast = await self.weather.fetch_forecast(place)
        return format_forecast_details(place, forecast)

    async def _resolve_place(
        self,
        session_key: str,
        query: str,
        action: PendingActionKind,
        time_hhmm: str | None = None,
    ) -> tuple[Place | None, SkillResult | None]:
        """Geocode a query to exactly one place, or explain why not."""
        places = await self.weather.geocode(query, count=3)
        if not places:
            return None, SkillResult(
                f"没找到地点：{query}\n{PLACE_NOT_FOUND_HINT}", ok=False, reason="place_not_found"
            )
        if len(places) == 1:
            return places[0], None

        self.selections.set(
            session_key, PendingPlaceSelection(places=places, action=action, time_hhmm=time_hhmm)
        )
        if action == "subscribe":
            prompt = (
                f"我找到了多个“{query}”，你想订阅哪一个？回复编号即可"
                f"（我会每天 {time_hhmm} 推送）：\n"
            )
        else:
            prompt = f"我找到了多个“{query}”，你指的是哪一个？回复编号即可：\n"
        return None, SkillResult(
            prompt + format_place_choices(places),
            ok=False,
            reason="place_ambiguous",
            data={"choices": places},
        )

    async def _place_or_subscription(
        self, user_id: str, session_key: str, query: str | None, action: PendingActionKind
    ) -> tuple[Place | None, SkillResult | None]:
        query = (query or "").strip()
        if query:
            return await self._resolve_place(session_key, query, action)

        subscription = await self.repo.get(user_id)
        if subscription is None:
            if action == "now":
                text = (
                    "你还没有设置天气订阅。你可以直接问我“成都天气”，"
                    "或者说“订阅天气 成都 10:20”。"
                )
            else:
                text = "你还没有设置天气订阅。请告诉我你想看的地点，例如：成都天气详情。"
            return None, SkillResult(text, ok=False, reason="no_subscription")
        return subscription.place, None

    async def now(self, user_id: str, session_key: str, place_query: str | None = None) -> SkillResult:
        """Weather summary for a place, or for the user's subscribed place."""
        place, failure = await self._place_or_subscription(user_id, session_key, place_query, "now")
        if failure:
            return failure
        return SkillResult(await self._summary(place), data={"place": place})

    async def details(
        self, user_id: str, session_key: str, place_query: str | None = None
    ) -> SkillResult:
        place, failure = await self._place_or_subscription(
            user_id, session_key, place_query, "details"
        )
        if failure:
            return failure
        return SkillResult(await self._details(place), data={"place": place})

    async def _upsert(self, user_id: str, place: Place, time_hhmm: str) -> SkillResult:
        now = self.clock()
        existing = await self.repo.get(user_id)
        subscription = WeatherSubscription(
            user_id=user_id,
            place=place,
            schedule=DailySchedule(time=time_hhmm),
            created_at_ms=existing.created_at_ms if existing else now,
            updated_at_ms=now,
        )
        await self.repo.upsert(subscription)

        try:
            preview = await self._summary(place)
        except Exception as e:
            logger.warning(f"Preview forecast failed for {place.label}: {e}")
            preview = "（天气预览暂时获取失败，不影响每天的推送）"

        return SkillResult(
            format_subscription_created(subscription, preview),
            data={"subscription": subscription},
        )

    async def subscribe(self, user_id: str, session_key: str, text: str) -> SkillResult:
        """Subscribe from text like "成都 10:20", merging with an earlier partial request."""
        parsed = parse_place_and_daily_time(text)
        if parsed.kind == "multiple_times":
            return SkillResult(
                "目前一次订阅只支持每天一个时间点，请只写一个时间，例如：北京 8点",
                ok=False,
                reason="multiple_times",
            )

        draft = self.drafts.get(session_key) or SubscriptionDraft()
        place_query = parsed.place_query
        if place_query and _NON_PLACE_RE.search(place_query):
            place_query = ""
        place_query = place_query or draft.place_query
        time_hhmm = parsed.time_hhmm or draft.time_hhmm

        if not place_query or not time_hhmm:
            self.drafts.set(session_key, SubscriptionDraft(place_query=place_query, time_hhmm=time_hhmm))
            if place_query:
                reply = f"好～地点记为「{place_query}」。还差每天几点推送，例如：08:00 或 8点半。"
                reason = "need_time"
            elif time_hhmm:
                reply = (
                    f"好～我记下每天 {time_hhmm} 推送。还差地点，发个城市/区县就行，"
                    "例如：成都 / 上海浦东。"
                )
                reason = "need_place"
            else:
                reply = (
                    "想订阅的话直接发：目标地区 + 推送时间，例如：成都 10:20"
                    "（也支持“每天8点”这种写法）"
                )
                reason = "need_both"
            return SkillResult(reply, ok=False, reason=reason, data={"parsed": parsed})

        self.drafts.pop(session_key)
        place, failure = await self._resolve_place(session_key, place_query, "subscribe", time_hhmm)
        if failure:
            return failure
        return await self._upsert(user_id, place, time_hhmm)

    async def list_subscription(self, user_id: str) -> SkillResult:
        subscription = await self.repo.get(user_id)
        if subscription is None:
            return SkillResult(
                "你目前没有天气订阅。你可以说：订阅天气 成都 10:20",
                data={"subscription": None},
            )
        return SkillResult(format_subscription(subscription), data={"subscription": subscription})

    async def unsubscribe(self, user_id: str) -> SkillResult:
        existed = await self.repo.delete(user_id)
        if existed:
            text = "已取消订阅。想重新订阅的话，直接说：订阅天气 成都 10:20"
        else:
            text = "你目前没有订阅需要取消。"
        return SkillResult(text, data={"existed": existed})

    async def pick_place(self, user_id: str, session_key: str, index: int) -> SkillResult:
        """Continue the pending now/details/subscribe request with the chosen candidate."""
        pending = self.selections.get(session_key)
        if pending is None:
            return SkillResult(
                "我这边没有待选择的地点。你可以重新说一次：成都 10:20 / 成都天气",
                ok=False,
                reason="no_pending",
            )

        if not 1 <= index <= len(pending.places):
            return SkillResult(
                f"序号不对。请回复 1～{len(pending.places)} 之间的数字。",
                ok=False,
                reason="bad_index",
            )

        place = pending.places[index - 1]
        self.selections.pop(session_key)

        if pending.action == "now":
            return SkillResult(await self._summary(place), data={"place": place})
        if pending.action == "details":
            return SkillResult(await self._details(place), data={"place": place})
        return await self._upsert(user_id, place, pending.time_hhmm)
