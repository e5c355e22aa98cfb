"""Subscription engine - daily weather pushes at each place's local time."""

import logging
from typing import Any, Callable, Protocol

from dingbuddy.bot.formatters import format_forecast_summary
from dingbuddy.db.models import Place
from dingbuddy.db.repository import SubscriptionRepository
from dingbuddy.engine.due import is_subscription_due
from dingbuddy.engine.poller import TextSender
from dingbuddy.utils.time_utils import now_ms, project

logger = logging.getLogger(__name__)

PUSH_TITLE = "天气推送"


class ForecastSource(Protocol):
    async def fetch_forecast(self, place: Place) -> dict[str, Any]:
        ...


class SubscriptionEngine:
    """One tick: push today's forecast to every subscription inside its window."""

    def __init__(
        self,
        repo: SubscriptionRepository,
        sender: TextSender,
        weather: ForecastSource,
        clock: Callable[[], int] = now_ms,
    ):
        self.repo = repo
        self.sender = sender
        self.weather = weather
        self.clock = clock

    async def tick(self) -> None:
        document = await self.repo.load()
        if not document.subscriptions:
            return

        now = self.clock()
        changed = False

        for user_id, subscription in document.subscriptions.items():
            # Due-ness is judged in the place's zone, not the user's
            reading = project(now, subscription.place.timezone)
            if not is_subscription_due(subscription, reading):
                continue

            try:
                forecast = await self.weather.fetch_forecast(subscription.place)
                text = format_forecast_summary(subscription.place, forecast, title=PUSH_TITLE)
                await self.sender.send_text_to_user(user_id, text)
            except Exception as e:
                logger.warning(f"Weather push failed (user={user_id}): {e}")
                continue

            subscription.last_sent_local_date = reading.date_key
            subscription.updated_at_ms = now
            changed = True
            logger.info(
                f"Sent weather push to user {user_id} ({subscription.place.label}, "
                f"{reading.date_key})"
            )

        if changed:
            await self.repo.save(document)
