"""Main entry point for the dingbuddy bot."""

import asyncio
import logging
import signal
import sys

import dingtalk_stream

from dingbuddy.bot.channel import DingtalkChannel
from dingbuddy.bot.handlers import MessageRouter
from dingbuddy.config import Config
from dingbuddy.db.migrations import run_migrations
from dingbuddy.db.repository import (
    CalendarRepository,
    DocumentStore,
    JsonDocumentStore,
    ReminderRepository,
    SqliteDocumentStore,
    SubscriptionRepository,
)
from dingbuddy.engine.calendar_engine import CalendarEngine
from dingbuddy.engine.poller import PollLoop, tick_interval
from dingbuddy.engine.reminder_engine import ReminderEngine
from dingbuddy.engine.subscription_engine import SubscriptionEngine
from dingbuddy.services.dingtalk import DingtalkOpenApiClient
from dingbuddy.services.weather import OpenMeteoClient
from dingbuddy.skills.calendar import CalendarSkill
from dingbuddy.skills.reminder import ReminderSkill
from dingbuddy.skills.weather import WeatherSkill
from dingbuddy.utils.constants import (
    CALENDAR_TICK_SECONDS,
    REMINDER_TICK_SECONDS,
    SUBSCRIPTION_TICK_SECONDS,
)

# Configure logging
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO),
    stream=sys.stdout,
)

logger = logging.getLogger(__name__)

# Per-request lines from httpx only with DINGTALK_DEBUG
logging.getLogger("httpx").setLevel(logging.DEBUG if Config.DINGTALK_DEBUG else logging.WARNING)
if Config.DINGTALK_DEBUG:
    logging.getLogger("dingbuddy").setLevel(logging.DEBUG)


async def open_store() -> DocumentStore:
    """Create the configured document store."""
    if Config.STORAGE_BACKEND == "sqlite":
        await run_migrations(Config.DATABASE_PATH)
        store = SqliteDocumentStore(Config.DATABASE_PATH)
        await store.connect()
        return store

    logger.info(f"Using JSON documents under {Config.STATE_DIR}")
    return JsonDocumentStore(Config.STATE_DIR)


def build_poll_loops(
    store: DocumentStore,
    openapi: DingtalkOpenApiClient,
    weather: OpenMeteoClient,
    stop_event: asyncio.Event,
) -> list[PollLoop]:
    account = Config.DINGTALK_ACCOUNT_ID

    reminder_engine = ReminderEngine(ReminderRepository(store, account), openapi)
    subscription_engine = SubscriptionEngine(SubscriptionRepository(store, account), openapi, weather)
    calendar_engine = CalendarEngine(
        CalendarRepository(store, account),
        openapi,
        openapi,
        window_hours=Config.CALENDAR_WINDOW_HOURS,
        notified_keep=Config.CALENDAR_NOTIFIED_KEEP,
    )

    return [
        PollLoop(
            "reminders",
            reminder_engine.tick,
            tick_interval(Config.REMINDER_TICK_SECONDS, *REMINDER_TICK_SECONDS),
            stop_event,
        ),
        PollLoop(
            "weather subscriptions",
            subscription_engine.tick,
            tick_interval(Config.SUBSCRIPTION_TICK_SECONDS, *SUBSCRIPTION_TICK_SECONDS),
            stop_event,
        ),
        PollLoop(
            "calendar meetings",
            calendar_engine.tick,
            tick_interval(Config.CALENDAR_TICK_SECONDS, *CALENDAR_TICK_SECONDS),
            stop_event,
        ),
    ]


def build_channel(
    store: DocumentStore, openapi: DingtalkOpenApiClient, weather: OpenMeteoClient
) -> DingtalkChannel:
    account = Config.DINGTALK_ACCOUNT_ID
    router = MessageRouter(
        reminders=ReminderSkill(ReminderRepository(store, account), Config.DEFAULT_TIMEZONE),
        weather=WeatherSkill(SubscriptionRepository(store, account), weather),
        calendar=CalendarSkill(CalendarRepository(store, account), openapi, Config.DEFAULT_TIMEZONE),
    )
    return DingtalkChannel(router, timeout=Config.HTTP_TIMEOUT)


async def run() -> None:
    store = await open_store()
    openapi = DingtalkOpenApiClient(
        Config.DINGTALK_CLIENT_ID,
        Config.DINGTALK_CLIENT_SECRET,
        Config.DINGTALK_ROBOT_CODE,
        timeout=Config.HTTP_TIMEOUT,
    )
    weather = OpenMeteoClient(timeout=Config.HTTP_TIMEOUT)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers; Ctrl+C still raises KeyboardInterrupt
            pass

    pollers = [asyncio.create_task(p.run()) for p in build_poll_loops(store, openapi, weather, stop_event)]

    credential = dingtalk_stream.Credential(Config.DINGTALK_CLIENT_ID, Config.DINGTALK_CLIENT_SECRET)
    client = dingtalk_stream.DingTalkStreamClient(credential)
    client.register_callback_handler(
        dingtalk_stream.ChatbotMessage.TOPIC, build_channel(store, openapi, weather)
    )
    logger.info("Starting DingTalk Stream client...")
    stream = asyncio.create_task(client.start())

    try:
        await stop_event.wait()
    finally:
        logger.info("Shutting down...")
        stop_event.set()
        stream.cancel()
        await asyncio.gather(stream, return_exceptions=True)
        await asyncio.gather(*pollers, return_exceptions=True)
        if isinstance(store, SqliteDocumentStore):
            await store.close()


def main() -> None:
    """Start the bot."""
    try:
        Config.validate()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    logger.info("Starting dingbuddy...")
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    main()
