"""Document storage - one JSON document per (concern, account)."""

import asyncio
import json
import logging
import os
import re
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo

import aiosqlite

from dingbuddy.db.models import (
    AckAction,
    CalendarDocument,
    CalendarWatch,
    Reminder,
    ReminderDocument,
    SubscriptionDocument,
    WeatherSubscription,
)
from dingbuddy.utils.constants import (
    CONCERN_CALENDAR,
    CONCERN_REMINDERS,
    CONCERN_SUBSCRIPTIONS,
    NOTIFIED_KEYS_DEFAULT,
    NOTIFIED_KEYS_MAX,
    NOTIFIED_KEYS_MIN,
)

logger = logging.getLogger(__name__)

REMINDER_DOCUMENT_VERSION = 2
SUBSCRIPTION_DOCUMENT_VERSION = 1
CALENDAR_DOCUMENT_VERSION = 1

_ACCOUNT_ID_RE = re.compile(r"[^a-z0-9._-]+", re.IGNORECASE)


def normalize_account_id(account_id: str | None) -> str:
    """Make an account id safe for use in a file name."""
    trimmed = (account_id or "").strip()
    if not trimmed:
        return "default"
    return _ACCOUNT_ID_RE.sub("_", trimmed)


class DocumentStore(ABC):
    """Whole-document load/save keyed by concern and account id.

    ``load`` returns None when nothing usable is stored; callers treat that
    as an empty document.
    """

    @abstractmethod
    async def load(self, concern: str, account_id: str | None) -> dict[str, Any] | None:
        ...

    @abstractmethod
    async def save(self, concern: str, account_id: str | None, document: dict[str, Any]) -> None:
        ...


class JsonDocumentStore(DocumentStore):
    """Stores each document as ``<state_dir>/dingtalk/<concern>-<account>.json``.

    Writes go to a temp file that is renamed into place, so a reader never
    sees a half-written document.
    """

    def __init__(self, state_dir: Path):
        self.state_dir = Path(state_dir)

    def path_for(self, concern: str, account_id: str | None) -> Path:
        filename = f"{concern}-{normalize_account_id(account_id)}.json"
        return self.state_dir / "dingtalk" / filename

    async def load(self, concern: str, account_id: str | None) -> dict[str, Any] | None:
        path = self.path_for(concern, account_id)
        return await asyncio.to_thread(self._read, path)

    async def save(self, concern: str, account_id: str | None, document: dict[str, Any]) -> None:
        path = self.path_for(concern, account_id)
        await asyncio.to_thread(self._write, path, document)

    @staticmethod
    def _read(path: Path) -> dict[str, Any] | None:
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning(f"Could not read {path}: {e}")
            return None

        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Corrupt document {path}: {e}")
            return None

        if not isinstance(parsed, dict):
            logger.warning(f"Ignoring non-object document {path}")
            return None
        return parsed

    @staticmethod
    def _write(path: Path, document: dict[str, Any]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
        tmp = path.with_name(f"{path.name}.{uuid.uuid4()}.tmp")
        try:
            tmp.write_text(json.dumps(document, ensure_ascii=False, indent=2) + "\n", encoding="utf-8")
            os.chmod(tmp, 0o600)
            os.replace(tmp, path)
        except Exception:
            tmp.unlink(missing_ok=True)
            raise


class SqliteDocumentStore(DocumentStore):
    """Stores documents as rows of a single SQLite table."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._db: aiosqlite.Connection | None = None

    async def connect(self) -> None:
        """Open database connection."""
        self._db = await aiosqlite.connect(self.db_path)
        self._db.row_factory = aiosqlite.Row
        logger.info(f"Connected to database at {self.db_path}")

    async def close(self) -> None:
        """Close database connection."""
        if self._db:
            await self._db.close()
            self._db = None
            logger.info("Database connection closed")

    @property
    def db(self) -> aiosqlite.Connection:
        """Get the database connection."""
        if self._db is None:
            raise RuntimeError("Database not connected")
        return self._db

    async def load(self, concern: str, account_id: str | None) -> dict[str, Any] | None:
        async with self.db.execute(
            "SELECT body FROM documents WHERE concern = ? AND account_id = ?",
            (concern, normalize_account_id(account_id)),
        ) as cursor:
            row = await cursor.fetchone()

        if row is None:
            return None

        try:
            parsed = json.loads(row["body"])
        except json.JSONDecodeError as e:
            logger.warning(f"Corrupt {concern} document in database: {e}")
            return None
        return parsed if isinstance(parsed, dict) else None

    async def save(self, concern: str, account_id: str | None, document: dict[str, Any]) -> None:
        await self.db.execute(
            """
            INSERT OR REPLACE INTO documents (concern, account_id, body, updated_at)
            VALUES (?, ?, ?, ?)
            """,
            (
                concern,
                normalize_account_id(account_id),
                json.dumps(document, ensure_ascii=False),
                datetime.now(ZoneInfo("UTC")).isoformat(),
            ),
        )
        await self.db.commit()


def _parse_records(raw: Any, factory, label: str) -> dict:
    """Rebuild a keyed map of records, skipping malformed entries."""
    records = {}
    if not isinstance(raw, dict):
        return records
    for key, value in raw.items():
        try:
            records[key] = factory(value)
        except (TypeError, KeyError, ValueError, AttributeError) as e:
            logger.warning(f"Skipping malformed {label} {key!r}: {e}")
    return records


def _string_map(raw: Any) -> dict[str, str]:
    if not isinstance(raw, dict):
        return {}
    return {k: v for k, v in raw.items() if isinstance(v, str)}


class ReminderRepository:
    """Reminders of one account."""

    def __init__(self, store: DocumentStore, account_id: str | None = None):
        self.store = store
        self.account_id = account_id

    async def load(self) -> ReminderDocument:
        raw = await self.store.load(CONCERN_REMINDERS, self.account_id)
        if raw is None or not isinstance(raw.get("reminders"), dict):
            return ReminderDocument()

        version = raw.get("version")
        if version not in (1, REMINDER_DOCUMENT_VERSION):
            logger.warning(f"Unknown reminder document version {version!r}, starting empty")
            return ReminderDocument()

        reminders = _parse_records(raw["reminders"], Reminder.from_dict, "reminder")
        # version 1 predates the last-sent pointer
        last_sent = {} if version == 1 else _string_map(raw.get("last_sent_reminder_id_by_user"))
        return ReminderDocument(reminders=reminders, last_sent_reminder_id_by_user=last_sent)

    async def save(self, document: ReminderDocument) -> None:
        await self.store.save(
            CONCERN_REMINDERS,
            self.account_id,
            {
                "version": REMINDER_DOCUMENT_VERSION,
                "reminders": {k: r.to_dict() for k, r in document.reminders.items()},
                "last_sent_reminder_id_by_user": dict(document.last_sent_reminder_id_by_user),
            },
        )

    async def add(self, reminder: Reminder) -> None:
        document = await self.load()
        document.reminders[reminder.id] = reminder
        await self.save(document)
        logger.info(f"Created reminder {reminder.id} for user {reminder.user_id}")

    async def get(self, reminder_id: str) -> Reminder | None:
        document = await self.load()
        return document.reminders.get(reminder_id)

    async def list_pending(self, user_id: str) -> list[Reminder]:
        """Unsent, uncanceled reminders of a user, soonest first."""
        document = await self.load()
        pending = [
            r for r in document.reminders.values()
            if r.user_id == user_id and r.is_pending
        ]
        return sorted(pending, key=lambda r: r.scheduled_at_ms)

    async def last_sent_id(self, user_id: str) -> str | None:
        document = await self.load()
        reminder_id = document.last_sent_reminder_id_by_user.get(user_id, "").strip()
        return reminder_id or None

    async def cancel(self, reminder_id: str, user_id: str, now_ms: int) -> bool:
        """Cancel a reminder. Unknown ids and other users' reminders return False."""
        document = await self.load()
        existing = document.reminders.get(reminder_id)
        if existing is None or existing.user_id != user_id:
            return False

        if existing.canceled_at_ms is None:
            existing.canceled_at_ms = now_ms
        if existing.acknowledged_at_ms is None:
            existing.acknowledged_at_ms = now_ms
        if existing.ack_action is None:
            existing.ack_action = "canceled"

        await self.save(document)
        logger.info(f"Canceled reminder {reminder_id}")
        return True

    async def acknowledge(
        self,
        reminder_id: str,
        user_id: str,
        action: AckAction,
        now_ms: int,
        next_reminder: Reminder | None = None,
    ) -> bool:
        """Record a user's reply to a pushed reminder.

        A snooze stores ``next_reminder`` alongside the original, linked both
        ways. The original record is kept as history.
        """
        document = await self.load()
        existing = document.reminders.get(reminder_id)
        if existing is None or existing.user_id != user_id:
            return False

        existing.acknowledged_at_ms = now_ms
        existing.ack_action = action
        if action == "canceled" and existing.canceled_at_ms is None:
            existing.canceled_at_ms = now_ms

        if next_reminder is not None:
            next_reminder.snoozed_from_id = existing.id
            existing.next_reminder_id = next_reminder.id
            document.reminders[next_reminder.id] = next_reminder

        await self.save(document)
        logger.info(f"Reminder {reminder_id} acknowledged: {action}")
        return True


class SubscriptionRepository:
    """Weather subscriptions of one account, at most one per user."""

    def __init__(self, store: DocumentStore, account_id: str | None = None):
        self.store = store
        self.account_id = account_id

    async def load(self) -> SubscriptionDocument:
        raw = await self.store.load(CONCERN_SUBSCRIPTIONS, self.account_id)
        if raw is None or raw.get("version") != SUBSCRIPTION_DOCUMENT_VERSION:
            return SubscriptionDocument()
        subscriptions = _parse_records(
            raw.get("subscriptions"), WeatherSubscription.from_dict, "subscription"
        )
        return SubscriptionDocument(subscriptions=subscriptions)

    async def save(self, document: SubscriptionDocument) -> None:
        await self.store.save(
            CONCERN_SUBSCRIPTIONS,
            self.account_id,
            {
                "version": SUBSCRIPTION_DOCUMENT_VERSION,
                "subscriptions": {k: s.to_dict() for k, s in document.subscriptions.items()},
            },
        )

    async def get(self, user_id: str) -> WeatherSubscription | None:
        document = await self.load()
        return document.subscriptions.get(user_id)

    async def upsert(self, subscription: WeatherSubscription) -> None:
        """Create or replace the user's subscription."""
        document = await self.load()
        document.subscriptions[subscription.user_id] = subscription
        await self.save(document)
        logger.info(
            f"Saved weather subscription for user {subscription.user_id}: "
            f"{subscription.place.label} at {subscription.schedule.time}"
        )

    async def delete(self, user_id: str) -> bool:
        document = await self.load()
        if user_id not in document.subscriptions:
            return False
        del document.subscriptions[user_id]
        await self.save(document)
        logger.info(f"Deleted weather subscription for user {user_id}")
        return True


def clamp_notified_keep(keep: int | None) -> int:
    if keep is None:
        return NOTIFIED_KEYS_DEFAULT
    return max(NOTIFIED_KEYS_MIN, min(NOTIFIED_KEYS_MAX, keep))


class CalendarRepository:
    """Calendar watches plus per-user primary calendar and notified-key caches."""

    def __init__(self, store: DocumentStore, account_id: str | None = None):
        self.store = store
        self.account_id = account_id

    async def load(self) -> CalendarDocument:
        raw = await self.store.load(CONCERN_CALENDAR, self.account_id)
        if raw is None or raw.get("version") != CALENDAR_DOCUMENT_VERSION:
            return CalendarDocument()

        notified: dict[str, list[str]] = {}
        raw_notified = raw.get("notified_keys_by_user")
        if isinstance(raw_notified, dict):
            for user_id, keys in raw_notified.items():
                if isinstance(keys, list):
                    notified[user_id] = [k for k in keys if isinstance(k, str)]

        return CalendarDocument(
            watches=_parse_records(raw.get("watches"), CalendarWatch.from_dict, "calendar watch"),
            primary_calendar_id_by_user=_string_map(raw.get("primary_calendar_id_by_user")),
            notified_keys_by_user=notified,
        )

    async def save(self, document: CalendarDocument) -> None:
        await self.store.save(
            CONCERN_CALENDAR,
            self.account_id,
            {
                "version": CALENDAR_DOCUMENT_VERSION,
                "watches": {k: w.to_dict() for k, w in document.watches.items()},
                "primary_calendar_id_by_user": dict(document.primary_calendar_id_by_user),
                "notified_keys_by_user": {
                    k: list(v) for k, v in document.notified_keys_by_user.items()
                },
            },
        )

    async def get_watch(self, user_id: str) -> CalendarWatch | None:
        document = await self.load()
        return document.watches.get(user_id)

    async def upsert_watch(self, watch: CalendarWatch) -> None:
        document = await self.load()
        document.watches[watch.user_id] = watch
        await self.save(document)
        logger.info(
            f"Calendar watch for user {watch.user_id}: enabled={watch.enabled} "
            f"minutes_before={watch.minutes_before}"
        )

    async def get_primary_calendar_id(self, user_id: str) -> str | None:
        document = await self.load()
        return document.primary_calendar_id_by_user.get(user_id) or None

    async def remember_primary_calendar_id(self, user_id: str, calendar_id: str) -> None:
        document = await self.load()
        document.primary_calendar_id_by_user[user_id] = calendar_id
        await self.save(document)
