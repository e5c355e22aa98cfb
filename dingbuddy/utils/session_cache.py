"""Short-lived per-session state with lazy expiry."""

import time
from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

from dingbuddy.utils.constants import SESSION_TTL_SECONDS

T = TypeVar("T")


@dataclass
class _Entry(Generic[T]):
    value: T
    last_seen: float


class SessionCache(Generic[T]):
    """TTL cache keyed by session id.

    Expired entries are swept on every access, and reading an entry refreshes
    it. The clock is injectable so expiry can be tested without sleeping.
    """

    def __init__(
        self,
        ttl_seconds: float = SESSION_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, _Entry[T]] = {}

    def _sweep(self, now: float) -> None:
        expired = [k for k, e in self._entries.items() if now - e.last_seen > self.ttl_seconds]
        for key in expired:
            del self._entries[key]

    def set(self, key: str, value: T) -> None:
        key = (key or "").strip()
        if not key:
            return
        now = self._clock()
        self._sweep(now)
        self._entries[key] = _Entry(value=value, last_seen=now)

    def get(self, key: str) -> T | None:
        key = (key or "").strip()
        if not key:
            return None
        now = self._clock()
        self._sweep(now)
        entry = self._entries.get(key)
        if entry is None:
            return None
        entry.last_seen = now
        return entry.value

    def pop(self, key: str) -> T | None:
        key = (key or "").strip()
        now = self._clock()
        self._sweep(now)
        entry = self._entries.pop(key, None)
        return entry.value if entry else None

    def __len__(self) -> int:
        self._sweep(self._clock())
        return len(self._entries)
