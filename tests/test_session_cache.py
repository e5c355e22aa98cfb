"""Tests for the session TTL cache."""

from dingbuddy.utils.session_cache import SessionCache


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_set_get_pop():
    """Test basic cache operations."""
    cache: SessionCache[str] = SessionCache(ttl_seconds=60, clock=FakeClock())
    cache.set("s1", "u1")

    assert cache.get("s1") == "u1"
    assert cache.get("missing") is None
    assert cache.pop("s1") == "u1"
    assert cache.get("s1") is None


def test_blank_keys_ignored():
    """Test blank session keys are never stored."""
    cache: SessionCache[str] = SessionCache(ttl_seconds=60, clock=FakeClock())
    cache.set("  ", "u1")

    assert len(cache) == 0
    assert cache.get("") is None


def test_entries_expire():
    """Test entries expire after the TTL without being touched."""
    clock = FakeClock()
    cache: SessionCache[str] = SessionCache(ttl_seconds=60, clock=clock)
    cache.set("s1", "u1")

    clock.now = 61
    assert cache.get("s1") is None
    assert len(cache) == 0


def test_reading_refreshes_entry():
    """Test a read extends the entry's lifetime."""
    clock = FakeClock()
    cache: SessionCache[str] = SessionCache(ttl_seconds=60, clock=clock)
    cache.set("s1", "u1")

    clock.now = 50
    assert cache.get("s1") == "u1"
    clock.now = 100
    assert cache.get("s1") == "u1"
    clock.now = 161
    assert cache.get("s1") is None
