"""Time and timezone utilities.

Instants are carried around as integer milliseconds since the Unix epoch
(UTC). Wall-clock readings are always derived from an instant plus an IANA
zone name and are never stored.
"""

import re
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

UTC = ZoneInfo("UTC")

_HHMM_RE = re.compile(r"(\d{1,2}):(\d{2})", re.ASCII)


@dataclass(frozen=True)
class ZonedClockReading:
    """Wall-clock date/time of an instant as seen in one time zone."""

    year: int
    month: int
    day: int
    hour: int
    minute: int
    second: int

    @property
    def ymd(self) -> tuple[int, int, int]:
        return self.year, self.month, self.day

    @property
    def date_key(self) -> str:
        """Local calendar date as YYYY-MM-DD."""
        return f"{self.year:04d}-{self.month:02d}-{self.day:02d}"

    @property
    def minutes_of_day(self) -> int:
        return self.hour * 60 + self.minute


def resolve_zone(tz: str | None) -> ZoneInfo:
    """Get the ZoneInfo for a zone name, falling back to UTC for bad names."""
    name = (tz or "").strip()
    if not name:
        return UTC
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        return UTC


def is_valid_timezone(tz: str | None) -> bool:
    """Check whether a zone name exists in the IANA database."""
    name = (tz or "").strip()
    if not name:
        return False
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        return False
    return True


def now_ms() -> int:
    """Current instant in epoch milliseconds."""
    return int(time.time() * 1000)


def ms_to_utc(instant_ms: int) -> datetime:
    """Convert epoch milliseconds to an aware UTC datetime."""
    return datetime.fromtimestamp(instant_ms / 1000, tz=UTC)


def utc_to_ms(dt: datetime) -> int:
    """Convert an aware datetime to epoch milliseconds."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return round(dt.timestamp() * 1000)


def project(instant_ms: int, tz: str | None) -> ZonedClockReading:
    """Project an instant through a named zone.

    Unknown zone names are read as UTC so a bad user-supplied zone can never
    break a poll loop.
    """
    local = ms_to_utc(instant_ms).astimezone(resolve_zone(tz))
    return ZonedClockReading(
        year=local.year,
        month=local.month,
        day=local.day,
        hour=local.hour,
        minute=local.minute,
        second=local.second,
    )


def add_calendar_days(
    ymd: tuple[int, int, int], day_offset: int
) -> tuple[int, int, int]:
    """Add whole days to a (year, month, day) triple.

    Anchored at UTC noon so the result is pure calendar arithmetic, unaffected
    by any zone's DST transitions.
    """
    year, month, day = ymd
    anchor = datetime(year, month, day, 12, 0, tzinfo=UTC) + timedelta(days=day_offset)
    return anchor.year, anchor.month, anchor.day


def local_to_instant(
    tz: str | None,
    year: int,
    month: int,
    day: int,
    hour: int,
    minute: int,
    second: int = 0,
) -> int:
    """Get the instant at which the wall clock in ``tz`` shows the given time.

    Ambiguous readings (DST fall-back) resolve to the first occurrence; readings
    skipped by a spring-forward gap resolve using the offset in force before
    the gap.
    """
    local = datetime(year, month, day, hour, minute, second, tzinfo=resolve_zone(tz))
    return utc_to_ms(local)


def format_local(instant_ms: int, tz: str | None) -> str:
    """Format an instant as 'YYYY-MM-DD HH:mm' in the given zone."""
    reading = project(instant_ms, tz)
    return f"{reading.date_key} {reading.hour:02d}:{reading.minute:02d}"


def format_hhmm(hour: int, minute: int) -> str:
    return f"{hour:02d}:{minute:02d}"


def parse_hhmm(value: str) -> tuple[int, int] | None:
    """Parse 'H:MM' / 'HH:MM' into (hour, minute); None if invalid."""
    match = _HHMM_RE.fullmatch((value or "").strip())
    if not match:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        return None
    return hour, minute


def format_duration(minutes: int) -> str:
    """Format minutes into a short Chinese duration.

    Examples:
        15 -> "15分钟"
        60 -> "1小时"
        90 -> "1小时30分钟"
        1440 -> "1天"
    """
    if minutes < 60:
        return f"{minutes}分钟"
    if minutes < 1440:
        hours, rest = divmod(minutes, 60)
        return f"{hours}小时{rest}分钟" if rest else f"{hours}小时"
    days, rest = divmod(minutes, 1440)
    if rest == 0:
        return f"{days}天"
    return f"{days}天{format_duration(rest)}"


def to_iso_utc(instant_ms: int) -> str:
    """Format an instant as an ISO 8601 UTC timestamp, e.g. 2024-05-01T02:30:00.000Z."""
    dt = ms_to_utc(instant_ms)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"
