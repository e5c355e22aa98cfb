"""Data models."""

from dataclasses import asdict, dataclass, field, fields
from typing import Any, Literal

AckAction = Literal["done", "snoozed", "canceled"]
ReminderParseKind = Literal["ok", "need_time", "multiple_times"]
PlaceTimeParseKind = Literal["ok", "need_place", "need_time", "need_both", "multiple_times"]


def _known_fields(cls: type, data: dict[str, Any]) -> dict[str, Any]:
    """Drop keys a dataclass doesn't declare (documents may carry extras)."""
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in names}


# Parser results


@dataclass
class TimeMatch:
    """One clock time found in a text, with its character span."""

    hour: int
    minute: int
    start: int
    end: int


@dataclass
class ReminderParse:
    """Result of parsing a reminder utterance."""

    kind: ReminderParseKind
    hour: int | None = None
    minute: int | None = None
    day_offset: int = 0
    message: str = ""

    @property
    def time_hhmm(self) -> str | None:
        if self.hour is None or self.minute is None:
            return None
        return f"{self.hour:02d}:{self.minute:02d}"


@dataclass
class PlaceTimeParse:
    """Result of parsing a 'place + daily time' subscription utterance."""

    kind: PlaceTimeParseKind
    place_query: str = ""
    time_hhmm: str | None = None


@dataclass
class AckCommand:
    """A reply acknowledging a pushed reminder."""

    action: AckAction
    minutes: int = 0
    reminder_id: str | None = None


# Reminders


@dataclass
class Reminder:
    """A one-shot reminder."""

    id: str
    user_id: str
    text: str
    scheduled_at_ms: int  # absolute instant
    time_zone: str  # zone the user's wall-clock time was read in
    created_at_ms: int
    sent_at_ms: int | None = None
    canceled_at_ms: int | None = None
    acknowledged_at_ms: int | None = None
    ack_action: AckAction | None = None
    next_reminder_id: str | None = None  # set when snoozed into a new reminder
    snoozed_from_id: str | None = None

    @property
    def is_pending(self) -> bool:
        return self.sent_at_ms is None and self.canceled_at_ms is None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Reminder":
        return cls(**_known_fields(cls, data))


@dataclass
class ReminderDocument:
    """Persisted reminders of one account, keyed by reminder id."""

    reminders: dict[str, Reminder] = field(default_factory=dict)
    last_sent_reminder_id_by_user: dict[str, str] = field(default_factory=dict)
    version: int = 2


# Weather subscriptions


@dataclass
class Place:
    """A geocoded place."""

    query: str
    label: str
    latitude: float
    longitude: float
    timezone: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Place":
        return cls(**_known_fields(cls, data))


@dataclass
class DailySchedule:
    """Push once a day at a local HH:mm in the place's time zone."""

    time: str
    type: Literal["daily"] = "daily"


@dataclass
class WeatherSubscription:
    """A user's single daily weather subscription."""

    user_id: str
    place: Place
    schedule: DailySchedule
    created_at_ms: int
    updated_at_ms: int
    last_sent_local_date: str | None = None  # YYYY-MM-DD in place.timezone

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WeatherSubscription":
        values = _known_fields(cls, data)
        values["place"] = Place.from_dict(values["place"])
        values["schedule"] = DailySchedule(**_known_fields(DailySchedule, values["schedule"]))
        return cls(**values)


@dataclass
class SubscriptionDocument:
    """Persisted subscriptions of one account, keyed by user id."""

    subscriptions: dict[str, WeatherSubscription] = field(default_factory=dict)
    version: int = 1


# Calendar meeting reminders


@dataclass
class CalendarWatch:
    """Per-user switch for meeting reminders."""

    user_id: str
    enabled: bool
    minutes_before: int
    time_zone: str
    created_at_ms: int
    updated_at_ms: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CalendarWatch":
        return cls(**_known_fields(cls, data))


@dataclass
class CalendarDocument:
    """Persisted calendar watches plus per-user caches."""

    watches: dict[str, CalendarWatch] = field(default_factory=dict)
    primary_calendar_id_by_user: dict[str, str] = field(default_factory=dict)
    notified_keys_by_user: dict[str, list[str]] = field(default_factory=dict)
    version: int = 1


@dataclass
class CalendarInfo:
    """A calendar as listed by the upstream calendar API."""

    calendar_id: str
    calendar_type: str | None = None
    time_zone: str | None = None


@dataclass
class CalendarEvent:
    """An event from the upstream events view."""

    id: str
    summary: str = ""
    start_date_time: str | None = None  # raw upstream timestamp string
    start_time_zone: str | None = None
    is_all_day: bool = False
    location: str = ""


@dataclass
class EventsPage:
    """One page of events plus the token for the next page."""

    events: list[CalendarEvent] = field(default_factory=list)
    next_token: str | None = None


# Conversation state and skill results


PendingActionKind = Literal["now", "details", "subscribe"]


@dataclass
class PendingPlaceSelection:
    """Geocoding candidates waiting for the user to answer with an index."""

    places: list[Place]
    action: PendingActionKind
    time_hhmm: str | None = None  # for subscribe


@dataclass
class SubscriptionDraft:
    """Slots of an incomplete subscribe request, merged with the next message."""

    place_query: str = ""
    time_hhmm: str | None = None


@dataclass
class SkillResult:
    """Reply text plus a machine-readable outcome."""

    text: str
    ok: bool = True
    reason: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
