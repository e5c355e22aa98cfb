"""Natural language parser - time, place and message extraction."""

from dingbuddy.db.models import AckCommand, PlaceTimeParse, ReminderParse, TimeMatch
from dingbuddy.parser.normalizer import apply_period_hint, normalize_text, parse_zh_int
from dingbuddy.parser.patterns import (
    ACK_CANCEL_PATTERN,
    ACK_DONE_PATTERN,
    ACK_ID_PATTERN,
    ACK_SNOOZE_PATTERN,
    COLON_TIME_PATTERN,
    DAY_OFFSET_WORDS,
    DAY_WORDS_PATTERN,
    DOT_TIME_PATTERN,
    PLACE_STOP_WORDS,
    PUNCTUATION_PATTERN,
    REMINDER_STOP_WORDS,
    WHITESPACE_PATTERN,
)
from dingbuddy.utils.constants import DEFAULT_SNOOZE_MINUTES


def _valid_clock(hour: int, minute: int) -> bool:
    return 0 <= hour <= 23 and 0 <= minute <= 59


def find_time_matches(text: str) -> list[TimeMatch]:
    """Find every clock time in already-normalized text, ordered by position.

    Two notations are scanned independently: "HH:MM" and the Chinese
    "[period] N点[半|M分]" idiom. Out-of-range readings are dropped.
    """
    matches: list[TimeMatch] = []

    for match in COLON_TIME_PATTERN.finditer(text):
        hour = int(match.group(1))
        minute = int(match.group(2))
        if _valid_clock(hour, minute):
            matches.append(TimeMatch(hour, minute, match.start(), match.end()))

    for match in DOT_TIME_PATTERN.finditer(text):
        period = match.group(1) or ''
        hour = parse_zh_int(match.group(2) or '')
        if hour is None:
            continue

        minute = 0
        minute_part = match.group(3) or ''
        if minute_part:
            if '半' in minute_part:
                minute = 30
            else:
                parsed = parse_zh_int(match.group(4) or '')
                if parsed is None:
                    continue
                minute = parsed

        hour = apply_period_hint(hour, period)
        if not _valid_clock(hour, minute):
            continue
        matches.append(TimeMatch(hour, minute, match.start(), match.end()))

    matches.sort(key=lambda m: m.start)
    return matches


def parse_day_offset(text: str) -> int:
    """Day offset named in the text: 后天=2, 明天=1, otherwise 0."""
    for word, offset in DAY_OFFSET_WORDS:
        if word in text:
            return offset
    return 0


def _collapse(text: str) -> str:
    return WHITESPACE_PATTERN.sub(' ', text).strip()


def strip_reminder_noise(text: str) -> str:
    """Remove scheduling verbs and politeness words, leaving the message."""
    text = _collapse(text)
    text = PUNCTUATION_PATTERN.sub(' ', text)
    text = REMINDER_STOP_WORDS.sub(' ', text)
    return _collapse(text)


def strip_place_noise(text: str) -> str:
    """Remove subscription vocabulary, leaving the place name."""
    text = _collapse(text)
    text = PUNCTUATION_PATTERN.sub(' ', text)
    text = PLACE_STOP_WORDS.sub(' ', text)
    return _collapse(text)


def _without_span(text: str, match: TimeMatch) -> str:
    return f"{text[:match.start]} {text[match.end:]}"


def parse_reminder_text(raw: str) -> ReminderParse:
    """Parse a one-shot reminder utterance.

    Examples:
        "明天早上八点半提醒我开会" -> ok, 08:30, day_offset=1, message="开会"
        "提醒我交报告" -> need_time, message="交报告"
        "8点或者9点叫我" -> multiple_times

    Returns:
        ReminderParse; more than one time is always ``multiple_times``
    """
    text = normalize_text(raw)
    day_offset = parse_day_offset(text)
    matches = find_time_matches(text)

    if len(matches) >= 2:
        return ReminderParse(kind="multiple_times")

    if not matches:
        message = strip_reminder_noise(DAY_WORDS_PATTERN.sub(' ', text))
        return ReminderParse(kind="need_time", message=message)

    match = matches[0]
    message = strip_reminder_noise(DAY_WORDS_PATTERN.sub(' ', _without_span(text, match)))
    return ReminderParse(
        kind="ok",
        hour=match.hour,
        minute=match.minute,
        day_offset=day_offset,
        message=message,
    )


def parse_place_and_daily_time(raw: str) -> PlaceTimeParse:
    """Parse a subscription utterance into a place query and a daily HH:mm.

    Examples:
        "成都 10:20" -> ok, "成都", "10:20"
        "每天8点" -> need_place, "08:00"
        "订阅成都天气" -> need_time, "成都"
        "订阅天气" -> need_both
    """
    text = normalize_text(raw)
    matches = find_time_matches(text)

    if len(matches) >= 2:
        return PlaceTimeParse(kind="multiple_times")

    if matches:
        match = matches[0]
        time_hhmm = f"{match.hour:02d}:{match.minute:02d}"
        place_query = strip_place_noise(_without_span(text, match))
    else:
        time_hhmm = None
        place_query = strip_place_noise(text)

    if not time_hhmm and not place_query:
        return PlaceTimeParse(kind="need_both")
    if not time_hhmm:
        return PlaceTimeParse(kind="need_time", place_query=place_query)
    if not place_query:
        return PlaceTimeParse(kind="need_place", time_hhmm=time_hhmm)
    return PlaceTimeParse(kind="ok", place_query=place_query, time_hhmm=time_hhmm)


def parse_ack_command(raw: str) -> AckCommand | None:
    """Parse a reply to a pushed reminder.

    Examples:
        "完成" -> done
        "延后10分钟" / "推迟十五分钟" -> snoozed
        "取消 id=abc" -> canceled, reminder_id="abc"

    Returns:
        AckCommand, or None when the text is not an acknowledgement
    """
    text = normalize_text(raw)
    reminder_id = None

    id_match = ACK_ID_PATTERN.search(text)
    if id_match:
        reminder_id = id_match.group(1)
        text = text[:id_match.start()] + text[id_match.end():]
    text = _collapse(PUNCTUATION_PATTERN.sub(' ', text))

    if ACK_DONE_PATTERN.match(text):
        return AckCommand(action="done", reminder_id=reminder_id)

    if ACK_CANCEL_PATTERN.match(text):
        return AckCommand(action="canceled", reminder_id=reminder_id)

    match = ACK_SNOOZE_PATTERN.match(text)
    if match:
        minutes = DEFAULT_SNOOZE_MINUTES
        if match.group(1):
            parsed = parse_zh_int(match.group(1))
            if parsed is None or parsed <= 0:
                return None
            minutes = parsed
        return AckCommand(action="snoozed", minutes=minutes, reminder_id=reminder_id)

    return None
