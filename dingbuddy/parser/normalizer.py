"""Text, numeral and period-of-day normalization."""

import re

from dingbuddy.parser.patterns import (
    DAWN_PERIOD_PATTERN,
    NOON_PERIOD_PATTERN,
    PM_PERIOD_PATTERN,
    ZH_DIGITS,
)

_FULLWIDTH_DIGITS = str.maketrans('０１２３４５６７８９：', '0123456789:')


def normalize_text(text: str) -> str:
    """Convert full-width digits and colons to half-width and trim."""
    return (text or '').translate(_FULLWIDTH_DIGITS).strip()


def parse_zh_int(raw: str) -> int | None:
    """Decode a small Chinese or Arabic numeral.

    Examples:
        "8" -> 8
        "八" -> 8
        "十八" -> 18
        "二十三" -> 23
        "两" -> 2
        "二三" -> 23 (digit-by-digit fallback)
    """
    s = (raw or '').strip().replace('两', '二')
    if not s:
        return None

    if re.fullmatch(r'[0-9]+', s):
        return int(s)

    if len(s) == 1 and s in ZH_DIGITS:
        return ZH_DIGITS[s]

    # 十 compounds: tens defaults to 1, ones defaults to 0
    if '十' in s:
        left, _, right = s.partition('十')
        left, right = left.strip(), right.strip()

        if left:
            if left not in ZH_DIGITS:
                return None
            tens = ZH_DIGITS[left]
        else:
            tens = 1

        if right:
            if right not in ZH_DIGITS:
                return None
            ones = ZH_DIGITS[right]
        else:
            ones = 0

        return tens * 10 + ones

    if all(ch in ZH_DIGITS for ch in s):
        return int(''.join(str(ZH_DIGITS[ch]) for ch in s))

    return None


def apply_period_hint(hour: int, period: str) -> int:
    """Shift an hour according to a period-of-day word.

    下午/晚上/傍晚/夜里 and 中午 move hours before noon into the afternoon,
    凌晨12点 is midnight, and 晚上12点 is read as 00:00 rather than noon.
    """
    period = period or ''
    is_pm = bool(PM_PERIOD_PATTERN.search(period))
    is_noon = bool(NOON_PERIOD_PATTERN.search(period))
    is_dawn = bool(DAWN_PERIOD_PATTERN.search(period))

    h = hour
    if (is_pm or is_noon) and h < 12:
        h += 12
    if is_dawn and h == 12:
        h = 0
    if is_pm and hour == 12:
        h = 0
    return h
