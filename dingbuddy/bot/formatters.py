"""Message text formatters."""

import math
from typing import Any

from dingbuddy.db.models import Place, Reminder, WeatherSubscription
from dingbuddy.utils.constants import MAX_PUSH_TEXT_LENGTH, MAX_SUMMARY_TEXT_LENGTH
from dingbuddy.utils.time_utils import format_local

NEED_USER_ID = "我现在还无法识别你的钉钉用户ID（请先在钉钉私聊我发一句话，再重试）。"

HELP_TEXT = "\n".join(
    [
        "我可以帮你：",
        "• 提醒：明天早上八点半提醒我开会 / 16:40 叫我下班",
        "• 我的提醒 / 取消提醒 <id>",
        "• 提醒推送后可以回复：完成 / 延后10分钟 / 取消",
        "• 天气：成都天气 / 成都天气详情",
        "• 订阅天气 成都 10:20 / 我的订阅 / 取消订阅",
        "• 开启会议提醒 15分钟 / 关闭会议提醒 / 今日日程",
    ]
)


# Reminders


def format_reminder_push(reminder: Reminder) -> str:
    """Text pushed when a reminder fires."""
    local = format_local(reminder.scheduled_at_ms, reminder.time_zone)
    lines = [
        f"提醒（{local}）",
        reminder.text or "时间到啦～",
        "",
        f"你可以回复：完成 / 延后10分钟 / 取消（或带上 id={reminder.id}）",
    ]
    return "\n".join(lines)[:MAX_PUSH_TEXT_LENGTH]


def format_reminder_created(reminder: Reminder) -> str:
    local = format_local(reminder.scheduled_at_ms, reminder.time_zone)
    return (
        f"好的～我会在 {local} 提醒你：{reminder.text}\n"
        f"如需查看：发送“我的提醒”。如需取消：发送“取消提醒 {reminder.id}”。"
    )


def format_reminder_list(reminders: list[Reminder]) -> str:
    """Format pending reminders, one per line."""
    if not reminders:
        return "你目前没有待触发的提醒。"

    lines = []
    for i, reminder in enumerate(reminders, start=1):
        when = format_local(reminder.scheduled_at_ms, reminder.time_zone)
        lines.append(f"{i}) {when}：{reminder.text}（id={reminder.id}）")
    return "你的提醒：\n" + "\n".join(lines) + "\n取消某条：发送“取消提醒 <id>”。"


def format_need_time(message: str) -> str:
    lines = []
    if message:
        lines.append(f"要提醒的内容我先记为「{message}」。")
    lines.append("还差时间：请告诉我几点几分，例如：16:40 / 4点半 / 下午六点。")
    return "\n".join(lines)


MULTIPLE_TIMES_REMINDER = (
    "我在一句话里识别到了多个时间点。为了避免歧义，请只说一个时间，例如：16:40 提醒我下班。"
)


# Calendar


def format_meeting_push(
    summary: str,
    start_ms: int,
    now_ms: int,
    time_zone: str,
    location: str = "",
) -> str:
    """Text pushed shortly before a meeting starts."""
    minutes = max(0, round((start_ms - now_ms) / 60000))
    lines = [
        f"会议提醒：{summary.strip() or '会议'}",
        f"开始时间：{format_local(start_ms, time_zone)}（{time_zone}）",
        f"还有 {minutes} 分钟" if minutes > 0 else "即将开始",
    ]
    if location.strip():
        lines.append(f"地点：{location.strip()}")
    return "\n".join(lines)[:MAX_PUSH_TEXT_LENGTH]


def format_today_agenda(events: list[tuple[int, str, str]], time_zone: str) -> str:
    """Format (start_ms, summary, location) tuples for today's agenda."""
    if not events:
        return "今天接下来没有日程（或我没读到）。"

    lines = []
    for i, (start_ms, summary, location) in enumerate(events, start=1):
        where = f"（{location}）" if location else ""
        lines.append(f"{i}) {format_local(start_ms, time_zone)}：{summary}{where}")
    return "你今天的日程（接下来）：\n" + "\n".join(lines)


# Weather


def format_place_choices(places: list[Place]) -> str:
    lines = []
    for i, place in enumerate(places, start=1):
        zone = f"（{place.timezone}）" if place.timezone else ""
        lines.append(f"{i}) {place.label}{zone}")
    return "\n".join(lines)[:MAX_SUMMARY_TEXT_LENGTH]


def format_subscription(subscription: WeatherSubscription) -> str:
    return (
        f"当前订阅：{subscription.place.label}（{subscription.place.timezone}）"
        f"每天 {subscription.schedule.time} 推送。"
    )


def format_subscription_created(subscription: WeatherSubscription, preview: str) -> str:
    lines = [
        f"订阅成功！我会每天 {subscription.schedule.time}（{subscription.place.timezone}）"
        f"推送「{subscription.place.label}」的天气。",
        "",
        "我先给你一条天气预览：",
        preview,
    ]
    return "\n".join(lines)[:MAX_PUSH_TEXT_LENGTH]


def wmo_code_to_zh(code: int) -> str:
    """Describe a WMO weather interpretation code in Chinese."""
    if code == 0:
        return "晴"
    if code == 1:
        return "大部晴朗"
    if code == 2:
        return "多云"
    if code == 3:
        return "阴"
    if code in (45, 48):
        return "雾"
    if 51 <= code <= 57:
        return "毛毛雨"
    if 61 <= code <= 67:
        return "雨"
    if 71 <= code <= 77:
        return "雪"
    if 80 <= code <= 82:
        return "阵雨"
    if 95 <= code <= 99:
        return "雷暴"
    return f"天气码{code}"


def uv_level_zh(uv: float) -> str:
    if uv < 3:
        return "弱"
    if uv < 6:
        return "中等"
    if uv < 8:
        return "中等偏强"
    if uv < 11:
        return "强"
    return "极强"


def _to_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        try:
            n = float(value)
        except ValueError:
            return None
        return n if math.isfinite(n) else None
    return None


def _format_number(value: Any, digits: int) -> str | None:
    """Round and drop trailing zeros: 21.50 -> "21.5", 3.0 -> "3"."""
    n = _to_number(value)
    if n is None:
        return None
    text = f"{n:.{digits}f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def _temp_unit(unit: Any) -> str:
    u = unit if isinstance(unit, str) else ""
    if "°C" in u or "℃" in u:
        return "℃"
    return u


def _format_temp(value: Any, unit: Any) -> str | None:
    n = _format_number(value, 1)
    if n is None:
        return None
    return f"{n}{_temp_unit(unit)}"


def _format_percent(value: Any) -> str | None:
    n = _format_number(value, 0)
    return f"{n}%" if n is not None else None


def _first(values: dict[str, Any], key: str) -> Any:
    raw = values.get(key)
    if isinstance(raw, list):
        return raw[0] if raw else None
    return raw


def _iso_hhmm(value: Any) -> str | None:
    """Extract HH:mm from an ISO local timestamp such as 2024-05-01T06:12."""
    if not isinstance(value, str) or "T" not in value:
        return None
    time_part = value.split("T", 1)[1]
    if len(time_part) < 5 or time_part[2] != ":":
        return None
    hh, mm = time_part[:2], time_part[3:5]
    if not (hh.isascii() and hh.isdigit() and mm.isascii() and mm.isdigit()):
        return None
    return f"{hh}:{mm}"


def _place_brief(place: Place) -> str:
    parts = [p.strip() for p in place.label.split(" · ") if p.strip()]
    if len(parts) >= 2:
        return f"{parts[0]}·{parts[1]}"
    if parts:
        return parts[0]
    return place.query.strip()


def format_forecast_summary(
    place: Place,
    forecast: dict[str, Any],
    title: str = "天气预览",
    include_detail_hint: bool = True,
) -> str:
    """Short Chinese weather summary: now, today's range and sun times."""
    current = forecast.get("current") or {}
    current_units = forecast.get("current_units") or {}
    daily = forecast.get("daily") or {}
    daily_units = forecast.get("daily_units") or {}

    brief = _place_brief(place)
    lines = [f"{title}（{brief}）" if brief else title]

    code = _to_number(current.get("weather_code"))
    desc = wmo_code_to_zh(round(code)) if code is not None else ""
    temp = _format_temp(current.get("temperature_2m"), current_units.get("temperature_2m"))
    feels = _format_temp(
        current.get("apparent_temperature"), current_units.get("apparent_temperature")
    )
    humidity = _format_percent(current.get("relative_humidity_2m"))

    now_head = f"{desc}，{temp}" if desc and temp else (desc or temp or "")
    if now_head or feels or humidity:
        now_line = f"现在：{now_head}"
        if feels:
            now_line += f"（体感 {feels}）"
        if humidity:
            now_line += f"，湿度 {humidity}"
        lines.append(now_line)

    today_parts = []
    t_min = _format_number(_first(daily, "temperature_2m_min"), 1)
    t_max = _format_number(_first(daily, "temperature_2m_max"), 1)
    if t_min is not None and t_max is not None:
        unit = _temp_unit(
            daily_units.get("temperature_2m_max")
            or daily_units.get("temperature_2m_min")
            or current_units.get("temperature_2m")
        )
        today_parts.append(f"{t_min}～{t_max}{unit}")

    rain_chance = _format_percent(_first(daily, "precipitation_probability_max"))
    if rain_chance:
        today_parts.append(f"降雨概率 {rain_chance}")

    uv_raw = _first(daily, "uv_index_max")
    uv = _format_number(uv_raw, 0)
    if uv is not None:
        today_parts.append(f"紫外线最高 {uv}（{uv_level_zh(_to_number(uv_raw))}）")

    if today_parts:
        lines.append("今天：" + "，".join(today_parts))

    sunrise = _iso_hhmm(_first(daily, "sunrise"))
    sunset = _iso_hhmm(_first(daily, "sunset"))
    if sunrise and sunset:
        lines.append(f"日出 {sunrise} / 日落 {sunset}")
    elif sunrise:
        lines.append(f"日出 {sunrise}")
    elif sunset:
        lines.append(f"日落 {sunset}")

    lines.append("数据源：Open-Meteo")
    if include_detail_hint:
        lines.append("（回复“详情”可查看完整指标）")

    return "\n".join(lines)[:MAX_SUMMARY_TEXT_LENGTH]


def _with_unit(value: Any, unit: Any) -> str:
    if value is None:
        return "-"
    return f"{value} {unit}" if isinstance(unit, str) and unit else str(value)


def _key_value_lines(values: dict[str, Any], units: dict[str, Any], first_only: bool) -> list[str]:
    lines = []
    for key in sorted(k for k in values if k != "time"):
        value = _first(values, key) if first_only else values[key]
        unit = units.get(key)
        if first_only and isinstance(unit, list):
            unit = unit[0] if unit else None
        lines.append(f"{key}: {_with_unit(value, unit)}")
    return lines


def format_forecast_details(
    place: Place, forecast: dict[str, Any], title: str = "天气详情"
) -> str:
    """Every current and today's field with units."""
    current = forecast.get("current") or {}
    current_units = forecast.get("current_units") or {}
    daily = forecast.get("daily") or {}
    daily_units = forecast.get("daily_units") or {}

    lines = [title, f"地点：{place.label}"]
    if place.timezone:
        lines.append(f"时区：{place.timezone}")
    if current.get("time"):
        lines.append(f"本地时间：{current['time']}")

    code = _to_number(current.get("weather_code"))
    if code is not None:
        lines.append(f"天气：{wmo_code_to_zh(round(code))}（weather_code={round(code)}）")

    summary = []
    for key, label in (
        ("temperature_2m", "温度"),
        ("apparent_temperature", "体感"),
        ("relative_humidity_2m", "湿度"),
        ("wind_speed_10m", "风速"),
    ):
        if key in current:
            summary.append(f"{label} {_with_unit(current[key], current_units.get(key))}")
    if summary:
        lines.append("摘要：" + "，".join(summary))

    current_lines = _key_value_lines(current, current_units, first_only=False)
    if current_lines:
        lines.extend(["", "【当前】", *current_lines])

    today = _first(daily, "time")
    if isinstance(today, str) and today:
        lines.extend(["", f"【今日】({today})"])
        lines.extend(_key_value_lines(daily, daily_units, first_only=True))

    lines.extend(["", "数据来源：Open-Meteo"])
    return "\n".join(lines)[:MAX_PUSH_TEXT_LENGTH]
