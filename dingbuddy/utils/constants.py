"""Constants and default values."""

# Default timezone used to interpret reminder times and display calendar events
DEFAULT_TIMEZONE = "Asia/Shanghai"

# One-shot reminders
REMINDER_MAX_OVERDUE_MS = 60 * 60 * 1000  # still delivered up to 1h late
REMINDER_RETENTION_MS = 7 * 24 * 60 * 60 * 1000  # sent/canceled history kept for 7 days
REMINDER_STALE_PENDING_MS = 30 * 24 * 60 * 60 * 1000
DEFAULT_SNOOZE_MINUTES = 10
MAX_REMINDERS_LISTED = 10

# Daily weather subscriptions
SUBSCRIPTION_GRACE_MINUTES = 2

# Calendar meeting reminders
DEFAULT_MINUTES_BEFORE = 10
MIN_MINUTES_BEFORE = 1
MAX_MINUTES_BEFORE = 180
CALENDAR_LOOKBEHIND_MS = 5 * 60 * 1000
CALENDAR_MAX_PAGES = 5
CALENDAR_PAGE_SIZE = 50
NOTIFIED_KEYS_DEFAULT = 500
NOTIFIED_KEYS_MIN = 50
NOTIFIED_KEYS_MAX = 2000
MAX_TODAY_EVENTS = 8

# Poll loop intervals (seconds): default, floor
REMINDER_TICK_SECONDS = (30, 10)
SUBSCRIPTION_TICK_SECONDS = (60, 10)
CALENDAR_TICK_SECONDS = (300, 30)

# Session caches
SESSION_TTL_SECONDS = 6 * 60 * 60

# DingTalk text message limits
MAX_PUSH_TEXT_LENGTH = 3500
MAX_SUMMARY_TEXT_LENGTH = 1200

# Persisted document concerns
CONCERN_REMINDERS = "reminders"
CONCERN_SUBSCRIPTIONS = "subscriptions"
CONCERN_CALENDAR = "calendar-watch"
