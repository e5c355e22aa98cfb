"""Regex patterns and vocabularies for Chinese time parsing."""

import re

# Single-character Chinese digits (两 is a synonym of 二)
ZH_DIGITS = {
    '零': 0,
    '〇': 0,
    '一': 1,
    '二': 2,
    '两': 2,
    '三': 3,
    '四': 4,
    '五': 5,
    '六': 6,
    '七': 7,
    '八': 8,
    '九': 9,
}

_NUMERAL = r'[0-9零〇一二两三四五六七八九十]{1,3}'

# Period-of-day words that may precede a 点 time
PERIOD_WORDS = r'凌晨|早上|上午|中午|下午|晚上|傍晚|夜里'
PM_PERIOD_PATTERN = re.compile(r'下午|晚上|傍晚|夜里')
NOON_PERIOD_PATTERN = re.compile(r'中午')
DAWN_PERIOD_PATTERN = re.compile(r'凌晨')

# Time patterns
COLON_TIME_PATTERN = re.compile(r'([0-9]{1,2})\s*:\s*([0-9]{1,2})')  # 8:00, 18:30
DOT_TIME_PATTERN = re.compile(
    rf'({PERIOD_WORDS})?\s*({_NUMERAL})\s*点\s*(半|({_NUMERAL})\s*(?:分钟|分)?)?'
)  # 八点, 下午六点, 8点半, 十点二十分

# Day offset words, checked in this order
DAY_OFFSET_WORDS = [
    ('后天', 2),
    ('明天', 1),
    ('今天', 0),
]
DAY_WORDS_PATTERN = re.compile(r'今天|明天|后天')

PUNCTUATION_PATTERN = re.compile(r'[，,。.!！？?]')
WHITESPACE_PATTERN = re.compile(r'\s+')

# Words removed from a reminder utterance to leave the message
REMINDER_STOP_WORDS = re.compile(
    r'(提醒我|提醒一下|提醒|叫我|闹钟|到点|帮我|请|麻烦|一下|的时候|时候|在)\s*'
)

# Words removed from a subscription utterance to leave the place name
PLACE_STOP_WORDS = re.compile(
    r'订阅天气|天气订阅|订阅|天气|推送|提醒|定时|通知|地点是|地点|时间是|时间'
    r'|下一分钟|下1分钟|下个分钟|下分钟|下一刻|每天|每日|早报|晚报|我想|我要|帮我'
    r'|请|麻烦|一下|可以|能不能|能否|帮忙|给我',
    re.IGNORECASE,
)

# Replies to a pushed reminder: 完成 / 延后10分钟 / 取消, optionally with id=<id>
ACK_ID_PATTERN = re.compile(r'[（(]?\s*id\s*[=:：]\s*([A-Za-z0-9_-]+)\s*[)）]?', re.IGNORECASE)
ACK_DONE_PATTERN = re.compile(r'^(完成|已完成|做完了|好的|知道了|收到|done)$', re.IGNORECASE)
ACK_SNOOZE_PATTERN = re.compile(
    rf'^(?:延后|推迟|晚点|稍后)(?:提醒)?\s*({_NUMERAL})?\s*(?:分钟|分)?(?:再提醒(?:我)?)?$'
)
ACK_CANCEL_PATTERN = re.compile(r'^取消$')

# Command intents, matched against the whole (trimmed) message
HELP_PATTERN = re.compile(r'^(帮助|help|菜单|功能|你能做什么|你会什么)[?？]?$', re.IGNORECASE)
PICK_INDEX_PATTERN = re.compile(r'^(?:第\s*)?([0-9]{1,2}|[一二三四五六七八九十])\s*(?:个)?$')
REMINDER_LIST_PATTERN = re.compile(r'^(我的提醒|查看提醒|提醒列表)$')
REMINDER_CANCEL_PATTERN = re.compile(r'^取消提醒\s*(?:id\s*[=:：]?\s*)?([A-Za-z0-9_-]+)?$', re.IGNORECASE)
REMINDER_INTENT_PATTERN = re.compile(r'提醒|叫我|闹钟|喊我')
SUBSCRIPTION_LIST_PATTERN = re.compile(r'^(我的订阅|查看订阅)$')
UNSUBSCRIBE_PATTERN = re.compile(r'^(取消订阅|退订|删除订阅|退出订阅)$')
EXIT_FLOW_PATTERN = re.compile(r'^(取消|算了|不订了|退出|返回|退出流程|结束流程)$')
NON_SUBSCRIBE_CONTEXT_PATTERN = re.compile(r'拼贴|整理|总结|对话|回顾|复述')
CALENDAR_ON_PATTERN = re.compile(r'(开启|打开|开通)会议提醒')
CALENDAR_OFF_PATTERN = re.compile(r'(关闭|关掉|取消)会议提醒')
CALENDAR_TODAY_PATTERN = re.compile(r'^(今日日程|今天日程|今天的日程|今天有什么会)[?？]?$')
MINUTES_PATTERN = re.compile(rf'({_NUMERAL})\s*分钟')
WEATHER_DETAILS_PATTERN = re.compile(r'天气详情|完整指标|^详情$|^查看详情$')
WEATHER_PATTERN = re.compile(r'天气|气温|温度|下雨')

# Words removed from a weather question to leave the place name
WEATHER_QUERY_NOISE = re.compile(
    r'天气详情|查看详情|完整指标|详情|天气|气温|温度|会下雨吗|下雨吗|下雨|怎么样|如何|现在|目前'
    r'|今天|明天|后天|的|查一下|查查|看看|帮我|请问|告诉我|能不能|可以|吗|呢|[?？]'
)
