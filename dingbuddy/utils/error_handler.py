"""Turn per-request failures into plain-language replies."""

import logging
import traceback

import httpx

from dingbuddy.services.dingtalk import DingtalkApiError

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "抱歉，处理你的消息时出了点问题，我已经记录下来了。请稍后再试。"


def friendly_error_message(error: BaseException) -> str:
    """Pick a user-facing Chinese sentence for an exception."""
    if isinstance(error, httpx.TimeoutException):
        return "请求超时了，外部服务暂时没有响应。请稍后再试。"

    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        if status in (401, 403):
            return "钉钉接口拒绝了请求（可能缺少权限或凭证已失效），请联系管理员检查应用配置。"
        if status == 429:
            return "请求太频繁了，请稍等一会儿再试。"
        if status >= 500:
            return "外部服务暂时不可用，请稍后再试。"
        return "请求没有被外部服务接受，请换个说法再试一次。"

    if isinstance(error, httpx.TransportError):
        return "网络连接失败：当前环境可能无法访问外部服务（需要可出网）。请稍后重试。"

    if isinstance(error, DingtalkApiError):
        return "暂时无法连接钉钉开放平台（获取凭证失败），请稍后再试。"

    return GENERIC_ERROR_MESSAGE


def error_handler(error: BaseException, context: str = "") -> str:
    """Log an exception with its traceback and return the reply for the user."""
    where = f" while {context}" if context else ""
    logger.error(f"Exception{where}: {error}")

    tb_string = "".join(traceback.format_exception(type(error), error, error.__traceback__))
    logger.error(f"Traceback:\n{tb_string}")

    return friendly_error_message(error)
