"""DingTalk Stream inbound handler and session-webhook replies."""

import logging

import dingtalk_stream
import httpx
from dingtalk_stream import AckMessage, ChatbotMessage

from dingbuddy.bot.formatters import HELP_TEXT, NEED_USER_ID
from dingbuddy.bot.handlers import MessageRouter
from dingbuddy.utils.error_handler import error_handler
from dingbuddy.utils.session_cache import SessionCache

logger = logging.getLogger(__name__)


def mask_webhook(url: str | None) -> str:
    """Shorten a session webhook for logging; the full URL carries a token."""
    if not url:
        return "(none)"
    return f"{url[:24]}...{url[-8:]}"


class DingtalkChannel(dingtalk_stream.ChatbotHandler):
    """Handles robot messages pushed over the DingTalk Stream connection."""

    def __init__(
        self,
        router: MessageRouter,
        sessions: SessionCache[str] | None = None,
        timeout: float = 8.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__()
        self.router = router
        self.sessions = sessions if sessions is not None else SessionCache()
        self.timeout = timeout
        self._transport = transport

    async def process(self, callback: dingtalk_stream.CallbackMessage):
        try:
            message = ChatbotMessage.from_dict(callback.data)
            await self.handle_message(message)
        except Exception as e:
            logger.error(f"Failed to handle inbound message: {e}", exc_info=True)
        # Always ack so DingTalk does not redeliver
        return AckMessage.STATUS_OK, "OK"

    async def handle_message(self, message: ChatbotMessage) -> str | None:
        """Route one inbound message and reply to it. Returns the reply text."""
        text = ""
        if message.message_type == "text" and message.text is not None:
            text = (message.text.content or "").strip()

        webhook = message.session_webhook
        user_id = (message.sender_staff_id or "").strip()
        session_key = (message.conversation_id or user_id or webhook or "").strip()

        logger.info(
            f"Inbound msgtype={message.message_type} text={text!r} "
            f"sender_staff_id={user_id or '(none)'} conversation_id={message.conversation_id or '(none)'} "
            f"session_webhook={mask_webhook(webhook)}"
        )

        if not webhook:
            logger.warning("Inbound message has no session webhook, cannot reply")
            return None

        if user_id:
            self.sessions.set(session_key, user_id)
        else:
            user_id = self.sessions.get(session_key) or ""

        if not user_id:
            reply = NEED_USER_ID
        elif not text:
            reply = "目前我只能看懂文字消息～\n" + HELP_TEXT
        else:
            try:
                result = await self.router.route(user_id, session_key, text)
                reply = result.text if result is not None else HELP_TEXT
            except Exception as e:
                reply = error_handler(e, f"handling message from {user_id}")

        await self.reply(webhook, reply)
        return reply

    async def reply(self, webhook: str, text: str) -> None:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(
                webhook, json={"msgtype": "text", "text": {"content": text}}
            )
            response.raise_for_status()
