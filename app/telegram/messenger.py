"""Telegram Bot API messenger for operator replies and notifications."""

import logging
import re
from typing import Optional

import httpx
from pydantic import BaseModel

logger = logging.getLogger(__name__)

_MARKDOWN_V2_RESERVED = re.compile(r"([_*\[\]()~`>#+\-=|{}.!\\])")


def escape_markdown(value: object) -> str:
    """Escape a value for Telegram MarkdownV2 text."""
    return _MARKDOWN_V2_RESERVED.sub(r"\\\1", str(value))


class InlineButton(BaseModel):
    """Inline keyboard button carrying a callback payload."""

    text: str
    callback_data: str


class SendResult(BaseModel):
    """Result of a Bot API call."""

    success: bool
    message_id: Optional[int] = None
    error: Optional[str] = None


class MessengerDeliveryError(Exception):
    """Raised when the Bot API rejects or fails a call."""

    pass


class TelegramMessenger:
    """Delivers MarkdownV2 messages and callback acknowledgements."""

    TELEGRAM_API_BASE = "https://api.telegram.org/bot"

    def __init__(
        self,
        bot_token: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """Initialize TelegramMessenger.

        Args:
            bot_token: Telegram bot token from BotFather.
            timeout: HTTP timeout per call (seconds).
            transport: Optional httpx transport (used by tests).
        """
        self._api_url = f"{self.TELEGRAM_API_BASE}{bot_token}"
        self._timeout = timeout
        self._transport = transport

    async def send_message(
        self,
        chat_id: str,
        text: str,
        buttons: Optional[list[InlineButton]] = None,
    ) -> SendResult:
        """Send a MarkdownV2 message, optionally with one row per button.

        Delivery errors are logged and reported in the result, never raised.

        Args:
            chat_id: Target chat ID.
            text: Already escaped MarkdownV2 text.
            buttons: Inline buttons to attach.
        """
        payload: dict = {
            "chat_id": chat_id,
            "text": text,
            "parse_mode": "MarkdownV2",
            "disable_web_page_preview": True,
        }
        if buttons:
            payload["reply_markup"] = {
                "inline_keyboard": [[button.model_dump()] for button in buttons]
            }

        try:
            result = await self._call("sendMessage", payload)
        except MessengerDeliveryError as e:
            logger.error("Failed to send Telegram message to %s: %s", chat_id, e)
            return SendResult(success=False, error=str(e))

        logger.debug("Telegram message sent to %s", chat_id)
        return SendResult(success=True, message_id=result.get("message_id"))

    async def answer_callback_query(
        self, callback_id: str, text: Optional[str] = None
    ) -> SendResult:
        """Acknowledge a button press so the client stops its spinner."""
        payload: dict = {"callback_query_id": callback_id}
        if text:
            payload["text"] = text

        try:
            await self._call("answerCallbackQuery", payload)
        except MessengerDeliveryError as e:
            logger.error("Failed to answer callback query %s: %s", callback_id, e)
            return SendResult(success=False, error=str(e))

        return SendResult(success=True)

    async def set_webhook(self, url: str, secret_token: Optional[str] = None) -> None:
        """Register the bot webhook URL.

        Raises:
            MessengerDeliveryError: If Telegram rejects the registration.
        """
        payload: dict = {
            "url": url,
            "allowed_updates": ["message", "callback_query"],
        }
        if secret_token:
            payload["secret_token"] = secret_token

        await self._call("setWebhook", payload)
        logger.info("Telegram webhook registered: %s", url)

    async def _call(self, method: str, payload: dict) -> dict:
        """Call a Bot API method and return its ``result``.

        Raises:
            MessengerDeliveryError: On timeouts, network errors or API errors.
        """
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(f"{self._api_url}/{method}", json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.TimeoutException as e:
            raise MessengerDeliveryError(f"{method} timed out: {e}")
        except httpx.HTTPStatusError as e:
            # Markup errors come back as 400 with a description
            raise MessengerDeliveryError(
                f"{method} failed: {e.response.status_code} - {e.response.text}"
            )
        except httpx.RequestError as e:
            raise MessengerDeliveryError(f"{method} network error: {e}")
        except ValueError as e:
            raise MessengerDeliveryError(f"{method} returned invalid JSON: {e}")

        if not data.get("ok"):
            raise MessengerDeliveryError(
                f"{method} failed: {data.get('description', 'unknown error')}"
            )

        result = data.get("result")
        return result if isinstance(result, dict) else {}
