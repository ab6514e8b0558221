"""Pydantic models for Telegram webhook updates."""

from typing import Optional

from pydantic import BaseModel, ConfigDict

from app.models.domain import ButtonPress, InboundChatEvent, TextMessage


class _TelegramModel(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)


class Chat(_TelegramModel):
    id: str


class Message(_TelegramModel):
    """Message part of an update; only text messages are handled."""

    message_id: Optional[int] = None
    chat: Chat
    text: Optional[str] = None


class CallbackQuery(_TelegramModel):
    """Inline keyboard button press."""

    id: str
    message: Optional[Message] = None
    data: Optional[str] = None


class Update(_TelegramModel):
    """Root Telegram update.

    Example payloads:
    {"update_id": 1, "message": {"chat": {"id": 42}, "text": "/menu"}}
    {"update_id": 2, "callback_query": {
        "id": "cbq-1", "message": {"chat": {"id": 42}}, "data": "answer_555"}}
    """

    update_id: Optional[int] = None
    message: Optional[Message] = None
    callback_query: Optional[CallbackQuery] = None

    def to_event(self) -> Optional[InboundChatEvent]:
        """Convert to an inbound chat event, or None if nothing to handle."""
        if self.message is not None and self.message.text:
            return TextMessage(chat_id=self.message.chat.id, text=self.message.text)

        query = self.callback_query
        if query is not None and query.data and query.message is not None:
            return ButtonPress(
                chat_id=query.message.chat.id,
                callback_id=query.id,
                data=query.data,
            )

        return None
