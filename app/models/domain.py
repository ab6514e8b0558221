"""Domain models for the Mercado Libre operator bot."""

import time
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, model_validator


class Credential(BaseModel):
    """OAuth2 credential for the linked Mercado Libre account.

    ``expires_at`` is stored as epoch milliseconds, the same layout the
    credential table uses.
    """

    access_token: str
    refresh_token: str
    expires_at: int
    account_id: str

    @classmethod
    def from_token_response(
        cls,
        data: dict,
        now: float,
        previous: Optional["Credential"] = None,
    ) -> "Credential":
        """Build a credential from a token endpoint response.

        When ``previous`` is given, the account id is always carried over and
        the refresh token is kept if the response omits it.
        """
        refresh_token = data.get("refresh_token") or (
            previous.refresh_token if previous else None
        )
        if previous is not None:
            account_id = previous.account_id
        else:
            account_id = str(data["user_id"])

        return cls(
            access_token=data["access_token"],
            refresh_token=refresh_token or "",
            expires_at=int(now * 1000) + int(data["expires_in"]) * 1000,
            account_id=account_id,
        )

    def expires_within(self, seconds: float, now: Optional[float] = None) -> bool:
        """Check if the credential expires in less than ``seconds``."""
        if now is None:
            now = time.time()
        return now * 1000 >= self.expires_at - seconds * 1000


class SessionMode(str, Enum):
    """Conversation mode of a chat."""

    IDLE = "idle"
    AWAITING_ANSWER = "awaiting_answer"


class ChatSession(BaseModel):
    """Short-lived per-chat state for multi-turn flows."""

    mode: SessionMode = SessionMode.IDLE
    pending_question_id: Optional[str] = None

    @model_validator(mode="after")
    def _check_pending_question(self) -> "ChatSession":
        awaiting = self.mode == SessionMode.AWAITING_ANSWER
        if awaiting != (self.pending_question_id is not None):
            raise ValueError(
                "pending_question_id must be set exactly when awaiting an answer"
            )
        return self

    @classmethod
    def idle(cls) -> "ChatSession":
        return cls()

    @classmethod
    def awaiting_answer(cls, question_id: str) -> "ChatSession":
        return cls(mode=SessionMode.AWAITING_ANSWER, pending_question_id=question_id)

    @property
    def is_idle(self) -> bool:
        return self.mode == SessionMode.IDLE


class TextMessage(BaseModel):
    """A text message typed by the operator."""

    chat_id: str
    text: str


class ButtonPress(BaseModel):
    """An inline keyboard button pressed by the operator."""

    chat_id: str
    callback_id: str
    data: str


InboundChatEvent = Union[TextMessage, ButtonPress]
