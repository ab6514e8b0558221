"""Abstract storage interfaces for the Mercado Libre operator bot."""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from typing import Optional

from app.models.domain import ChatSession, Credential


class CredentialStore(ABC):
    """Durable holder of the single OAuth credential record.

    Allows swapping SQLite for a secret manager or another database later.
    """

    @abstractmethod
    async def load(self) -> Optional[Credential]:
        """Load the stored credential.

        Returns:
            The credential, or None if the account was never linked.
        """
        ...

    @abstractmethod
    async def save(self, credential: Credential) -> None:
        """Atomically replace the stored credential.

        Args:
            credential: The credential to persist.
        """
        ...


class ChatSessionStore(ABC):
    """Per-chat conversation state.

    A record exists only while a chat is in a multi-turn flow; an absent
    record means the chat is idle.
    """

    @abstractmethod
    async def get(self, chat_id: str) -> ChatSession:
        """Get the session for a chat.

        Args:
            chat_id: The Telegram chat identifier.

        Returns:
            The stored session, or an idle session if none is stored.
        """
        ...

    @abstractmethod
    async def set(self, chat_id: str, session: ChatSession) -> None:
        """Store the session for a chat (an idle session clears it).

        Args:
            chat_id: The Telegram chat identifier.
            session: The new session state.
        """
        ...

    @abstractmethod
    async def clear(self, chat_id: str) -> None:
        """Remove the session for a chat, returning it to idle.

        Args:
            chat_id: The Telegram chat identifier.
        """
        ...

    @abstractmethod
    def locked(self, chat_id: str) -> AbstractAsyncContextManager[None]:
        """Serialize access to a single chat's session.

        Usage::

            async with store.locked(chat_id):
                session = await store.get(chat_id)
                ...
        """
        ...
