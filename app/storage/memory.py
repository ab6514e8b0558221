"""In-memory chat session store."""

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import AsyncIterator

from app.models.domain import ChatSession
from app.storage.base import ChatSessionStore


class InMemoryChatSessionStore(ChatSessionStore):
    """Dict-backed ChatSessionStore with one asyncio.Lock per chat."""

    def __init__(self) -> None:
        self._sessions: dict[str, ChatSession] = {}
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def get(self, chat_id: str) -> ChatSession:
        return self._sessions.get(chat_id) or ChatSession.idle()

    async def set(self, chat_id: str, session: ChatSession) -> None:
        if session.is_idle:
            self._sessions.pop(chat_id, None)
        else:
            self._sessions[chat_id] = session

    async def clear(self, chat_id: str) -> None:
        self._sessions.pop(chat_id, None)

    @asynccontextmanager
    async def locked(self, chat_id: str) -> AsyncIterator[None]:
        async with self._locks[chat_id]:
            yield

    def __contains__(self, chat_id: str) -> bool:
        return chat_id in self._sessions
