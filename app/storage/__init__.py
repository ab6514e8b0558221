# Storage layer module

from app.storage.base import ChatSessionStore, CredentialStore
from app.storage.memory import InMemoryChatSessionStore
from app.storage.sqlite import SQLiteCredentialStore

__all__ = [
    "ChatSessionStore",
    "CredentialStore",
    "InMemoryChatSessionStore",
    "SQLiteCredentialStore",
]
