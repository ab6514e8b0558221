"""SQLite credential storage for the Mercado Libre operator bot."""

from pathlib import Path
from typing import Optional

import aiosqlite

from app.models.domain import Credential
from app.storage.base import CredentialStore


class SQLiteCredentialStore(CredentialStore):
    """SQLite implementation of CredentialStore.

    The table holds at most one row (``id = 1``), replaced as a whole on
    every save.
    """

    def __init__(self, database_path: str = "data/meli_bot.db"):
        """Initialize SQLite storage.

        Args:
            database_path: Path to the SQLite database file.
        """
        self.database_path = database_path
        self._initialized = False

    async def _ensure_initialized(self) -> None:
        """Ensure database schema is initialized."""
        if self._initialized:
            return

        # Ensure data directory exists
        db_path = Path(self.database_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)

        async with aiosqlite.connect(self.database_path) as db:
            await db.executescript(self._get_schema())
            await db.commit()

        self._initialized = True

    def _get_schema(self) -> str:
        """Return the database schema SQL."""
        return """
        CREATE TABLE IF NOT EXISTS oauth_credentials (
            id INTEGER PRIMARY KEY CHECK (id = 1),
            access_token TEXT NOT NULL,
            refresh_token TEXT NOT NULL,
            expires_at INTEGER NOT NULL,
            account_id TEXT NOT NULL,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        );
        """

    async def load(self) -> Optional[Credential]:
        """Load the stored credential, if any."""
        await self._ensure_initialized()

        async with aiosqlite.connect(self.database_path) as db:
            cursor = await db.execute(
                """
                SELECT access_token, refresh_token, expires_at, account_id
                FROM oauth_credentials WHERE id = 1
                """
            )
            row = await cursor.fetchone()

        if row is None:
            return None

        return Credential(
            access_token=row[0],
            refresh_token=row[1],
            expires_at=row[2],
            account_id=row[3],
        )

    async def save(self, credential: Credential) -> None:
        """Replace the stored credential in a single statement."""
        await self._ensure_initialized()

        async with aiosqlite.connect(self.database_path) as db:
            await db.execute(
                """
                INSERT OR REPLACE INTO oauth_credentials
                (id, access_token, refresh_token, expires_at, account_id, updated_at)
                VALUES (1, ?, ?, ?, ?, CURRENT_TIMESTAMP)
                """,
                (
                    credential.access_token,
                    credential.refresh_token,
                    credential.expires_at,
                    credential.account_id,
                ),
            )
            await db.commit()
