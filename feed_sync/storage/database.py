"""Database storage for feed_sync.

This module provides an async SQLite byte store holding named snapshots.
Database location: ~/.feed_sync/feed_sync.db (or FEED_SYNC_DB_PATH env var)
"""

import logging
from pathlib import Path
from typing import Optional, Protocol, Union

import aiosqlite

logger = logging.getLogger(__name__)

MEMORY_DB = ":memory:"


class ByteStore(Protocol):
    """Named blob storage with atomic replace semantics."""

    async def save(self, name: str, data: bytes) -> None:
        ...

    async def try_load(self, name: str) -> Optional[bytes]:
        ...


async def init_database(db: aiosqlite.Connection) -> None:
    """Initialize the snapshot table if it doesn't exist.

    Args:
        db: Open database connection
    """
    await db.execute("""
        CREATE TABLE IF NOT EXISTS snapshots (
            name TEXT PRIMARY KEY,
            data BLOB NOT NULL,
            saved_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)
    await db.commit()


class SqliteByteStore:
    """ByteStore persisted in a single SQLite table."""

    def __init__(self, db_path: Union[str, Path] = MEMORY_DB):
        self.db_path = db_path
        self._connection: Optional[aiosqlite.Connection] = None

    async def get_database(self) -> aiosqlite.Connection:
        """Get or create the store's database connection.

        Returns:
            Active database connection
        """
        if self._connection is None:
            if str(self.db_path) != MEMORY_DB:
                # Ensure directory exists
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

            self._connection = await aiosqlite.connect(self.db_path)
            self._connection.row_factory = aiosqlite.Row
            await init_database(self._connection)
            logger.debug(f"Opened snapshot store at {self.db_path}")

        return self._connection

    async def save(self, name: str, data: bytes) -> None:
        """Store a blob, replacing any previous blob with the same name.

        Args:
            name: Snapshot key
            data: Encoded snapshot
        """
        db = await self.get_database()

        await db.execute(
            """
            INSERT OR REPLACE INTO snapshots (name, data, saved_at)
            VALUES (?, ?, CURRENT_TIMESTAMP)
            """,
            (name, data),
        )
        await db.commit()

    async def try_load(self, name: str) -> Optional[bytes]:
        """Load a blob by name.

        Args:
            name: Snapshot key

        Returns:
            The stored bytes, or None if nothing was saved under that name
        """
        db = await self.get_database()

        cursor = await db.execute("SELECT data FROM snapshots WHERE name = ?", (name,))
        row = await cursor.fetchone()

        if row is None:
            return None
        return bytes(row["data"])

    async def close(self) -> None:
        """Close the database connection."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
