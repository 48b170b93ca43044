"""SQLite-backed key-value store for session records."""

import json
import logging
from pathlib import Path
from typing import Any, Mapping

import aiosqlite

from cyrecorder.storage.base import KeyValueStore

logger = logging.getLogger("cyrecorder.storage.sqlite_store")


class SqliteStore(KeyValueStore):
    """Store JSON-encoded values in a single `kv` table."""

    def __init__(self, path: Path):
        self.path = path
        self._initialized = False

    async def _ensure_schema(self, db: aiosqlite.Connection) -> None:
        if self._initialized:
            return
        await db.execute("""
            CREATE TABLE IF NOT EXISTS kv (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)
        await db.commit()
        self._initialized = True
        logger.info("Initialized recorder store at %s", self.path)

    async def get(self, key: str, default: Any = None) -> Any:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(self.path) as db:
            await self._ensure_schema(db)
            async with db.execute("SELECT value FROM kv WHERE key = ?", (key,)) as cursor:
                row = await cursor.fetchone()
        if row is None:
            return default
        return json.loads(row[0])

    async def set_many(self, values: Mapping[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(self.path) as db:
            await self._ensure_schema(db)
            await db.executemany(
                """
                INSERT INTO kv (key, value, updated_at)
                VALUES (?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                [(key, json.dumps(value)) for key, value in values.items()],
            )
            await db.commit()
