"""Key-value blob stores backing the sync ledger."""

import asyncio
import sqlite3
from contextlib import closing
from datetime import UTC, datetime
from pathlib import Path

import structlog

from .interfaces import KeyValueStore

logger = structlog.get_logger(__name__)


class InMemoryKeyValueStore(KeyValueStore):
    """Process-local store, lost on exit."""

    def __init__(self, initial: dict[str, bytes] | None = None) -> None:
        self._blobs: dict[str, bytes] = dict(initial or {})

    async def get_blob(self, key: str) -> bytes | None:
        return self._blobs.get(key)

    async def set_blob(self, key: str, data: bytes) -> None:
        self._blobs[key] = bytes(data)


class SQLiteKeyValueStore(KeyValueStore):
    """Durable blob store in a single SQLite table.

    Each ``set_blob`` is one transaction, so a crash leaves either the
    previous blob or the new one, never a torn write.
    """

    def __init__(self, db_path: Path | str) -> None:
        """Initialize the store.

        Args:
            db_path: Path to SQLite database file; parent dirs are created.
        """
        self._db_path = Path(db_path)
        self._initialized = False

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, timeout=5.0)
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA busy_timeout = 5000")
        return conn

    async def _ensure_initialized(self) -> None:
        if self._initialized:
            return

        loop = asyncio.get_running_loop()

        def init_db() -> None:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            with closing(self._connect()) as conn, conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS kv_store (
                        key TEXT PRIMARY KEY,
                        value BLOB NOT NULL,
                        updated_at TEXT NOT NULL
                    )
                """)

        await loop.run_in_executor(None, init_db)
        self._initialized = True
        logger.debug("kv_store_initialized", path=str(self._db_path))

    async def get_blob(self, key: str) -> bytes | None:
        await self._ensure_initialized()
        loop = asyncio.get_running_loop()

        def do_get() -> bytes | None:
            with closing(self._connect()) as conn:
                row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
            return bytes(row[0]) if row else None

        return await loop.run_in_executor(None, do_get)

    async def set_blob(self, key: str, data: bytes) -> None:
        await self._ensure_initialized()
        loop = asyncio.get_running_loop()
        now = datetime.now(UTC).isoformat()

        def do_set() -> None:
            with closing(self._connect()) as conn, conn:
                conn.execute(
                    """
                    INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = excluded.updated_at
                    """,
                    (key, sqlite3.Binary(data), now),
                )

        await loop.run_in_executor(None, do_set)
        logger.debug("kv_blob_written", key=key, size=len(data))
