"""SQLite thread store.

Provides persistent thread storage using a SQLite database file.
Uses aiosqlite for async access; each thread is stored as pydantic JSON
keyed by thread id.
"""

from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

from ..thread import Thread
from .base import ThreadStore


class SQLiteThreadStore(ThreadStore):
    """SQLite-backed thread store.

    Supports resuming a thread across processes. A process that dies
    mid-run leaves the thread running; `force_stop()` (or
    `codeloop thread stop`) releases it, and the next run on the same
    thread id repairs the interrupted step.
    """

    def __init__(
        self,
        path: str | Path = "./codeloop_threads.db",
        thread_id: str = "default"
    ):
        super().__init__(thread_id)
        self._db_path = Path(path)
        self._connection: aiosqlite.Connection | None = None

    async def connect(self) -> None:
        """Initialize database connection and schema."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = await aiosqlite.connect(self._db_path)
        await self._create_schema()

    async def _create_schema(self) -> None:
        """Create database tables."""
        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS threads (
                thread_id TEXT PRIMARY KEY,
                data TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        await self._connection.commit()

    async def disconnect(self) -> None:
        """Close database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    def _require_connection(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise RuntimeError("SQLite thread store is not connected; call connect() first")
        return self._connection

    async def _load(self) -> Thread | None:
        connection = self._require_connection()
        async with connection.execute(
            "SELECT data FROM threads WHERE thread_id = ?",
            (self._thread_id,)
        ) as cursor:
            row = await cursor.fetchone()

        if row is None:
            return None
        return Thread.model_validate_json(row[0])

    async def _persist(self, thread: Thread) -> None:
        connection = self._require_connection()
        now = datetime.now(timezone.utc).isoformat()
        await connection.execute("""
            INSERT INTO threads (thread_id, data, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(thread_id) DO UPDATE SET
                data = excluded.data,
                updated_at = excluded.updated_at
        """, (self._thread_id, thread.model_dump_json(), now))
        await connection.commit()

    async def list_threads(self) -> list[tuple[str, str]]:
        """List stored threads as (thread_id, updated_at), newest first."""
        connection = self._require_connection()
        async with connection.execute(
            "SELECT thread_id, updated_at FROM threads ORDER BY updated_at DESC"
        ) as cursor:
            rows = await cursor.fetchall()
        return [(thread_id, updated_at) for thread_id, updated_at in rows]

    @property
    def backend_type(self) -> str:
        return "sqlite"
