"""SQLite-based session store.

One row per (user, kind) holding the JSON payload of either the instance
list or the activity log tail. Uses WAL journaling so a ``warden list``
in another process can read while a ``warden watch`` session writes.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import aiosqlite

from warden.core.logging import get_logger
from warden.persistence.base import Record, SessionData, SessionStore
from warden.utils.time import utc_now

_logger = get_logger("persistence.sqlite")

# Current schema version for migration support
SCHEMA_VERSION = 1

_KIND_INSTANCES = "instances"
_KIND_LOGS = "logs"


class SqliteSessionStore(SessionStore):
    """SQLite-based session storage.

    Args:
        db_path: Path to the database file; parent directories are created.
    """

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialized = False
        self._init_lock = asyncio.Lock()

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[aiosqlite.Connection]:
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("PRAGMA journal_mode=WAL")
            yield db

    async def _ensure_initialized(self) -> None:
        if self._initialized:
            return
        async with self._init_lock:
            if self._initialized:
                return
            async with self._connect() as db:
                await self._run_migrations(db)
            self._initialized = True

    async def _get_schema_version(self, db: aiosqlite.Connection) -> int:
        try:
            cursor = await db.execute(
                "SELECT version FROM schema_version ORDER BY version DESC LIMIT 1"
            )
            row = await cursor.fetchone()
            return row[0] if row else 0
        except aiosqlite.OperationalError:
            # Table doesn't exist yet
            return 0

    async def _run_migrations(self, db: aiosqlite.Connection) -> None:
        current_version = await self._get_schema_version(db)
        if current_version < 1:
            await self._migrate_v1(db)
            _logger.info("schema_migrated", from_version=0, to_version=1)

    async def _migrate_v1(self, db: aiosqlite.Connection) -> None:
        await db.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at TEXT NOT NULL
            )
        """)
        await db.execute("""
            CREATE TABLE IF NOT EXISTS sessions (
                username TEXT NOT NULL,
                kind TEXT NOT NULL,
                payload TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                PRIMARY KEY (username, kind)
            )
        """)
        await db.execute(
            "INSERT OR IGNORE INTO schema_version (version, applied_at) VALUES (?, ?)",
            (1, utc_now().isoformat()),
        )
        await db.commit()

    async def _load_payload(self, db: aiosqlite.Connection, user: str, kind: str) -> Any:
        cursor = await db.execute(
            "SELECT payload FROM sessions WHERE username = ? AND kind = ?",
            (user, kind),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        try:
            return json.loads(row[0])
        except json.JSONDecodeError as e:
            _logger.warning("session.payload_corrupt", user=user, kind=kind, error=str(e))
            return None

    async def _save_payload(self, user: str, kind: str, records: list[Record]) -> None:
        await self._ensure_initialized()
        async with self._connect() as db:
            await db.execute(
                """
                INSERT INTO sessions (username, kind, payload, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(username, kind) DO UPDATE SET
                    payload = excluded.payload,
                    updated_at = excluded.updated_at
                """,
                (user, kind, json.dumps(records), utc_now().isoformat()),
            )
            await db.commit()

    async def load_session(self, user: str) -> SessionData:
        await self._ensure_initialized()
        async with self._connect() as db:
            instances = await self._load_payload(db, user, _KIND_INSTANCES)
            logs = await self._load_payload(db, user, _KIND_LOGS)
        return SessionData(
            instances=instances or [],
            logs=[r for r in logs if isinstance(r, dict)] if isinstance(logs, list) else [],
        )

    async def save_instances(self, user: str, records: list[Record]) -> None:
        await self._save_payload(user, _KIND_INSTANCES, records)

    async def save_logs(self, user: str, records: list[Record]) -> None:
        await self._save_payload(user, _KIND_LOGS, records)
