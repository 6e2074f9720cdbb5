"""Session persistence backends."""

from pathlib import Path

from warden.core.config import PersistenceConfig
from warden.persistence.base import SessionData, SessionStore
from warden.persistence.json_store import JsonSessionStore
from warden.persistence.memory import InMemorySessionStore
from warden.persistence.queue import WriteBehindQueue
from warden.persistence.recovery import recover_instances, recover_logs
from warden.persistence.sqlite_store import SqliteSessionStore


def create_store(config: PersistenceConfig) -> SessionStore:
    """Build the session store selected by configuration."""
    if config.backend == "memory":
        return InMemorySessionStore()
    if config.backend == "sqlite":
        path = config.path
        if path.suffix not in (".db", ".sqlite", ".sqlite3"):
            path = Path(path) / "sessions.db"
        return SqliteSessionStore(path)
    return JsonSessionStore(config.path)


__all__ = [
    "InMemorySessionStore",
    "JsonSessionStore",
    "SessionData",
    "SessionStore",
    "SqliteSessionStore",
    "WriteBehindQueue",
    "create_store",
    "recover_instances",
    "recover_logs",
]
