"""JSON file-based session store.

Stores each user's session in a separate JSON file within the store
directory. File naming: {store_dir}/{username}.json
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from warden.core.logging import get_logger
from warden.persistence.base import Record, SessionData, SessionStore
from warden.utils.time import utc_now

_logger = get_logger("persistence.json")


class JsonSessionStore(SessionStore):
    """JSON file-based session storage."""

    def __init__(self, store_dir: Path):
        self.store_dir = Path(store_dir)
        self.store_dir.mkdir(parents=True, exist_ok=True)

    def _get_session_file(self, user: str) -> Path:
        # Sanitize username for filesystem
        safe_user = "".join(c if c.isalnum() or c in "-_" else "_" for c in user)
        return self.store_dir / f"{safe_user}.json"

    def _read(self, user: str) -> dict[str, Any]:
        session_file = self._get_session_file(user)
        if not session_file.exists():
            return {}
        try:
            with open(session_file) as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            _logger.warning("session.load_failed", path=str(session_file), error=str(e))
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, user: str, data: dict[str, Any]) -> None:
        session_file = self._get_session_file(user)
        data["updated_at"] = utc_now().isoformat()
        # Write atomically using temp file + rename
        temp_file = session_file.with_suffix(".json.tmp")
        with open(temp_file, "w") as f:
            json.dump(data, f, indent=2)
        temp_file.replace(session_file)

    async def load_session(self, user: str) -> SessionData:
        data = self._read(user)
        logs = data.get("logs")
        return SessionData(
            instances=data.get("instances") or [],
            logs=[r for r in logs if isinstance(r, dict)] if isinstance(logs, list) else [],
        )

    async def save_instances(self, user: str, records: list[Record]) -> None:
        data = self._read(user)
        data["instances"] = records
        self._write(user, data)

    async def save_logs(self, user: str, records: list[Record]) -> None:
        data = self._read(user)
        data["logs"] = records
        self._write(user, data)
