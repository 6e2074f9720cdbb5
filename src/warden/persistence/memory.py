"""In-memory session store for testing.

Keeps sessions in dicts without filesystem I/O. Records are copied on
the way in and out so callers cannot mutate what is "stored".
"""

import copy

from warden.persistence.base import Record, SessionData, SessionStore


class InMemorySessionStore(SessionStore):
    """In-memory session store for testing."""

    def __init__(self) -> None:
        self.instances: dict[str, object] = {}
        self.logs: dict[str, list[Record]] = {}
        self.saves = 0

    async def load_session(self, user: str) -> SessionData:
        return SessionData(
            instances=copy.deepcopy(self.instances.get(user, [])),
            logs=copy.deepcopy(self.logs.get(user, [])),
        )

    async def save_instances(self, user: str, records: list[Record]) -> None:
        self.instances[user] = copy.deepcopy(records)
        self.saves += 1

    async def save_logs(self, user: str, records: list[Record]) -> None:
        self.logs[user] = copy.deepcopy(records)
