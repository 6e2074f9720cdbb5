"""Abstract base for session stores."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

Record = dict[str, Any]


@dataclass
class SessionData:
    """Raw persisted state of one user session.

    ``instances`` is kept exactly as stored (a list, or a mapping of
    key to record for stores that turn arrays into objects); run it
    through ``recover_instances`` before use.
    """

    instances: Any = field(default_factory=list)
    logs: list[Record] = field(default_factory=list)


class SessionStore(ABC):
    """Abstract base class for session storage backends.

    Implementations persist the instance list and the bounded activity
    log tail of each user so a session can be resumed.
    """

    @abstractmethod
    async def load_session(self, user: str) -> SessionData:
        """Load stored state for a user.

        Args:
            user: Username owning the session.

        Returns:
            SessionData, empty if nothing has been stored yet.
        """
        ...

    @abstractmethod
    async def save_instances(self, user: str, records: list[Record]) -> None:
        """Replace the stored instance list.

        Args:
            user: Username owning the session.
            records: Normalized instance records (no None values).
        """
        ...

    @abstractmethod
    async def save_logs(self, user: str, records: list[Record]) -> None:
        """Replace the stored activity log tail."""
        ...

    async def close(self) -> None:  # noqa: B027
        """Release any resources held by the store."""
