"""Core data models for Warden.

Defines the worker ``Instance`` record, its status enumeration with the
lifecycle transition table, and the user-visible ``LogEntry``.

Records are pydantic models that are replaced rather than mutated: every
change goes through ``model_copy(update=...)`` and a whole-registry swap
(see ``warden.lifecycle.registry``). Field aliases keep the camelCase
names used by the browser dashboard so stored sessions load unchanged.
"""

from __future__ import annotations

import secrets
import string
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

_ID_ALPHABET = string.ascii_lowercase + string.digits


def new_id(length: int = 9) -> str:
    """Generate a short opaque identifier."""
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(length))


class InstanceStatus(str, Enum):
    """Lifecycle status of a worker instance.

    Inherits from ``str`` so records serialize as plain strings.
    ``RESTARTING`` and ``REMOVING`` are transient: they only exist while
    a job-control call is in flight and never survive a reload.
    """

    ACTIVE = "active"
    RESTARTING = "restarting"
    REMOVING = "removing"
    STOPPED = "stopped"
    ERROR = "error"

    @property
    def is_transient(self) -> bool:
        return self in (InstanceStatus.RESTARTING, InstanceStatus.REMOVING)

    @property
    def is_running(self) -> bool:
        """Whether the remote job is (believed to be) running."""
        return self in (InstanceStatus.ACTIVE, InstanceStatus.RESTARTING)

    @property
    def is_resumable(self) -> bool:
        """Whether a plain ``start`` may be issued from this status."""
        return self in (InstanceStatus.STOPPED, InstanceStatus.ERROR)


class Transition(str, Enum):
    """User or watchdog commands that move an instance between statuses."""

    START = "start"
    STOP = "stop"
    RESTART = "restart"
    DELETE = "delete"


_ALL_STATUSES = frozenset(InstanceStatus)

# Statuses from which each transition may be issued. Anything else is a no-op.
ALLOWED_FROM: dict[Transition, frozenset[InstanceStatus]] = {
    Transition.START: frozenset({InstanceStatus.STOPPED, InstanceStatus.ERROR}),
    Transition.STOP: _ALL_STATUSES - {InstanceStatus.STOPPED},
    Transition.RESTART: _ALL_STATUSES - {InstanceStatus.REMOVING},
    Transition.DELETE: _ALL_STATUSES,
}


def can_apply(transition: Transition, status: InstanceStatus) -> bool:
    """Check the transition table for ``transition`` issued from ``status``."""
    return status in ALLOWED_FROM[transition]


class Instance(BaseModel):
    """One tracked handle on a remote automation job."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(default_factory=new_id)
    bot_name: str = Field(alias="botName")
    target_id: str = Field(alias="targetUid", min_length=1)
    status: InstanceStatus = InstanceStatus.STOPPED
    started_at: str = Field(default="", alias="startedAt")
    started_timestamp: int | None = Field(default=None, alias="startedTimestamp")
    safe_mode: bool = Field(default=False, alias="safeMode")
    safe_mode_start_time: int | None = Field(default=None, alias="safeModeStartTime")
    last_known_rate: str | None = Field(default=None, alias="lastKnownRate")

    def safe_mode_consistent(self) -> bool:
        """Check that the safe-mode timer is set exactly when it should be."""
        expected = self.safe_mode and self.status is not InstanceStatus.STOPPED
        return (self.safe_mode_start_time is not None) == expected

    def to_record(self) -> dict[str, object]:
        """Serialize for storage: camelCase keys, no ``None`` values."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


LogType = Literal["info", "success", "error", "warning"]


class LogEntry(BaseModel):
    """A user-visible activity log line."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    timestamp: str
    message: str
    type: LogType = "info"


__all__ = [
    "ALLOWED_FROM",
    "Instance",
    "InstanceStatus",
    "LogEntry",
    "LogType",
    "Transition",
    "can_apply",
    "new_id",
]
