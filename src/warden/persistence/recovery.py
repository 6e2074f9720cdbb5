"""Load-time sanitation of stored sessions.

Stored records can be stale or partial: a session may have been closed
while a call was in flight, or written by an older client. Recovery
repairs them into records that satisfy the current invariants.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from pydantic import ValidationError

from warden.core.logging import get_logger
from warden.core.models import Instance, InstanceStatus, LogEntry
from warden.utils.time import now_ms

_logger = get_logger("persistence.recovery")


def _iter_records(raw: Any) -> Iterable[Any]:
    if isinstance(raw, dict):
        return raw.values()
    if isinstance(raw, list):
        return raw
    return ()


def _recover_status(value: Any) -> InstanceStatus:
    try:
        status = InstanceStatus(value)
    except ValueError:
        return InstanceStatus.STOPPED
    # A call that was in flight when the session closed is assumed to have
    # left the job running.
    if status.is_transient:
        return InstanceStatus.ACTIVE
    return status


def recover_instances(raw: Any, now: int | None = None) -> list[Instance]:
    """Turn a stored instance collection into valid ``Instance`` records.

    Accepts a list or a key-to-record mapping. Records without a target id
    are dropped. Transient statuses become ``active``, missing timestamps
    are stamped with ``now``, and stopped records lose their safe mode.
    """
    now = now_ms() if now is None else now
    recovered: list[Instance] = []
    for record in _iter_records(raw):
        if not isinstance(record, dict):
            continue
        data = dict(record)
        target = data.get("targetUid", data.get("target_id"))
        if not target:
            _logger.warning("recovery.dropped", reason="missing target id", id=data.get("id"))
            continue

        status = _recover_status(data.get("status"))
        data["status"] = status.value
        data.pop("target_id", None)
        data["targetUid"] = str(target)
        data.setdefault("botName", "")

        if status is InstanceStatus.ACTIVE and not data.get("startedTimestamp"):
            data["startedTimestamp"] = now
        if status is InstanceStatus.STOPPED:
            data["safeMode"] = False
        if data.get("safeMode"):
            if not data.get("safeModeStartTime"):
                data["safeModeStartTime"] = now
        else:
            data["safeMode"] = False
            data.pop("safeModeStartTime", None)

        try:
            recovered.append(Instance.model_validate(data))
        except ValidationError as e:
            _logger.warning("recovery.dropped", reason="invalid record", error=str(e))
    if recovered:
        _logger.info("recovery.loaded", count=len(recovered))
    return recovered


def recover_logs(raw: Iterable[Any], tail: int) -> list[LogEntry]:
    """Parse stored log entries, keeping the last ``tail`` valid ones."""
    entries: list[LogEntry] = []
    for record in raw:
        try:
            entries.append(LogEntry.model_validate(record))
        except ValidationError:
            continue
    return entries[-tail:] if tail > 0 else []


__all__ = ["recover_instances", "recover_logs"]
