"""In-memory instance registry.

The registry is the shared mutable state of a session. It holds an
immutable tuple of ``Instance`` records and every mutation replaces the
whole tuple (read-modify-write by id). Completions of concurrent remote
calls for different instances therefore never overwrite each other: each
one patches only its own record against the current tuple, not a stale
copy captured before its await.

Listeners are called synchronously after each replace with the new
snapshot; the persistence queue and telemetry monitor subscribe here.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
from typing import Any

from warden.core.errors import InstanceNotFoundError
from warden.core.logging import get_logger
from warden.core.models import Instance

_logger = get_logger("registry")

Snapshot = tuple[Instance, ...]
Listener = Callable[[Snapshot], None]


class InstanceRegistry:
    """Ordered collection of instances, newest first."""

    def __init__(self, instances: Iterable[Instance] = ()) -> None:
        self._instances: Snapshot = tuple(instances)
        self._listeners: list[Listener] = []

    # ─── Reads ─────────────────────────────────────────────────────

    def snapshot(self) -> Snapshot:
        return self._instances

    def get(self, instance_id: str) -> Instance | None:
        for instance in self._instances:
            if instance.id == instance_id:
                return instance
        return None

    def require(self, instance_id: str) -> Instance:
        instance = self.get(instance_id)
        if instance is None:
            raise InstanceNotFoundError(instance_id)
        return instance

    def find_by_target(self, target_id: str) -> Instance | None:
        for instance in self._instances:
            if instance.target_id == target_id:
                return instance
        return None

    def __len__(self) -> int:
        return len(self._instances)

    def __iter__(self) -> Iterator[Instance]:
        return iter(self._instances)

    # ─── Writes (all go through replace) ───────────────────────────

    def replace(self, fn: Callable[[Snapshot], Iterable[Instance]]) -> Snapshot:
        """Swap in ``fn(current)`` as the new registry contents."""
        self._instances = tuple(fn(self._instances))
        self._notify()
        return self._instances

    def update(self, instance_id: str, **changes: Any) -> Instance | None:
        """Patch one record by id. Returns the new record, or None if gone."""
        updated: list[Instance] = []

        def patch(current: Snapshot) -> list[Instance]:
            result = []
            for instance in current:
                if instance.id == instance_id:
                    instance = instance.model_copy(update=changes)
                    updated.append(instance)
                result.append(instance)
            return result

        self.replace(patch)
        if not updated:
            _logger.debug("registry.update_missing", instance_id=instance_id)
            return None
        return updated[0]

    def add(self, instance: Instance) -> None:
        """Insert a new record at the front."""
        self.replace(lambda current: (instance, *current))

    def remove(self, instance_id: str) -> bool:
        before = len(self._instances)
        self.replace(lambda current: [i for i in current if i.id != instance_id])
        return len(self._instances) < before

    def reset(self, instances: Iterable[Instance], *, notify: bool = False) -> None:
        """Load a fresh set of records, e.g. from storage at session start."""
        self._instances = tuple(instances)
        if notify:
            self._notify()

    # ─── Listeners ─────────────────────────────────────────────────

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        snapshot = self._instances
        for listener in list(self._listeners):
            listener(snapshot)


__all__ = ["InstanceRegistry", "Listener", "Snapshot"]
