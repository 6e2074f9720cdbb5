"""Tests for the instance registry and the activity log."""

from __future__ import annotations

import pytest

from warden.core.errors import InstanceNotFoundError
from warden.core.models import InstanceStatus, LogEntry
from warden.lifecycle.activity import ActivityLog
from warden.lifecycle.registry import InstanceRegistry

from tests.helpers import make_instance


class TestInstanceRegistry:
    """Tests for whole-snapshot replacement semantics."""

    def test_add_prepends(self):
        registry = InstanceRegistry()
        first = make_instance(target_id="1")
        second = make_instance(target_id="2")
        registry.add(first)
        registry.add(second)
        assert [i.target_id for i in registry] == ["2", "1"]
        assert registry.find_by_target("1") is first

    def test_update_returns_new_record(self):
        instance = make_instance()
        registry = InstanceRegistry([instance])
        updated = registry.update(instance.id, status=InstanceStatus.STOPPED)
        assert updated is not None
        assert updated.status is InstanceStatus.STOPPED
        assert instance.status is InstanceStatus.ACTIVE
        assert registry.get(instance.id) is updated

    def test_update_missing_is_none(self):
        registry = InstanceRegistry([make_instance()])
        before = registry.snapshot()
        assert registry.update("nope", status=InstanceStatus.ERROR) is None
        assert registry.snapshot() == before

    def test_update_only_touches_target_record(self):
        a = make_instance(target_id="1")
        b = make_instance(target_id="2")
        registry = InstanceRegistry([a, b])
        registry.update(a.id, last_known_rate="10")
        registry.update(b.id, status=InstanceStatus.ERROR)
        assert registry.require(a.id).last_known_rate == "10"
        assert registry.require(a.id).status is InstanceStatus.ACTIVE
        assert registry.require(b.id).status is InstanceStatus.ERROR

    def test_remove(self):
        instance = make_instance()
        registry = InstanceRegistry([instance])
        assert registry.remove(instance.id)
        assert not registry.remove(instance.id)
        assert len(registry) == 0

    def test_require_raises(self):
        with pytest.raises(InstanceNotFoundError, match="Instance not found: x"):
            InstanceRegistry().require("x")

    def test_listeners_receive_snapshots(self):
        registry = InstanceRegistry()
        seen: list[int] = []
        unsubscribe = registry.subscribe(lambda snap: seen.append(len(snap)))
        registry.add(make_instance(target_id="1"))
        registry.add(make_instance(target_id="2"))
        unsubscribe()
        registry.add(make_instance(target_id="3"))
        assert seen == [1, 2]

    def test_reset_is_silent_by_default(self):
        registry = InstanceRegistry()
        seen: list[int] = []
        registry.subscribe(lambda snap: seen.append(len(snap)))
        registry.reset([make_instance()])
        assert seen == []
        registry.reset([], notify=True)
        assert seen == [0]


class TestActivityLog:
    """Tests for the user-facing activity log."""

    def test_typed_helpers(self):
        log = ActivityLog(clock=lambda: "12:00:00")
        log.info("a")
        log.success("b")
        log.warning("c")
        log.error("d")
        assert [e.type for e in log.entries] == ["info", "success", "warning", "error"]
        assert log.entries[0] == LogEntry(timestamp="12:00:00", message="a", type="info")

    def test_bounded(self):
        log = ActivityLog(max_entries=3)
        for i in range(5):
            log.info(str(i))
        assert [e.message for e in log.entries] == ["2", "3", "4"]

    def test_tail(self):
        log = ActivityLog()
        for i in range(4):
            log.info(str(i))
        assert [e.message for e in log.tail(2)] == ["2", "3"]
        assert log.tail(0) == []

    def test_listeners_called_on_append_not_restore(self):
        log = ActivityLog()
        calls: list[int] = []
        log.subscribe(lambda entries: calls.append(len(entries)))
        log.restore([LogEntry(timestamp="t", message="old", type="info")])
        log.info("new")
        assert calls == [2]
        assert len(log) == 2
