"""Tests for session stores and load-time recovery."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from warden.core.config import PersistenceConfig
from warden.core.models import InstanceStatus
from warden.persistence import (
    InMemorySessionStore,
    JsonSessionStore,
    SessionStore,
    SqliteSessionStore,
    create_store,
    recover_instances,
    recover_logs,
)

RECORD = {
    "id": "abc123def",
    "botName": "alpha",
    "targetUid": "123",
    "status": "active",
    "startedAt": "10:00:00",
    "startedTimestamp": 1000,
}
LOG = {"id": "l1", "timestamp": "10:00:01", "message": "[SUCCESS] ok", "type": "success"}


# ─── Stores ───────────────────────────────────────────────────────────


@pytest.fixture(params=["json", "sqlite", "memory"])
def store(request: pytest.FixtureRequest, tmp_path: Path) -> SessionStore:
    if request.param == "json":
        return JsonSessionStore(tmp_path / "sessions")
    if request.param == "sqlite":
        return SqliteSessionStore(tmp_path / "sessions.db")
    return InMemorySessionStore()


class TestSessionStores:
    """Behaviour shared by every backend."""

    @pytest.mark.asyncio
    async def test_empty_session(self, store: SessionStore):
        data = await store.load_session("alice")
        assert data.instances == []
        assert data.logs == []

    @pytest.mark.asyncio
    async def test_save_and_load(self, store: SessionStore):
        await store.save_instances("alice", [RECORD])
        await store.save_logs("alice", [LOG])
        data = await store.load_session("alice")
        assert data.instances == [RECORD]
        assert data.logs == [LOG]
        await store.close()

    @pytest.mark.asyncio
    async def test_users_are_isolated(self, store: SessionStore):
        await store.save_instances("alice", [RECORD])
        assert (await store.load_session("bob")).instances == []

    @pytest.mark.asyncio
    async def test_save_replaces(self, store: SessionStore):
        await store.save_instances("alice", [RECORD])
        await store.save_instances("alice", [])
        assert (await store.load_session("alice")).instances == []


class TestJsonSessionStore:
    @pytest.mark.asyncio
    async def test_one_file_per_user(self, tmp_path: Path):
        store = JsonSessionStore(tmp_path)
        await store.save_instances("a/b", [RECORD])
        path = tmp_path / "a_b.json"
        assert path.exists()
        data = json.loads(path.read_text())
        assert data["instances"] == [RECORD]
        assert "updated_at" in data
        assert not (tmp_path / "a_b.json.tmp").exists()

    @pytest.mark.asyncio
    async def test_instances_and_logs_share_file(self, tmp_path: Path):
        store = JsonSessionStore(tmp_path)
        await store.save_instances("alice", [RECORD])
        await store.save_logs("alice", [LOG])
        data = json.loads((tmp_path / "alice.json").read_text())
        assert data["instances"] == [RECORD]
        assert data["logs"] == [LOG]

    @pytest.mark.asyncio
    async def test_corrupt_file_reads_empty(self, tmp_path: Path):
        (tmp_path / "alice.json").write_text("{not json")
        data = await JsonSessionStore(tmp_path).load_session("alice")
        assert data.instances == []

    @pytest.mark.asyncio
    async def test_keyed_mapping_passed_through(self, tmp_path: Path):
        (tmp_path / "alice.json").write_text(json.dumps({"instances": {"k1": RECORD}}))
        data = await JsonSessionStore(tmp_path).load_session("alice")
        assert data.instances == {"k1": RECORD}


class TestSqliteSessionStore:
    @pytest.mark.asyncio
    async def test_reopen_keeps_data(self, tmp_path: Path):
        path = tmp_path / "db" / "sessions.db"
        await SqliteSessionStore(path).save_instances("alice", [RECORD])
        data = await SqliteSessionStore(path).load_session("alice")
        assert data.instances == [RECORD]


class TestInMemorySessionStore:
    @pytest.mark.asyncio
    async def test_copies_records(self):
        store = InMemorySessionStore()
        records = [dict(RECORD)]
        await store.save_instances("alice", records)
        records[0]["status"] = "error"
        loaded = await store.load_session("alice")
        assert loaded.instances[0]["status"] == "active"
        assert store.saves == 1


class TestCreateStore:
    def test_backends(self, tmp_path: Path):
        assert isinstance(create_store(PersistenceConfig(backend="memory")), InMemorySessionStore)
        json_store = create_store(PersistenceConfig(backend="json", path=tmp_path / "j"))
        assert isinstance(json_store, JsonSessionStore)

    def test_sqlite_directory_gets_default_file(self, tmp_path: Path):
        store = create_store(PersistenceConfig(backend="sqlite", path=tmp_path))
        assert isinstance(store, SqliteSessionStore)
        assert store.db_path == tmp_path / "sessions.db"

    def test_sqlite_file_path_kept(self, tmp_path: Path):
        store = create_store(PersistenceConfig(backend="sqlite", path=tmp_path / "w.sqlite"))
        assert isinstance(store, SqliteSessionStore)
        assert store.db_path == tmp_path / "w.sqlite"


# ─── Recovery ─────────────────────────────────────────────────────────


class TestRecoverInstances:
    """Tests for load-time repair of stored records."""

    def test_valid_record_unchanged(self):
        [instance] = recover_instances([RECORD], now=9_999)
        assert instance.to_record() == {**RECORD, "safeMode": False}

    def test_transient_status_becomes_active(self):
        records = [
            {**RECORD, "id": "a", "status": "removing"},
            {**RECORD, "id": "b", "targetUid": "2", "status": "restarting"},
        ]
        recovered = recover_instances(records, now=9_999)
        assert [i.status for i in recovered] == [InstanceStatus.ACTIVE] * 2

    def test_active_without_timestamp_is_stamped(self):
        record = {k: v for k, v in RECORD.items() if k != "startedTimestamp"}
        [instance] = recover_instances([record], now=9_999)
        assert instance.started_timestamp == 9_999

    def test_missing_target_dropped(self):
        record = {k: v for k, v in RECORD.items() if k != "targetUid"}
        assert recover_instances([record, "junk", None]) == []

    def test_legacy_target_key_accepted(self):
        record = {k: v for k, v in RECORD.items() if k != "targetUid"}
        record["target_id"] = 77
        [instance] = recover_instances([record], now=1)
        assert instance.target_id == "77"

    def test_unknown_status_recovers_stopped(self):
        [instance] = recover_instances([{**RECORD, "status": "zombie"}], now=1)
        assert instance.status is InstanceStatus.STOPPED

    def test_keyed_mapping(self):
        recovered = recover_instances({"k1": RECORD}, now=1)
        assert [i.id for i in recovered] == ["abc123def"]

    def test_safe_mode_without_start_time_is_stamped(self):
        [instance] = recover_instances([{**RECORD, "safeMode": True}], now=5_000)
        assert instance.safe_mode_start_time == 5_000
        assert instance.safe_mode_consistent()

    def test_stopped_record_loses_safe_mode(self):
        record = {**RECORD, "status": "stopped", "safeMode": True, "safeModeStartTime": 5}
        [instance] = recover_instances([record], now=1)
        assert not instance.safe_mode
        assert instance.safe_mode_start_time is None

    def test_stray_start_time_removed(self):
        [instance] = recover_instances([{**RECORD, "safeModeStartTime": 5}], now=1)
        assert instance.safe_mode_start_time is None

    def test_non_collection_is_empty(self):
        assert recover_instances("garbage") == []


class TestRecoverLogs:
    def test_keeps_valid_tail(self):
        logs = [{**LOG, "id": str(i), "message": str(i)} for i in range(5)]
        logs.insert(2, {"nope": True})
        entries = recover_logs(logs, tail=2)
        assert [e.message for e in entries] == ["3", "4"]

    def test_zero_tail(self):
        assert recover_logs([LOG], tail=0) == []
