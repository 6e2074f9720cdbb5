"""Tests for Warden CLI commands.

Job-control and telemetry calls are patched at the client level; the
session store is the JSON directory from ``sample_yaml_config``.
"""

import json
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
from typer.testing import CliRunner

from warden import __version__
from warden.cli import app
from warden.core.errors import RemoteError
from warden.lifecycle.client import JobControlClient
from warden.telemetry.extractor import ProfileSnapshot, ProgressSnapshot
from warden.telemetry.fetch import FetchAttempt, FetchReport, TelemetryFetcher, TelemetryKind

runner = CliRunner()


def _stored(config_path: Path) -> dict:
    session_file = config_path.parent / "sessions" / "alice.json"
    return json.loads(session_file.read_text())


def _invoke(config: Path, *args: str):
    return runner.invoke(app, [*args, "--config", str(config)])


@pytest.fixture
def accepted():
    with patch.object(
        JobControlClient, "invoke", AsyncMock(return_value="Bot accepted"),
    ) as mock:
        yield mock


class TestVersion:
    def test_version_flag(self) -> None:
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"Warden v{__version__}" in result.stdout


class TestLaunch:
    """Tests for the launch command."""

    def test_launch_persists_instance(self, sample_yaml_config: Path, accepted: AsyncMock) -> None:
        result = _invoke(sample_yaml_config, "launch", "123")

        assert result.exit_code == 0, result.output
        assert "OK" in result.stdout
        accepted.assert_awaited_once_with("https://x/add?u=123", action="start")
        [record] = _stored(sample_yaml_config)["instances"]
        assert record["targetUid"] == "123"
        assert record["status"] == "active"
        assert record["botName"] == "alpha"

    def test_launch_failure_exits_nonzero(self, sample_yaml_config: Path) -> None:
        with patch.object(
            JobControlClient, "invoke", AsyncMock(side_effect=RemoteError(500, "boom")),
        ):
            result = _invoke(sample_yaml_config, "launch", "123")
        assert result.exit_code == 1
        assert "Failed" in result.stdout
        assert _stored(sample_yaml_config).get("instances", []) == []

    def test_duplicate_launch_is_skipped(
        self, sample_yaml_config: Path, accepted: AsyncMock,
    ) -> None:
        _invoke(sample_yaml_config, "launch", "123")
        result = _invoke(sample_yaml_config, "launch", "123")
        assert result.exit_code == 0
        assert "Skipped" in result.stdout
        assert len(_stored(sample_yaml_config)["instances"]) == 1


class TestTransitions:
    def test_stop_by_target(self, sample_yaml_config: Path, accepted: AsyncMock) -> None:
        _invoke(sample_yaml_config, "launch", "123")
        result = _invoke(sample_yaml_config, "stop", "123")
        assert result.exit_code == 0, result.output
        assert _stored(sample_yaml_config)["instances"][0]["status"] == "stopped"

    def test_delete_removes(self, sample_yaml_config: Path, accepted: AsyncMock) -> None:
        _invoke(sample_yaml_config, "launch", "123")
        result = _invoke(sample_yaml_config, "delete", "123")
        assert result.exit_code == 0
        assert _stored(sample_yaml_config).get("instances", []) == []

    def test_unknown_instance(self, sample_yaml_config: Path) -> None:
        result = _invoke(sample_yaml_config, "stop", "nope")
        assert result.exit_code == 1
        assert "Instance not found" in result.stdout

    def test_safe_mode_toggle(self, sample_yaml_config: Path, accepted: AsyncMock) -> None:
        _invoke(sample_yaml_config, "launch", "123")

        result = _invoke(sample_yaml_config, "safe-mode", "123", "on")
        assert result.exit_code == 0, result.output
        record = _stored(sample_yaml_config)["instances"][0]
        assert record["safeMode"] is True
        assert "safeModeStartTime" in record

        _invoke(sample_yaml_config, "safe-mode", "123", "off")
        record = _stored(sample_yaml_config)["instances"][0]
        assert record["safeMode"] is False
        assert "safeModeStartTime" not in record

    def test_safe_mode_bad_state(self, sample_yaml_config: Path) -> None:
        result = _invoke(sample_yaml_config, "safe-mode", "123", "maybe")
        assert result.exit_code != 0


class TestStatusCommands:
    def test_list_empty(self, sample_yaml_config: Path) -> None:
        result = _invoke(sample_yaml_config, "list")
        assert result.exit_code == 0
        assert "No instances" in result.stdout

    def test_list_json(self, sample_yaml_config: Path, accepted: AsyncMock) -> None:
        _invoke(sample_yaml_config, "launch", "123")
        result = _invoke(sample_yaml_config, "list", "--json")
        assert result.exit_code == 0
        [record] = json.loads(result.stdout)
        assert record["targetUid"] == "123"

    def test_logs(self, sample_yaml_config: Path, accepted: AsyncMock) -> None:
        _invoke(sample_yaml_config, "launch", "123")
        result = _invoke(sample_yaml_config, "logs", "-n", "5")
        assert result.exit_code == 0
        assert "Bot accepted" in result.stdout

    def test_invalid_config_file(self, tmp_path: Path) -> None:
        bad = tmp_path / "bad.yaml"
        bad.write_text("user:\n  max_instances: 0\n")
        result = _invoke(bad, "list")
        assert result.exit_code == 1
        assert "Error loading config" in result.stdout


class TestGlobalOptions:
    def test_bad_log_level(self) -> None:
        result = runner.invoke(app, ["--log-level", "LOUD", "list"])
        assert result.exit_code != 0

    def test_both_format_without_file(self, sample_yaml_config: Path) -> None:
        result = runner.invoke(
            app, ["--log-format", "both", "list", "--config", str(sample_yaml_config)],
        )
        assert result.exit_code == 1
        assert "Logging configuration error" in result.stdout


class TestProbe:
    def test_probe_prints_attempts(self, sample_yaml_config: Path) -> None:
        def fake_read(kind: TelemetryKind, target: str) -> FetchReport:
            report = FetchReport(kind=kind, target_id=target)
            report.attempts.append(FetchAttempt("direct", "https://t", error="API Error: 503"))
            report.attempts.append(FetchAttempt("corsproxy", "https://p"))
            if kind is TelemetryKind.PROGRESS:
                report.result = ProgressSnapshot(level=7, current=1200)
            else:
                report.result = ProfileSnapshot(banner="https://cdn.test/b.png")
            return report

        with patch.object(TelemetryFetcher, "read", AsyncMock(side_effect=fake_read)):
            result = _invoke(sample_yaml_config, "probe", "123")

        assert result.exit_code == 0, result.output
        assert "corsproxy" in result.stdout
        assert "level=7" in result.stdout
        assert "1,200" in result.stdout
        assert "https://cdn.test/b.png" in result.stdout

    def test_verbose_probe_shows_urls(self, sample_yaml_config: Path) -> None:
        def one_attempt(kind: TelemetryKind, target: str) -> FetchReport:
            report = FetchReport(kind=kind, target_id=target)
            report.attempts.append(FetchAttempt("direct", f"https://stats.test/{kind.value}"))
            if kind is TelemetryKind.PROGRESS:
                report.result = ProgressSnapshot(level=1)
            return report

        with patch.object(TelemetryFetcher, "read", AsyncMock(side_effect=one_attempt)):
            result = runner.invoke(
                app, ["--verbose", "probe", "123", "--config", str(sample_yaml_config)],
            )
        assert result.exit_code == 0, result.output
        assert "https://stats.test/progress" in result.stdout

    def test_probe_no_data(self, sample_yaml_config: Path) -> None:
        def empty(kind: TelemetryKind, target: str) -> FetchReport:
            return FetchReport(kind=kind, target_id=target)

        with patch.object(TelemetryFetcher, "read", AsyncMock(side_effect=empty)):
            result = _invoke(sample_yaml_config, "probe", "123")
        assert result.exit_code == 1
        assert "no data" in result.stdout


class TestWatch:
    def test_watch_runs_for_duration(self, sample_yaml_config: Path) -> None:
        result = _invoke(
            sample_yaml_config, "watch", "--duration", "0.1", "--refresh", "0.5",
        )
        assert result.exit_code == 0, result.output
        assert "Instances" in result.stdout
