"""Tests for meetingsync CLI

Uses Click's test runner for command testing. Every test points --data-dir
at a temporary directory and syncs through the filesystem provider.
"""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner


def _invoke(base_path, *args, input=None):
    from meetingsync.cli import cli

    runner = CliRunner()
    return runner.invoke(cli, ["--data-dir", str(base_path), *args], obj={}, input=input)


def _write_meetings(base_path: Path, meetings):
    """Put meetings into the device's state file as the app would."""
    state_path = base_path / "state.json"
    state = json.loads(state_path.read_text()) if state_path.exists() else {}
    state["meetingflow_meetings"] = meetings
    state_path.write_text(json.dumps(state))


def _read_meetings(base_path: Path):
    state = json.loads((base_path / "state.json").read_text())
    return state.get("meetingflow_meetings", [])


@pytest.fixture
def device_dirs(tmp_path):
    """Two device data directories and one shared remote folder."""
    return tmp_path / "device_a", tmp_path / "device_b", tmp_path / "remote"


class TestCLIBasics:
    """Tests for the top-level group."""

    def test_version(self):
        """--version prints the program name and version."""
        from meetingsync.cli import cli, __version__

        result = CliRunner().invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help_lists_commands(self):
        """--help lists the sync commands."""
        from meetingsync.cli import cli

        result = CliRunner().invoke(cli, ["--help"])

        assert result.exit_code == 0
        for command in ("init", "configure", "status", "push", "pull", "sync", "reset", "config"):
            assert command in result.output

    def test_verbose_and_quiet_exclusive(self, tmp_path):
        """--verbose and --quiet cannot be combined."""
        result = _invoke(tmp_path, "-v", "-q", "status")

        assert result.exit_code != 0
        assert "mutually exclusive" in result.output


class TestCLIInit:
    """Tests for 'meetingsync init'."""

    def test_init_creates_config_and_device(self, tmp_path):
        """init writes config.yaml and a device identity."""
        base_path = tmp_path / "ms"

        result = _invoke(base_path, "init")

        assert result.exit_code == 0
        assert "Initialized meetingsync" in result.output
        assert "Device:" in result.output
        assert (base_path / "config.yaml").exists()
        state = json.loads((base_path / "state.json").read_text())
        assert state["sync_device_id"]

    def test_init_keeps_existing_config(self, tmp_path):
        """init does not overwrite an existing config.yaml."""
        tmp_path.joinpath("config.yaml").write_text("sync:\n  interval_ms: 1234\n")

        result = _invoke(tmp_path, "init")

        assert result.exit_code == 0
        assert "1234" in tmp_path.joinpath("config.yaml").read_text()


class TestCLIConfigure:
    """Tests for 'meetingsync configure'."""

    def test_configure_filesystem(self, device_dirs):
        """A writable folder passes the connection test."""
        device_a, _, remote = device_dirs

        result = _invoke(device_a, "configure", "filesystem", "-o", f"folder={remote}", "--no-auto-sync")

        assert result.exit_code == 0
        assert "configured and connection verified" in result.output
        state = json.loads((device_a / "state.json").read_text())
        assert state["sync_config"]["provider"] == "filesystem"
        assert state["sync_config"]["enabled"] is True
        assert state["sync_config"]["autoSync"] is False

    def test_configure_missing_option(self, tmp_path):
        """A provider without required settings exits with an error."""
        result = _invoke(tmp_path, "configure", "filesystem")

        assert result.exit_code == 1
        assert "folder" in result.output

    def test_configure_bad_option_format(self, tmp_path):
        """Options must be KEY=VALUE."""
        result = _invoke(tmp_path, "configure", "filesystem", "-o", "folder")

        assert result.exit_code != 0
        assert "key=value" in result.output

    def test_configure_unknown_provider(self, tmp_path):
        """Providers outside the known set are rejected by click."""
        result = _invoke(tmp_path, "configure", "ftp")

        assert result.exit_code != 0


class TestCLISyncCommands:
    """Tests for push, pull, sync and status."""

    def test_push_before_configure(self, tmp_path):
        """Pushing without a provider fails."""
        result = _invoke(tmp_path, "push")

        assert result.exit_code == 1
        assert "not configured" in result.output

    def test_push_then_pull_on_second_device(self, device_dirs):
        """Meetings pushed from one device arrive on another."""
        device_a, device_b, remote = device_dirs
        for device in (device_a, device_b):
            assert _invoke(device, "configure", "filesystem", "-o", f"folder={remote}", "--no-auto-sync").exit_code == 0

        _write_meetings(device_a, [{"id": "m1", "title": "Kickoff", "lastSaved": "2025-01-01T10:00:00.000Z"}])
        push = _invoke(device_a, "push")
        assert push.exit_code == 0
        assert "Pushed local data" in push.output
        assert (remote / "app_data.json").exists()

        pull = _invoke(device_b, "pull")
        assert pull.exit_code == 0
        assert [m["id"] for m in _read_meetings(device_b)] == ["m1"]

    def test_pull_without_remote_data(self, device_dirs):
        """Pulling from an empty folder explains what to do."""
        device_a, _, remote = device_dirs
        _invoke(device_a, "configure", "filesystem", "-o", f"folder={remote}", "--no-auto-sync")

        result = _invoke(device_a, "pull")

        assert result.exit_code == 0
        assert "No remote data yet" in result.output

    def test_sync_merges_both_ways(self, device_dirs):
        """sync on each device converges both to the union."""
        device_a, device_b, remote = device_dirs
        for device in (device_a, device_b):
            _invoke(device, "configure", "filesystem", "-o", f"folder={remote}", "--no-auto-sync")

        _write_meetings(device_a, [{"id": "m1", "lastSaved": "2025-01-01T10:00:00.000Z"}])
        _write_meetings(device_b, [{"id": "m2", "lastSaved": "2025-01-02T10:00:00.000Z"}])

        assert _invoke(device_a, "sync").exit_code == 0
        assert _invoke(device_b, "sync").exit_code == 0
        assert _invoke(device_a, "sync").exit_code == 0

        for device in (device_a, device_b):
            assert sorted(m["id"] for m in _read_meetings(device)) == ["m1", "m2"]

    def test_corrupt_remote_reported(self, device_dirs):
        """A tampered remote snapshot fails the pull with an integrity error."""
        device_a, device_b, remote = device_dirs
        for device in (device_a, device_b):
            _invoke(device, "configure", "filesystem", "-o", f"folder={remote}", "--no-auto-sync")
        _write_meetings(device_a, [{"id": "m1"}])
        _invoke(device_a, "push")

        snapshot_path = remote / "app_data.json"
        snapshot = json.loads(snapshot_path.read_text())
        snapshot["data"]["meetings"].append({"id": "injected"})
        snapshot_path.write_text(json.dumps(snapshot))

        result = _invoke(device_b, "pull")

        assert result.exit_code == 1
        assert "checksum mismatch" in result.output
        assert _read_meetings(device_b) == []

    def test_status_json(self, device_dirs):
        """status --json reports provider and last sync."""
        device_a, _, remote = device_dirs
        _invoke(device_a, "configure", "filesystem", "-o", f"folder={remote}", "--no-auto-sync")
        _write_meetings(device_a, [{"id": "m1"}])
        _invoke(device_a, "push")

        result = _invoke(device_a, "-q", "status", "--json")

        assert result.exit_code == 0
        info = json.loads(result.output)
        assert info["provider"] == "filesystem"
        assert info["enabled"] is True
        assert info["lastSync"]

    def test_status_unconfigured(self, tmp_path):
        """status on a fresh directory says not configured."""
        result = _invoke(tmp_path, "status")

        assert result.exit_code == 0
        assert "Not configured" in result.output


class TestCLIReset:
    """Tests for 'meetingsync reset'."""

    def test_reset_clears_sync_state(self, device_dirs):
        """reset --yes removes config but keeps meetings."""
        device_a, _, remote = device_dirs
        _invoke(device_a, "configure", "filesystem", "-o", f"folder={remote}", "--no-auto-sync")
        _write_meetings(device_a, [{"id": "m1"}])

        result = _invoke(device_a, "reset", "--yes")

        assert result.exit_code == 0
        state = json.loads((device_a / "state.json").read_text())
        assert "sync_config" not in state
        assert [m["id"] for m in state["meetingflow_meetings"]] == ["m1"]

    def test_reset_cancelled(self, device_dirs):
        """Answering no leaves the config in place."""
        device_a, _, remote = device_dirs
        _invoke(device_a, "configure", "filesystem", "-o", f"folder={remote}", "--no-auto-sync")

        result = _invoke(device_a, "reset", input="n\n")

        assert "Reset cancelled" in result.output
        state = json.loads((device_a / "state.json").read_text())
        assert "sync_config" in state


class TestCLIConfig:
    """Tests for 'meetingsync config' subcommands."""

    def test_set_and_get(self, tmp_path):
        """config set persists a typed value that config get prints."""
        result = _invoke(tmp_path, "config", "set", "sync.interval_ms", "60000")
        assert result.exit_code == 0
        assert "Set sync.interval_ms = 60000" in result.output

        result = _invoke(tmp_path, "config", "get", "sync.interval_ms")
        assert result.exit_code == 0
        assert result.output.strip() == "60000"

    def test_get_missing_key(self, tmp_path):
        """Unknown keys exit with status 1."""
        result = _invoke(tmp_path, "config", "get", "sync.missing")

        assert result.exit_code == 1
        assert "not found" in result.output

    def test_show(self, tmp_path):
        """config show prints the merged configuration."""
        result = _invoke(tmp_path, "config", "show")

        assert result.exit_code == 0
        assert "interval_ms" in result.output
        assert "conflict_window_ms" in result.output
