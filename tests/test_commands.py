"""Tests for the run, estimate, prune and status commands."""

import argparse
import json
import os
from datetime import datetime

import pytest

from host_backup.cli.estimate import execute_estimate
from host_backup.cli.prune import execute_prune
from host_backup.cli.run import apply_run_flags, execute_run
from host_backup.cli.status import execute_status
from host_backup.config import Config
from host_backup.core import capacity, marker
from host_backup.core.capacity import GIB
from host_backup.core.lock import RunLock


def make_args(**kwargs):
    defaults = {
        "config": None,
        "destination": None,
        "non_interactive": False,
        "verbose": False,
        "quiet": False,
        "debug": False,
    }
    defaults.update(kwargs)
    return argparse.Namespace(**defaults)


@pytest.fixture
def run_config(tmp_path, source_tree):
    """A config file for an unattended run against ``source_tree``."""
    path = tmp_path / "host-backup.toml"
    path.write_text(
        f"""
[backup]
interactive = false
allow_unmounted = true
require_root = false
compress = false

[paths]
source = "{source_tree}"
excludes = ["/proc"]
repository_sources = ["{source_tree}/etc/apt/sources.list"]
config_files = ["{source_tree}/etc/fstab"]
"""
    )
    return path


def json_part(out):
    """The JSON document, without any log lines printed before it."""
    return out[out.index("{\n"):]


def old_backup(mount, name="backup-2020-01-01-000000"):
    path = mount / name
    path.mkdir()
    os.utime(path, (0, 0))
    return path


class TestApplyRunFlags:
    def test_flags_override_config(self):
        config = Config()
        args = argparse.Namespace(
            backup_type="incremental", no_compress=True, no_verify=True,
            email="ops@example.com", allow_unmounted=True,
        )
        apply_run_flags(config, args)
        assert config.backup.incremental
        assert config.backup.compress is False
        assert config.backup.verify is False
        assert config.backup.email_report == "ops@example.com"
        assert config.backup.allow_unmounted is True

    def test_absent_flags_keep_config(self):
        config = Config()
        apply_run_flags(config, argparse.Namespace())
        assert config == Config()


class TestRunCommand:
    def test_returns_rsync_exit_code(self, run_config, mount, fake_commands, fake_rsync):
        fake_rsync.exit_code = 24
        args = make_args(config=str(run_config), destination=str(mount), no_progress=True)
        assert execute_run(args) == 24

    def test_abort_returns_one(self, run_config, tmp_path, fake_commands, fake_rsync):
        args = make_args(config=str(run_config), destination=str(tmp_path / "absent"))
        assert execute_run(args) == 1
        assert fake_rsync.commands == []

    def test_config_error_returns_one(self, tmp_path, mount, fake_rsync):
        bad = tmp_path / "bad.toml"
        bad.write_text("[backup]\nretention_days = -1\n")
        assert execute_run(make_args(config=str(bad), destination=str(mount))) == 1
        assert fake_rsync.commands == []

    def test_locked_destination(self, run_config, mount, fake_commands, fake_rsync):
        with RunLock(mount):
            args = make_args(config=str(run_config), destination=str(mount))
            assert execute_run(args) == 1
        assert fake_rsync.commands == []

    def test_incremental_flag(self, run_config, mount, fake_commands, fake_rsync):
        marker.write_marker(
            marker.marker_path(mount), datetime(2024, 1, 1)
        )
        args = make_args(
            config=str(run_config), destination=str(mount), backup_type="incremental"
        )
        assert execute_run(args) == 0
        assert fake_commands.find_call("find") is not None


class TestEstimateCommand:
    @pytest.fixture
    def free(self, monkeypatch):
        state = {"free": 500 * GIB}
        monkeypatch.setattr(capacity, "available_space", lambda path: state["free"])
        return state

    def test_unmounted_refused_unattended(self, mount, fake_commands, free):
        args = make_args(destination=str(mount), non_interactive=True, json=False)
        assert execute_estimate(args) == 1

    def test_json_output(self, run_config, mount, fake_commands, free, capsys):
        fake_commands.responses["du"] = (0, f"{40 * GIB}\t/\n")
        args = make_args(config=str(run_config), destination=str(mount), json=True)

        assert execute_estimate(args) == 0
        data = json.loads(json_part(capsys.readouterr().out))
        assert data["source_estimate_bytes"] == 40 * GIB
        assert data["required_bytes"] == 40 * GIB
        assert data["low_space"] is False

    def test_low_space(self, run_config, mount, fake_commands, free, capsys):
        free["free"] = 1 * GIB
        args = make_args(config=str(run_config), destination=str(mount), json=True)
        assert execute_estimate(args) == 2
        assert json.loads(json_part(capsys.readouterr().out))["low_space"] is True


class TestPruneCommand:
    def test_removes_old_backups(self, mount):
        old = old_backup(mount)
        recent = mount / "backup-2099-01-01-000000"
        recent.mkdir()

        assert execute_prune(make_args(destination=str(mount), dry_run=False, days=None)) == 0
        assert not old.exists()
        assert recent.exists()

    def test_dry_run(self, mount):
        old = old_backup(mount)
        assert execute_prune(make_args(destination=str(mount), dry_run=True, days=None)) == 0
        assert old.exists()

    def test_days_override(self, mount, monkeypatch):
        monkeypatch.setenv("RETENTION_DAYS", "100000")
        old = old_backup(mount)
        assert execute_prune(make_args(destination=str(mount), dry_run=False, days=1)) == 0
        assert not old.exists()

    def test_missing_destination(self, tmp_path):
        args = make_args(destination=str(tmp_path / "absent"), dry_run=False, days=None)
        assert execute_prune(args) == 1

    def test_refused_while_backup_runs(self, mount):
        old = old_backup(mount)
        with RunLock(mount):
            args = make_args(destination=str(mount), dry_run=False, days=None)
            assert execute_prune(args) == 1
        assert old.exists()


class TestStatusCommand:
    def test_lists_backups_and_marker(self, mount, capsys):
        old_backup(mount)
        marker.write_marker(
            marker.marker_path(mount), datetime(2024, 5, 1, 3, 15)
        )
        logs = mount / "logs"
        logs.mkdir()
        (logs / "backup-log-2024-05-01-031500.log").write_text("[INFO] last line\n")

        assert execute_status(make_args(destination=str(mount))) == 0
        out = capsys.readouterr().out
        assert "backup-2020-01-01-000000" in out
        assert "Incremental marker: 2024-05-01 03:15:00" in out
        assert "Run lock: free" in out
        assert "[INFO] last line" in out

    def test_lock_held_by_running_backup(self, mount, capsys):
        with RunLock(mount):
            assert execute_status(make_args(destination=str(mount))) == 0
        assert "Run lock: held (pid" in capsys.readouterr().out

    def test_leftover_owner_file_reported_as_free(self, mount, capsys):
        RunLock(mount).owner_path.write_text(
            json.dumps({"pid": 999999, "host": "gone", "started": 0})
        )
        assert execute_status(make_args(destination=str(mount))) == 0
        out = capsys.readouterr().out
        assert "Run lock: free" in out
        assert "Leftover owner file" in out

    def test_empty_destination(self, mount, capsys):
        assert execute_status(make_args(destination=str(mount))) == 0
        out = capsys.readouterr().out
        assert "No backups found." in out
        assert "Incremental marker: not set" in out

    def test_missing_destination(self, tmp_path):
        assert execute_status(make_args(destination=str(tmp_path / "absent"))) == 1
