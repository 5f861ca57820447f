"""Tests for the rsync transfer engine."""

from pathlib import Path

import pytest

from host_backup.core.transfer import (
    COMMAND_NOT_FOUND,
    TransferStatus,
    _prune_dirs,
    build_excludes,
    build_find_command,
    build_rsync_command,
    classify_exit_code,
    is_acceptable,
    run_transfer,
)


class TestExitCodes:
    """Tests for exit code classification."""

    @pytest.mark.parametrize(
        "code,status",
        [
            (0, TransferStatus.SUCCESS),
            (23, TransferStatus.PARTIAL),
            (24, TransferStatus.PARTIAL),
            (1, TransferStatus.FAILED),
            (11, TransferStatus.FAILED),
            (127, TransferStatus.FAILED),
        ],
    )
    def test_classify(self, code, status):
        assert classify_exit_code(code) is status

    def test_acceptable_set(self):
        assert [c for c in range(30) if is_acceptable(c)] == [0, 23, 24]


class TestCommandBuilding:
    """Tests for the rsync and find command lines."""

    def test_mount_point_always_excluded(self):
        assert build_excludes(["/proc"], Path("/mnt/backup/")) == ["/proc", "/mnt/backup"]

    def test_mount_point_not_duplicated(self):
        assert build_excludes(["/mnt/backup"], Path("/mnt/backup")) == ["/mnt/backup"]

    def test_rsync_full(self):
        cmd = build_rsync_command("/", Path("/mnt/b/backup-x/system"), ["/proc", "*.tmp"])
        assert cmd[0] == "rsync"
        assert "-a" in cmd and "--partial" in cmd
        assert "--exclude=/proc" in cmd and "--exclude=*.tmp" in cmd
        assert "--ignore-errors" in cmd
        assert not any(arg.startswith("--files-from") for arg in cmd)
        assert cmd[-2:] == ["/", "/mnt/b/backup-x/system/"]

    def test_rsync_incremental(self):
        cmd = build_rsync_command("/", Path("/d"), [], files_from=Path("/tmp/list"))
        assert "--files-from=/tmp/list" in cmd
        assert "--from0" in cmd

    def test_prune_dirs_only_plain_absolute_paths(self):
        excludes = ["/proc", "*.log", "/var/log/*", "/home/*/.cache", "relative"]
        assert _prune_dirs("/", excludes) == ["./proc"]

    def test_prune_dirs_below_source(self):
        assert _prune_dirs("/srv", ["/srv/cache", "/proc"]) == ["./cache"]

    def test_find_command_uses_marker(self):
        cmd = build_find_command("2024-05-01 03:15:00", ["./proc", "./sys"])
        assert cmd[:2] == ["find", "."]
        assert cmd[cmd.index("-newermt") + 1] == "2024-05-01 03:15:00"
        assert "-prune" in cmd
        assert cmd[-2:] == ["-printf", "%P\\0"]

    def test_find_command_without_prune(self):
        cmd = build_find_command("2024-05-01 03:15:00", [])
        assert "-prune" not in cmd


class TestRunTransfer:
    """Tests for run_transfer with rsync replaced."""

    def test_full_transfer(self, tmp_path, source_tree, fake_commands, fake_rsync):
        backup_dir = tmp_path / "mnt" / "backup-2024-05-01-031500"
        lines = []
        result = run_transfer(
            str(source_tree), backup_dir, tmp_path / "mnt", ["/proc"], on_output=lines.append
        )

        assert result.exit_code == 0
        assert result.newer_than is None
        assert (backup_dir / "system" / "etc" / "hostname").is_file()
        assert f"--exclude={tmp_path / 'mnt'}" in result.command
        assert lines == ["sent 1,000 bytes  received 35 bytes"]
        assert fake_commands.find_call("find") is None

    def test_exit_code_passed_through(self, tmp_path, source_tree, fake_commands, fake_rsync):
        fake_rsync.exit_code = 23
        result = run_transfer(str(source_tree), tmp_path / "b", tmp_path / "mnt", [])
        assert result.exit_code == 23
        assert result.status is TransferStatus.PARTIAL

    def test_incremental_uses_file_list(
        self, tmp_path, source_tree, fake_commands, fake_rsync
    ):
        fake_commands.find_output = b"etc/hostname\0"
        result = run_transfer(
            str(source_tree),
            tmp_path / "b",
            tmp_path / "mnt",
            ["/proc"],
            newer_than="2024-05-01 03:15:00",
        )

        find = fake_commands.find_call("find")
        assert find[find.index("-newermt") + 1] == "2024-05-01 03:15:00"
        assert result.newer_than == "2024-05-01 03:15:00"
        files_from = [a for a in result.command if a.startswith("--files-from=")]
        assert len(files_from) == 1
        # The temporary list is gone once rsync finished
        assert not Path(files_from[0].split("=", 1)[1]).exists()

    def test_incremental_without_find_falls_back(
        self, tmp_path, source_tree, fake_commands, fake_rsync
    ):
        fake_commands.missing.add("find")
        result = run_transfer(
            str(source_tree), tmp_path / "b", tmp_path / "mnt", [],
            newer_than="2024-05-01 03:15:00",
        )
        assert result.newer_than is None
        assert not any(a.startswith("--files-from") for a in result.command)

    def test_rsync_missing(self, tmp_path, source_tree, fake_commands, monkeypatch):
        def missing(command, on_line, **kwargs):
            raise FileNotFoundError(command[0])

        monkeypatch.setattr("host_backup.__util__.stream_subprocess", missing)
        result = run_transfer(str(source_tree), tmp_path / "b", tmp_path / "mnt", [])
        assert result.exit_code == COMMAND_NOT_FOUND
        assert result.status is TransferStatus.FAILED
