"""Transfer engine: the rsync call and the meaning of its exit code.

rsync does all the copying. This module builds its command line, selects
changed files for incremental runs (``find -newermt`` feeding
``--files-from``), streams its output and classifies the result.
"""

import contextlib
import logging
import os
import subprocess
import tempfile
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable

from .. import __util__

logger = logging.getLogger(__name__)

# 0 = success, 23 = partial transfer due to error, 24 = source files vanished
ACCEPTABLE_EXIT_CODES = frozenset({0, 23, 24})
PARTIAL_EXIT_CODES = frozenset({23, 24})
COMMAND_NOT_FOUND = 127

RSYNC_OPTIONS = [
    "-a",
    "--partial",
    "--info=progress2",
    "--human-readable",
]

# Keep going past unreadable files, skip device and special files
RSYNC_SAFETY_OPTIONS = [
    "--no-specials",
    "--no-devices",
    "--ignore-errors",
]


class TransferStatus(Enum):
    """Classification of an rsync exit code."""

    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


def is_acceptable(exit_code: int) -> bool:
    """True for exit codes every consumer treats as a usable backup."""
    return exit_code in ACCEPTABLE_EXIT_CODES


def classify_exit_code(exit_code: int) -> TransferStatus:
    if exit_code == 0:
        return TransferStatus.SUCCESS
    if exit_code in PARTIAL_EXIT_CODES:
        return TransferStatus.PARTIAL
    return TransferStatus.FAILED


@dataclass
class TransferResult:
    """Outcome of one rsync run."""

    exit_code: int
    duration_seconds: float = 0.0
    newer_than: str | None = None
    command: list[str] = field(default_factory=list)

    @property
    def status(self) -> TransferStatus:
        return classify_exit_code(self.exit_code)

    @property
    def acceptable(self) -> bool:
        return is_acceptable(self.exit_code)


def build_excludes(excludes: list[str], mount_point: Path) -> list[str]:
    """The configured patterns plus the destination mount itself."""
    mount = str(mount_point).rstrip("/") or "/"
    return list(excludes) + ([mount] if mount not in excludes else [])


def build_rsync_command(
    source: str,
    destination: Path,
    excludes: list[str],
    files_from: Path | None = None,
) -> list[str]:
    """Command line syncing ``source`` into ``destination``."""
    cmd = ["rsync", *RSYNC_OPTIONS]
    if files_from is not None:
        cmd += [f"--files-from={files_from}", "--from0"]
    cmd += [f"--exclude={pattern}" for pattern in excludes]
    cmd += RSYNC_SAFETY_OPTIONS
    cmd += [source.rstrip("/") + "/", str(destination).rstrip("/") + "/"]
    return cmd


def _prune_dirs(source: str, excludes: list[str]) -> list[str]:
    """Excluded plain directories below ``source``, as find(1) paths."""
    root = source.rstrip("/")
    dirs = []
    for pattern in excludes:
        if not pattern.startswith("/") or any(c in pattern for c in "*?["):
            continue
        if root and not pattern.startswith(root + "/"):
            continue
        rel = pattern[len(root):].strip("/")
        if rel:
            dirs.append("./" + rel)
    return dirs


def build_find_command(newer_than: str, prune: list[str]) -> list[str]:
    """Command listing files and symlinks modified after ``newer_than``.

    Runs with the source as working directory and prints NUL separated
    paths relative to it.
    """
    cmd = ["find", "."]
    if prune:
        cmd.append("(")
        for i, path in enumerate(prune):
            if i:
                cmd.append("-o")
            cmd += ["-path", path]
        cmd += [")", "-prune", "-o"]
    cmd += [
        "(", "-type", "f", "-o", "-type", "l", ")",
        "-newermt", newer_than,
        "-printf", "%P\\0",
    ]
    return cmd


def _write_file_list(source: str, newer_than: str, excludes: list[str], out) -> bool:
    """Run find into ``out``. Returns False if find is unavailable."""
    cmd = build_find_command(newer_than, _prune_dirs(source, excludes))
    try:
        result = __util__.exec_subprocess(
            cmd, cwd=source, stdout=out, stderr=subprocess.PIPE
        )
    except FileNotFoundError:
        logger.error("find not available, falling back to a full transfer")
        return False
    if result.returncode != 0:
        # Unreadable directories make find exit 1 but the list is still usable
        logger.warning("find reported errors (exit code %d)", result.returncode)
    return True


def run_transfer(
    source: str,
    backup_dir: Path,
    mount_point: Path,
    excludes: list[str],
    newer_than: str | None = None,
    on_output: Callable[[str], None] | None = None,
) -> TransferResult:
    """Synchronise ``source`` into ``<backup_dir>/system/``.

    Args:
        source: Tree to back up (normally "/")
        backup_dir: This run's backup directory
        mount_point: Destination mount, always excluded
        excludes: rsync exclude patterns
        newer_than: Marker timestamp restricting the transfer, or None
        on_output: Receives each line of rsync output

    Returns:
        TransferResult with rsync's raw exit code
    """
    system_dir = Path(backup_dir) / "system"
    system_dir.mkdir(parents=True, exist_ok=True)
    excludes = build_excludes(excludes, mount_point)
    on_output = on_output or (lambda line: None)

    list_file = None
    start = time.monotonic()
    try:
        if newer_than:
            fd, name = tempfile.mkstemp(prefix="host-backup-", suffix=".files")
            list_file = Path(name)
            with os.fdopen(fd, "wb") as out:
                if not _write_file_list(source, newer_than, excludes, out):
                    newer_than = None
            if newer_than:
                logger.info("Performing incremental backup since %s", newer_than)

        cmd = build_rsync_command(
            source, system_dir, excludes, files_from=list_file if newer_than else None
        )
        try:
            exit_code = __util__.stream_subprocess(cmd, on_output)
        except FileNotFoundError:
            logger.error("rsync not found")
            exit_code = COMMAND_NOT_FOUND
    finally:
        if list_file is not None:
            with contextlib.suppress(OSError):
                list_file.unlink()

    return TransferResult(
        exit_code=exit_code,
        duration_seconds=time.monotonic() - start,
        newer_than=newer_than,
        command=cmd,
    )
