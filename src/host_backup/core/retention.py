"""Age-based removal of old backups and run logs."""

import logging
import re
import shutil
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

logger = logging.getLogger(__name__)

BACKUP_NAME_RE = re.compile(r"^backup-\d{4}-\d{2}-\d{2}-\d{6}(?P<archive>\.tar\.gz)?$")
LOG_NAME_RE = re.compile(r"^backup-log-.*\.log$")
LOG_DIR_NAME = "logs"

SECONDS_PER_DAY = 86400


@dataclass
class RetentionResult:
    """What a retention pass did."""

    removed: list[Path] = field(default_factory=list)
    kept: list[Path] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def is_expired(path: Path, days: int, now: float | None = None) -> bool:
    """True if ``path`` was modified more than ``days`` whole days ago.

    Matches ``find -mtime +N``: the age is truncated to whole days before
    the comparison.
    """
    now = time.time() if now is None else now
    age_days = int((now - path.stat().st_mtime) // SECONDS_PER_DAY)
    return age_days > days


def is_backup_entry(path: Path, include_archives: bool = True) -> bool:
    """True for backup directories (and, optionally, their archives)."""
    match = BACKUP_NAME_RE.match(path.name)
    if not match:
        return False
    if match.group("archive"):
        return include_archives and path.is_file()
    return path.is_dir() and not path.is_symlink()


def list_backups(mount: Path, include_archives: bool = True) -> list[Path]:
    """Backup directories/archives directly under ``mount``, oldest name first."""
    if not mount.is_dir():
        return []
    return sorted(
        p for p in mount.iterdir() if is_backup_entry(p, include_archives)
    )


def _remove(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink()


def _prune(
    candidates: Iterable[Path],
    days: int,
    protect: Iterable[Path],
    dry_run: bool,
    now: float | None,
) -> RetentionResult:
    result = RetentionResult()
    protected = {Path(p).resolve() for p in protect}

    for path in candidates:
        try:
            if path.resolve() in protected or not is_expired(path, days, now):
                result.kept.append(path)
                continue
            if dry_run:
                logger.info("Would remove: %s", path)
            else:
                _remove(path)
                logger.info("Removed: %s", path)
            result.removed.append(path)
        except OSError as e:
            logger.error("Failed to remove %s: %s", path, e)
            result.errors.append(f"{path}: {e}")

    return result


def prune_backups(
    mount: Path,
    days: int,
    *,
    protect: Iterable[Path] = (),
    include_archives: bool = True,
    dry_run: bool = False,
    now: float | None = None,
) -> RetentionResult:
    """Remove backups under ``mount`` older than ``days``.

    Entries in ``protect`` (the current run's directory and archive) are
    never removed, whatever their age.
    """
    candidates = list_backups(Path(mount), include_archives=include_archives)
    return _prune(candidates, days, protect, dry_run, now)


def prune_logs(
    log_dir: Path,
    days: int,
    *,
    protect: Iterable[Path] = (),
    dry_run: bool = False,
    now: float | None = None,
) -> RetentionResult:
    """Remove run logs in ``log_dir`` older than ``days``."""
    log_dir = Path(log_dir)
    if not log_dir.is_dir():
        return RetentionResult()
    candidates = sorted(
        p for p in log_dir.iterdir() if p.is_file() and LOG_NAME_RE.match(p.name)
    )
    return _prune(candidates, days, protect, dry_run, now)
