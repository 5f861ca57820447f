"""Free space estimate for the destination.

Advisory only: a low estimate produces a warning and an offer to prune old
backups, it never stops the run.

The estimate is ``du`` over the whole source minus the virtual filesystems
and the destination, halved when compression is on. Both parts overstate what rsync will actually copy.
"""

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

from .. import __util__
from ..config import Config
from .retention import RetentionResult, prune_backups

logger = logging.getLogger(__name__)

GIB = 1024**3

# Not counted in the size estimate
SIZE_EXCLUDES = ["/proc", "/sys", "/dev", "/tmp", "/run", "/mnt", "/media", "/lost+found"]


@dataclass
class SpaceCheck:
    """Result of a capacity check."""

    available: int
    source_estimate: int | None
    required: int | None
    margin: int
    compressed: bool = False

    @property
    def low_space(self) -> bool:
        return self.available < (self.required or 0) + self.margin


def available_space(path: Path) -> int:
    return shutil.disk_usage(path).free


def estimate_source_size(source: str, destination: Path) -> int | None:
    """Bytes used below ``source`` according to du, or None if unknown."""
    cmd = ["du", "-s", "--block-size=1"]
    cmd += [f"--exclude={p}" for p in SIZE_EXCLUDES]
    cmd += [f"--exclude={destination}", source]
    try:
        result = __util__.exec_subprocess(cmd)
    except FileNotFoundError:
        logger.warning("du not available, cannot estimate source size")
        return None

    # du exits non-zero on unreadable entries but still prints a total
    for line in reversed(result.stdout.strip().splitlines()):
        field = line.split(maxsplit=1)[0] if line.strip() else ""
        if field.isdigit():
            return int(field)

    logger.warning("Could not parse du output: %s", result.stderr.strip())
    return None


def check_space(config: Config, destination: Path) -> SpaceCheck:
    """Compare free space on ``destination`` with the source estimate."""
    available = available_space(destination)
    estimate = estimate_source_size(config.paths.source, destination)
    required = estimate
    if estimate is not None and config.backup.compress:
        required = int(estimate * config.backup.compression_estimate)

    return SpaceCheck(
        available=available,
        source_estimate=estimate,
        required=required,
        margin=config.backup.space_margin_gb * GIB,
        compressed=config.backup.compress,
    )


def log_space_check(check: SpaceCheck) -> None:
    logger.info("Available space: %s", __util__.format_size(check.available))
    logger.info(
        "Estimated required space: %s", __util__.format_size(check.source_estimate)
    )
    if check.compressed and check.required is not None:
        logger.info("Adjusted for compression: %s", __util__.format_size(check.required))
    if check.low_space:
        logger.warning("Low disk space! Consider cleaning old backups first.")


def remediate_low_space(
    check: SpaceCheck,
    config: Config,
    destination: Path,
    prompter=None,
) -> RetentionResult | None:
    """Offer (attended) or apply (auto_clean) a cleanup of old backups.

    Only backup directories are considered here, archives are left to the
    regular retention pass.
    """
    if not check.low_space:
        return None

    days = config.backup.retention_days
    if config.backup.interactive:
        if prompter is None:
            return None
        answer = prompter.ask(f"Clean backups older than {days} days? (yes/no)")
        if answer.strip() != "yes":
            return None
    elif not config.backup.auto_clean:
        return None

    result = prune_backups(destination, days, include_archives=False)
    logger.info("Old backups cleaned (%d removed)", len(result.removed))
    return result
