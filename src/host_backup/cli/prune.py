"""Prune command: Apply retention to a destination."""

import argparse
import logging
import time
from pathlib import Path

from .. import __util__
from ..__logger__ import create_logger
from ..core import retention
from ..core.lock import RunLock
from .common import get_log_level, load_cli_config

logger = logging.getLogger(__name__)


def execute_prune(args: argparse.Namespace) -> int:
    """Execute the prune command.

    Removes backups older than ``retention_days`` and logs older than
    ``log_retention_days``. Holds the destination lock so it never races a
    running backup.

    Args:
        args: Parsed command line arguments

    Returns:
        Exit code
    """
    log_level = get_log_level(args)
    create_logger(level=log_level)

    config = load_cli_config(args)
    if config is None:
        return 1

    mount = Path(args.destination)
    if not mount.is_dir():
        logger.error("Mount point %s does not exist", mount)
        return 1

    days = args.days if getattr(args, "days", None) is not None else config.backup.retention_days
    if days < 0:
        logger.error("--days must be >= 0")
        return 1

    dry_run = getattr(args, "dry_run", False)
    if dry_run:
        logger.info("Dry run mode - showing what would be deleted")

    logger.info(__util__.log_heading(f"Pruning {mount} at {time.ctime()}"))

    try:
        with RunLock(mount):
            backups = retention.prune_backups(mount, days, dry_run=dry_run)
            logs = retention.prune_logs(
                mount / retention.LOG_DIR_NAME,
                config.backup.log_retention_days,
                dry_run=dry_run,
            )
    except __util__.AbortError as e:
        logger.error("%s", e)
        return 1

    verb = "Would remove" if dry_run else "Removed"
    logger.info(
        "%s %d backup(s) and %d log(s); kept %d backup(s)",
        verb,
        len(backups.removed),
        len(logs.removed),
        len(backups.kept),
    )

    errors = backups.errors + logs.errors
    if errors:
        logger.error("%d item(s) could not be removed", len(errors))
        return 1
    return 0
