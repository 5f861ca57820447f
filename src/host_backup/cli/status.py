"""Status command: Show what is stored on a destination."""

import argparse
import logging
import time
from pathlib import Path

from rich.table import Table

from .. import __logger__, __util__
from ..__logger__ import create_logger
from ..core import marker, report, retention
from ..core.lock import RunLock
from .common import get_log_level

logger = logging.getLogger(__name__)


def _entry_size(path: Path) -> int | None:
    if path.is_file():
        return path.stat().st_size
    return None


def _latest_log(mount: Path) -> Path | None:
    log_dir = mount / retention.LOG_DIR_NAME
    if not log_dir.is_dir():
        return None
    logs = sorted(
        p for p in log_dir.iterdir() if p.is_file() and retention.LOG_NAME_RE.match(p.name)
    )
    return logs[-1] if logs else None


def execute_status(args: argparse.Namespace) -> int:
    """Execute the status command.

    Args:
        args: Parsed command line arguments

    Returns:
        Exit code
    """
    log_level = get_log_level(args)
    create_logger(level=log_level)

    mount = Path(args.destination)
    if not mount.is_dir():
        logger.error("Mount point %s does not exist", mount)
        return 1

    cons = __logger__.cons
    backups = retention.list_backups(mount)

    table = Table(title=f"Backups on {mount}")
    table.add_column("Name")
    table.add_column("Kind")
    table.add_column("Modified")
    table.add_column("Size", justify="right")
    for path in backups:
        kind = "archive" if path.name.endswith(".tar.gz") else "directory"
        size = _entry_size(path)
        table.add_row(
            path.name,
            kind,
            time.strftime("%Y-%m-%d %H:%M", time.localtime(path.stat().st_mtime)),
            __util__.format_size(size) if size is not None else "-",
        )
    cons.print(table)
    if not backups:
        cons.print("No backups found.")

    last = marker.read_marker(marker.marker_path(mount))
    cons.print(f"Incremental marker: {last or 'not set'}")

    lock = RunLock(mount)
    try:
        held = lock.held_elsewhere()
    except OSError as e:
        cons.print(f"Run lock: unknown ({e})")
    else:
        if held:
            cons.print(f"Run lock: held ({lock.describe_owner()})")
        else:
            cons.print("Run lock: free")
            if lock.owner_path.exists():
                cons.print(
                    f"Leftover owner file from an interrupted run: {lock.describe_owner()}"
                )

    log_file = _latest_log(mount)
    if log_file is not None:
        cons.print(f"Latest log: {log_file}")
        for line in report.tail_lines(log_file):
            cons.out(line, highlight=False)

    return 0
