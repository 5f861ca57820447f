"""Incremental marker: the time of the last acceptable transfer.

The marker bounds the next incremental run, so it is only moved forward
when the transfer outcome is acceptable. A failed run leaves the previous
value in place.
"""

import logging
import os
import re
from datetime import datetime
from pathlib import Path

from .transfer import is_acceptable

logger = logging.getLogger(__name__)

MARKER_NAME = ".last_backup_marker"
MARKER_FORMAT = "%Y-%m-%d %H:%M:%S"

# "2024-05-01 031500", as written by the shell version of this tool
_LEGACY_RE = re.compile(r"^(\d{4}-\d{2}-\d{2}) (\d{2})(\d{2})(\d{2})$")


def marker_path(mount: Path) -> Path:
    return Path(mount) / MARKER_NAME


def format_marker(moment: datetime) -> str:
    return moment.strftime(MARKER_FORMAT)


def read_marker(path: Path) -> str | None:
    """Return the stored timestamp, or None if absent or unreadable."""
    try:
        text = Path(path).read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        return None
    except OSError as e:
        logger.warning("Cannot read incremental marker %s: %s", path, e)
        return None

    if not text:
        return None

    legacy = _LEGACY_RE.match(text)
    if legacy:
        date, hh, mm, ss = legacy.groups()
        text = f"{date} {hh}:{mm}:{ss}"

    try:
        datetime.strptime(text, MARKER_FORMAT)
    except ValueError:
        logger.warning("Ignoring malformed incremental marker %s: %r", path, text)
        return None
    return text


def write_marker(path: Path, moment: datetime) -> None:
    """Atomically replace the marker with ``moment``."""
    path = Path(path)
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(format_marker(moment) + "\n", encoding="utf-8")
    os.replace(tmp, path)


def update_marker(path: Path, moment: datetime, transfer_exit_code: int) -> bool:
    """Write the marker if the transfer outcome allows it.

    Returns:
        True if the marker was written
    """
    if not is_acceptable(transfer_exit_code):
        logger.warning(
            "Transfer failed (exit code %d); keeping previous incremental marker",
            transfer_exit_code,
        )
        return False
    write_marker(path, moment)
    logger.info("Incremental marker set to %s", format_marker(moment))
    return True
