# pyright: standard

"""host-backup: host_backup/__util__.py
Common utility code shared among modules.
"""

import logging
import os
import shutil
import subprocess
from typing import Callable

logger = logging.getLogger(__name__)


class AbortError(Exception):
    """Exception where host-backup should abort."""


class NoDestinationError(AbortError):
    """No destination could be determined."""


class InvalidDestinationError(AbortError):
    """The destination does not exist or is not a directory."""


class UserAbortError(AbortError):
    """The user declined a confirmation."""


class PrivilegeError(AbortError):
    """The process lacks the privileges needed for a full system backup."""


class LockError(AbortError):
    """Another run holds the destination lock."""


def log_heading(caption: str) -> str:
    """Formatted heading for logging output sections."""
    return f"{'=' * 10} {caption} {'=' * 10}"


def require_root() -> None:
    """Raise PrivilegeError unless running as root."""
    if os.geteuid() != 0:
        raise PrivilegeError("Run as root: sudo host-backup")


def have_command(name: str) -> bool:
    """Return True if ``name`` is an executable on PATH."""
    return shutil.which(name) is not None


def exec_subprocess(command, method="run", **kwargs):
    """Run a command with subprocess and return its result.

    ``method="run"`` returns a CompletedProcess with text output captured
    unless the caller redirects stdout/stderr itself. FileNotFoundError
    propagates when the program is missing.
    """
    logger.debug("Executing: %s", command)
    if method == "Popen":
        return subprocess.Popen(command, **kwargs)
    kwargs.setdefault("text", True)
    if "stdout" not in kwargs and "capture_output" not in kwargs:
        kwargs["stdout"] = subprocess.PIPE
    if "stderr" not in kwargs and "capture_output" not in kwargs:
        kwargs["stderr"] = subprocess.PIPE
    return subprocess.run(command, check=False, **kwargs)


def stream_subprocess(command, on_line: Callable[[str], None], **kwargs) -> int:
    """Run ``command``, feeding each output line to ``on_line``.

    stderr is merged into stdout. Returns the exit code.
    """
    logger.debug("Streaming: %s", command)
    with subprocess.Popen(
        command,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
        errors="replace",
        bufsize=1,
        **kwargs,
    ) as proc:
        assert proc.stdout is not None
        for line in proc.stdout:
            on_line(line.rstrip("\n"))
        return proc.wait()


def format_size(size) -> str:
    """Format a byte count for humans (binary units)."""
    if size is None:
        return "unknown"
    if size < 1024:
        return f"{int(size)} B"
    for unit in ("KiB", "MiB", "GiB", "TiB"):
        size /= 1024
        if size < 1024:
            return f"{size:.2f} {unit}"
    return f"{size:.2f} TiB"
