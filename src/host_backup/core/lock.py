"""Exclusive per-destination run lock.

Two runs against the same mount point would race on the incremental marker
and on retention deletion. The lock is an advisory ``filelock.FileLock`` on
``<mount>/.host-backup.lock``; it is released by the OS if the holder dies,
so a crashed run never leaves a stale lock behind. A JSON owner file next to
it records who holds the lock for the error message of the losing run.
"""

import contextlib
import json
import logging
import os
import socket
import time
from pathlib import Path

from filelock import FileLock, Timeout

from .. import __util__

logger = logging.getLogger(__name__)

LOCK_NAME = ".host-backup.lock"
OWNER_SUFFIX = ".owner"


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


class RunLock:
    """Scoped exclusive lock on a destination."""

    def __init__(self, destination: Path | str) -> None:
        destination = Path(destination)
        self.lock_path = destination / LOCK_NAME
        self.owner_path = destination / (LOCK_NAME + OWNER_SUFFIX)
        self._lock = FileLock(str(self.lock_path), timeout=0)

    @property
    def is_locked(self) -> bool:
        return self._lock.is_locked

    def read_owner(self) -> dict | None:
        """Return the recorded owner, or None if unknown."""
        try:
            return json.loads(self.owner_path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return None

    def describe_owner(self) -> str:
        owner = self.read_owner()
        if not owner:
            return "owner unknown"
        pid = owner.get("pid")
        state = ""
        if owner.get("host") == socket.gethostname() and isinstance(pid, int):
            state = "" if _pid_alive(pid) else ", stale"
        started = time.strftime(
            "%Y-%m-%d %H:%M:%S", time.localtime(owner.get("started", 0))
        )
        return f"pid {pid} on {owner.get('host')} since {started}{state}"

    def acquire(self) -> None:
        """Take the lock or raise LockError immediately."""
        try:
            self._lock.acquire()
        except Timeout as e:
            raise __util__.LockError(
                f"Another backup is running on this destination ({self.describe_owner()})"
            ) from e
        owner = {
            "pid": os.getpid(),
            "host": socket.gethostname(),
            "started": time.time(),
        }
        try:
            self.owner_path.write_text(json.dumps(owner), encoding="utf-8")
        except OSError:
            self._lock.release()
            raise
        logger.debug("Acquired run lock %s", self.lock_path)

    def held_elsewhere(self) -> bool:
        """True if another holder has the lock right now.

        Asks the lock itself; an owner file left by a killed run does not
        count.
        """
        if self._lock.is_locked:
            return False
        try:
            self._lock.acquire()
        except Timeout:
            return True
        self._lock.release()
        return False

    def release(self) -> None:
        if not self._lock.is_locked:
            return
        with contextlib.suppress(OSError):
            self.owner_path.unlink()
        self._lock.release()
        logger.debug("Released run lock %s", self.lock_path)

    def __enter__(self) -> "RunLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.release()
