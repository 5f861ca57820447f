"""Destination resolution.

Split in two layers:

- ``decide_destination`` is the policy. Given the inputs gathered so far it
  either accepts a path, asks for one more input (a typed path, the
  fallback device's mount point, or a confirmation), or raises.
- ``resolve_destination`` is the I/O adapter. It probes the system, prompts
  when the run is attended and feeds the answers back into the policy.

Whether a run is attended comes from configuration, never from looking at
the terminal.
"""

import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Protocol

from rich.prompt import Prompt
from rich.table import Table

from .. import __logger__, __util__
from ..config import Config

logger = logging.getLogger(__name__)

CONFIRM_TOKEN = "yes"


class Need(Enum):
    """Input the policy is still missing."""

    PATH = "path"
    DEFAULT_MOUNT = "default_mount"
    CONFIRM_UNMOUNTED = "confirm_unmounted"


@dataclass
class Decision:
    """Outcome of one policy evaluation."""

    path: Path | None = None
    need: Need | None = None
    note: str = ""

    @property
    def accepted(self) -> bool:
        return self.path is not None and self.need is None


@dataclass
class PathProbe:
    """Filesystem questions the policy asks."""

    is_dir: Callable[[Path], bool]
    is_mount: Callable[[Path], bool]


def decide_destination(
    argument: str | None,
    probe: PathProbe,
    *,
    answer: str | None = None,
    default_mount: str | None = None,
    confirmation: str | None = None,
    interactive: bool = True,
    allow_unmounted: bool = False,
) -> Decision:
    """Decide which destination to use from the inputs gathered so far.

    Args:
        argument: Path given on the command line, if any
        probe: Directory and mount point checks
        answer: Path typed at the prompt (None = not asked yet)
        default_mount: Mount target of the fallback device
            (None = not looked up yet, "" = device not mounted)
        confirmation: Answer to the "not a mount point" question
            (None = not asked yet)
        interactive: Whether prompts may be shown
        allow_unmounted: Accept a directory that is not a mount point

    Returns:
        A Decision that is either accepted or names the missing input

    Raises:
        NoDestinationError: Nothing given and the fallback is not mounted
        InvalidDestinationError: The chosen path is not a directory
        UserAbortError: Not a mount point and the run was not confirmed
    """
    candidate = (argument or "").strip()

    if not candidate:
        if interactive and answer is None:
            return Decision(need=Need.PATH)
        candidate = (answer or "").strip()

    if not candidate:
        if default_mount is None:
            return Decision(need=Need.DEFAULT_MOUNT)
        candidate = default_mount.strip()
        if not candidate:
            raise __util__.NoDestinationError(
                "No mount point specified and the default device is not mounted"
            )

    path = Path(candidate)
    if not probe.is_dir(path):
        raise __util__.InvalidDestinationError(f"Mount point {path} does not exist")

    if probe.is_mount(path):
        return Decision(path=path)

    if allow_unmounted:
        return Decision(path=path, note=f"{path} is not a mount point (allowed)")

    if not interactive:
        raise __util__.UserAbortError(
            f"{path} is not a mount point; set allow_unmounted to use it unattended"
        )

    if confirmation is None:
        return Decision(path=path, need=Need.CONFIRM_UNMOUNTED)

    if confirmation.strip() == CONFIRM_TOKEN:
        return Decision(path=path, note=f"{path} is not a mount point (confirmed)")

    raise __util__.UserAbortError(f"Not using {path}: confirmation declined")


def is_mount_point(path: Path) -> bool:
    """Ask mountpoint(1), falling back to os.path.ismount."""
    try:
        result = __util__.exec_subprocess(["mountpoint", "-q", str(path)])
    except FileNotFoundError:
        return os.path.ismount(path)
    return result.returncode == 0


SYSTEM_PROBE = PathProbe(is_dir=lambda p: p.is_dir(), is_mount=is_mount_point)


def find_device_mount(device: str) -> str:
    """Return where ``device`` is mounted, or "" if it is not."""
    try:
        result = __util__.exec_subprocess(["findmnt", "-n", "-o", "TARGET", device])
    except FileNotFoundError:
        logger.debug("findmnt not available")
        return ""
    if result.returncode != 0:
        return ""
    lines = result.stdout.strip().splitlines()
    return lines[0].strip() if lines else ""


def list_mount_points() -> list[tuple[str, str, str]]:
    """Mounted block devices as (device, mount point, free) rows."""
    try:
        result = __util__.exec_subprocess(
            ["df", "-h", "--output=source,target,avail"]
        )
    except FileNotFoundError:
        return []
    rows = []
    for line in result.stdout.splitlines()[1:]:
        fields = line.split()
        if len(fields) >= 3 and fields[0].startswith("/dev/"):
            rows.append((fields[0], " ".join(fields[1:-1]), fields[-1]))
    return rows


def show_mount_points() -> None:
    """Print the available mount points."""
    table = Table(title="Available mount points")
    table.add_column("#", justify="right")
    table.add_column("Device")
    table.add_column("Mount point")
    table.add_column("Free", justify="right")
    for i, (device, target, free) in enumerate(list_mount_points(), 1):
        table.add_row(str(i), device, target, free)
    __logger__.cons.print(table)


class Prompter(Protocol):
    def ask(self, question: str) -> str: ...


class ConsolePrompter:
    """Prompts on the rich console. EOF counts as an empty answer."""

    def ask(self, question: str) -> str:
        try:
            return Prompt.ask(
                question, console=__logger__.cons, default="", show_default=False
            )
        except EOFError:
            return ""


def resolve_destination(
    argument: str | None,
    config: Config,
    prompter: Prompter | None = None,
    probe: PathProbe = SYSTEM_PROBE,
) -> Path:
    """Produce a validated destination, prompting only on attended runs."""
    prompter = prompter or ConsolePrompter()
    answer = default_mount = confirmation = None

    while True:
        decision = decide_destination(
            argument,
            probe,
            answer=answer,
            default_mount=default_mount,
            confirmation=confirmation,
            interactive=config.backup.interactive,
            allow_unmounted=config.backup.allow_unmounted,
        )

        if decision.accepted:
            if decision.note:
                logger.warning(decision.note)
            assert decision.path is not None
            return decision.path

        if decision.need is Need.PATH:
            show_mount_points()
            answer = prompter.ask(
                "Enter mount point path (e.g., /Backup_Data or /mnt/vps_backup)"
            )
        elif decision.need is Need.DEFAULT_MOUNT:
            default_mount = find_device_mount(config.backup.default_device)
            if default_mount:
                logger.warning("Using default: %s", default_mount)
        elif decision.need is Need.CONFIRM_UNMOUNTED:
            logger.warning("%s may not be a mount point", decision.path)
            confirmation = prompter.ask("Continue anyway? (yes/no)")
