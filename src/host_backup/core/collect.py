"""Ancillary system state written next to the data transfer.

Everything here is best effort: a missing tool or file is reported as a
skipped step, never raised.
"""

import logging
import shutil
import socket
from datetime import datetime
from pathlib import Path

from .. import __util__
from ..config import Config
from .steps import StepResult, failed, ok, skipped

logger = logging.getLogger(__name__)

# (output file, command); the first one is the one restores depend on
PACKAGE_LISTS = [
    ("packages.txt", ["dpkg", "--get-selections"]),
    ("apt_packages.txt", ["apt", "list", "--installed"]),
    ("snap_packages.txt", ["snap", "list"]),
]

CONFIGS_DIR = "configs"
SYSTEM_INFO = "system_info.txt"


def _capture(cmd: list[str]) -> str | None:
    """stdout of ``cmd`` if it ran successfully, else None."""
    try:
        result = __util__.exec_subprocess(cmd)
    except (FileNotFoundError, PermissionError):
        return None
    if result.returncode != 0:
        return None
    return result.stdout


def _os_name(os_release: Path = Path("/etc/os-release")) -> str:
    output = _capture(["lsb_release", "-d"])
    if output and "\t" in output:
        return output.split("\t", 1)[1].strip()
    try:
        for line in os_release.read_text(encoding="utf-8").splitlines():
            if line.startswith("PRETTY_NAME="):
                return line.split("=", 1)[1].strip().strip('"')
    except OSError:
        pass
    return "unknown"


def collect_system_info(backup_dir: Path, started_at: datetime) -> StepResult:
    """Write host, kernel, OS and disk usage details."""
    name = "system info"
    uname = _capture(["uname", "-r"])
    uptime = _capture(["uptime"])
    df = _capture(["df", "-h"])

    lines = [
        f"Backup Date: {started_at:%Y-%m-%d %H%M%S}",
        f"Hostname: {socket.gethostname()}",
        f"Kernel: {uname.strip() if uname else 'unknown'}",
        f"OS: {_os_name()}",
        f"Uptime: {uptime.strip() if uptime else 'unknown'}",
        "Disk Usage:",
        (df or "unavailable").rstrip(),
    ]
    try:
        (backup_dir / SYSTEM_INFO).write_text("\n".join(lines) + "\n", encoding="utf-8")
    except OSError as e:
        return failed(name, str(e))
    return ok(name)


def collect_package_list(backup_dir: Path, filename: str, cmd: list[str]) -> StepResult:
    """Write the output of a package manager listing."""
    name = filename
    try:
        result = __util__.exec_subprocess(cmd)
    except FileNotFoundError:
        return skipped(name, f"{cmd[0]} not installed")
    if result.returncode != 0:
        return failed(name, f"{cmd[0]} exited with {result.returncode}")
    try:
        (backup_dir / filename).write_text(result.stdout, encoding="utf-8")
    except OSError as e:
        return failed(name, str(e))
    return ok(name)


def copy_repository_sources(backup_dir: Path, sources: list[str]) -> StepResult:
    """Copy package repository definitions (files or directories)."""
    name = "repository sources"
    copied = 0
    errors = []
    for source in sources:
        src = Path(source)
        dest = backup_dir / src.name
        try:
            if src.is_dir():
                shutil.copytree(src, dest, symlinks=True, dirs_exist_ok=True)
            elif src.is_file():
                shutil.copy2(src, dest)
            else:
                continue
            copied += 1
        except (OSError, shutil.Error) as e:
            errors.append(f"{src}: {e}")

    if errors:
        return failed(name, "; ".join(errors))
    if not copied:
        return skipped(name, "no repository sources found")
    return ok(name)


def copy_config_files(backup_dir: Path, files: list[str]) -> StepResult:
    """Copy the whitelisted configuration files into configs/."""
    name = "config files"
    configs = backup_dir / CONFIGS_DIR
    configs.mkdir(parents=True, exist_ok=True)

    missing = []
    errors = []
    for config_file in files:
        src = Path(config_file)
        if not src.is_file():
            missing.append(str(src))
            continue
        try:
            shutil.copy2(src, configs / src.name)
        except OSError as e:
            errors.append(f"{src}: {e}")

    if errors:
        return failed(name, "; ".join(errors))
    if missing and len(missing) == len(files):
        return skipped(name, "none of the configured files exist")
    if missing:
        logger.debug("Config files not present: %s", ", ".join(missing))
    return ok(name)


def collect_snapshot(
    backup_dir: Path, config: Config, started_at: datetime
) -> list[StepResult]:
    """Populate ``backup_dir`` with system state; returns one result per step."""
    results = []

    logger.info("Collecting system information...")
    results.append(collect_system_info(backup_dir, started_at))

    logger.info("Backing up package list...")
    for filename, cmd in PACKAGE_LISTS:
        results.append(collect_package_list(backup_dir, filename, cmd))

    logger.info("Backing up repository sources...")
    results.append(copy_repository_sources(backup_dir, config.paths.repository_sources))

    logger.info("Backing up configuration files...")
    results.append(copy_config_files(backup_dir, config.paths.config_files))

    for result in results:
        if not result.ok:
            logger.warning("Not collected: %s", result)
    return results
