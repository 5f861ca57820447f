"""Restore instructions and the summary mail."""

import logging
import socket
from collections import deque
from datetime import datetime
from pathlib import Path

from .. import __util__
from .steps import StepResult, failed, ok, skipped
from .transfer import TransferStatus, classify_exit_code, is_acceptable

logger = logging.getLogger(__name__)

RESTORE_FILE = "RESTORE_INSTRUCTIONS.txt"
TAIL_LINES = 20


def render_restore_instructions(final_artifact: Path, generated: str) -> str:
    """Text of RESTORE_INSTRUCTIONS.txt for ``final_artifact``."""
    artifact = str(final_artifact)
    if artifact.endswith(".tar.gz"):
        staging = "/var/tmp/restore"
        name = Path(artifact).name[: -len(".tar.gz")]
        restore = (
            f"   # Extract the archive to a staging area\n"
            f"   mkdir -p {staging}\n"
            f"   tar xzf {artifact} -C {staging}\n"
            f"\n"
            f"   # Copy the system tree back\n"
            f"   rsync -av {staging}/{name}/system/ /\n"
        )
        packages = f"{staging}/{name}/packages.txt"
    else:
        restore = (
            f"   # Copy the system tree back\n"
            f"   rsync -av {artifact}/system/ /\n"
        )
        packages = f"{artifact}/packages.txt"

    return (
        "RESTORE INSTRUCTIONS\n"
        "===================\n"
        f"Generated: {generated}\n"
        "\n"
        "To restore from this backup:\n"
        "\n"
        "1. Full System Restore:\n"
        f"{restore}"
        "\n"
        "2. Restore Package List:\n"
        f"   dpkg --set-selections < {packages}\n"
        "   apt-get dselect-upgrade\n"
        "\n"
        f"LATEST BACKUP: {artifact}\n"
    )


def write_restore_instructions(mount: Path, final_artifact: Path, generated: str) -> Path:
    path = Path(mount) / RESTORE_FILE
    path.write_text(render_restore_instructions(final_artifact, generated), encoding="utf-8")
    return path


def tail_lines(path: Path, count: int = TAIL_LINES) -> list[str]:
    """Last ``count`` lines of a text file, empty if unreadable."""
    try:
        with open(path, encoding="utf-8", errors="replace") as f:
            return [line.rstrip("\n") for line in deque(f, maxlen=count)]
    except OSError:
        return []


def disk_usage_report(mount: Path) -> str:
    """``df -h`` for the destination, best effort."""
    try:
        result = __util__.exec_subprocess(["df", "-h", str(mount)])
    except FileNotFoundError:
        return ""
    return result.stdout.rstrip() if result.returncode == 0 else ""


def run_status(exit_code: int) -> str:
    return "SUCCESS" if is_acceptable(exit_code) else "FAILED"


def build_email(
    exit_code: int,
    final_artifact: Path | None,
    log_file: Path,
    problems: list[StepResult] | None = None,
    now: datetime | None = None,
) -> tuple[str, str]:
    """Subject and body of the summary mail."""
    now = now or datetime.now()
    status = run_status(exit_code)
    subject = f"Backup {status} - {socket.gethostname()} - {now:%Y-%m-%d %H:%M:%S}"

    body = [
        f"Backup {status} on {now.ctime()}",
        f"Exit code: {exit_code}",
        f"Backup file: {final_artifact if final_artifact else 'none'}",
        f"Log file: {log_file}",
    ]
    if classify_exit_code(exit_code) is TransferStatus.PARTIAL:
        body.append("Some files were skipped by rsync, see the log for details.")
    if problems:
        body += ["", "=== SKIPPED OR FAILED STEPS ==="]
        body += [str(p) for p in problems]

    body += ["", f"=== LAST {TAIL_LINES} LINES OF LOG ==="]
    body += tail_lines(log_file) or ["Log file not available"]
    return subject, "\n".join(body) + "\n"


def send_email_report(address: str, subject: str, body: str) -> StepResult:
    """Hand the report to the local mail transport."""
    name = "email report"
    if not address:
        return skipped(name, "no address configured")
    try:
        result = __util__.exec_subprocess(["mail", "-s", subject, address], input=body)
    except FileNotFoundError:
        logger.error("Failed to send email to %s: mail not installed", address)
        return failed(name, "mail not installed")
    if result.returncode != 0:
        logger.error("Failed to send email to %s: %s", address, result.stderr.strip())
        return failed(name, f"mail exited with {result.returncode}")
    logger.info("Email report sent to %s", address)
    return ok(name)
