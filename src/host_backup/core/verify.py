"""Backup statistics and quick verification.

Verification is a presence check of a few canonical files: each must exist
in the copy when it exists at the source. It never fails a run, the report
only feeds the log and the summary mail.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass
class BackupStats:
    """Size and file count of a backup directory."""

    total_bytes: int = 0
    file_count: int = 0


def collect_stats(path: Path) -> BackupStats:
    """Walk ``path`` without following symlinks."""
    stats = BackupStats()
    for root, _dirs, files in os.walk(path):
        for name in files:
            try:
                st = os.lstat(os.path.join(root, name))
            except OSError:
                continue
            stats.file_count += 1
            stats.total_bytes += st.st_size
    return stats


@dataclass
class VerifyResult:
    """Result of checking one canonical file."""

    path: str
    passed: bool
    skipped: bool = False
    message: str = ""


@dataclass
class VerifyReport:
    """Complete verification report."""

    location: str
    results: list[VerifyResult] = field(default_factory=list)

    @property
    def passed(self) -> int:
        return sum(1 for r in self.results if r.passed and not r.skipped)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.passed)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.results if r.skipped)

    @property
    def total(self) -> int:
        return len(self.results)


def verify_backup(
    system_dir: Path,
    check_files: list[str],
    source_root: Path | str = "/",
    incremental: bool = False,
) -> VerifyReport:
    """Check that canonical files made it into the copy.

    Args:
        system_dir: The ``system/`` tree of the backup
        check_files: Paths relative to the source root
        source_root: Root the transfer copied from
        incremental: Unchanged files are not copied by incremental runs,
            so a missing file counts as skipped rather than failed

    Returns:
        VerifyReport with one result per checked file
    """
    report = VerifyReport(location=str(system_dir))
    source_root = Path(source_root)

    for rel in check_files:
        rel = rel.lstrip("/")
        if not (source_root / rel).is_file():
            report.results.append(
                VerifyResult(rel, passed=True, skipped=True, message="not present at source")
            )
            continue

        if (Path(system_dir) / rel).is_file():
            report.results.append(VerifyResult(rel, passed=True))
        elif incremental:
            report.results.append(
                VerifyResult(rel, passed=True, skipped=True, message="unchanged since marker")
            )
        else:
            logger.error("Verification failed: Missing %s", rel)
            report.results.append(VerifyResult(rel, passed=False, message="missing"))

    return report
