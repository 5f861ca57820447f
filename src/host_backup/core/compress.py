"""Archive a finished backup directory into ``<dir>.tar.gz``.

With pigz available, tar's stream is pumped into ``pigz -p N`` while a rich
progress bar tracks the uncompressed bytes. Otherwise ``tar czvf`` runs and
its verbose listing goes to the run log.
"""

import contextlib
import logging
import shutil
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
    TransferSpeedColumn,
)

from .. import __logger__, __util__

logger = logging.getLogger(__name__)

ARCHIVE_SUFFIX = ".tar.gz"
CHUNK_SIZE = 1024 * 1024


@dataclass
class CompressResult:
    """Outcome of archiving a backup directory."""

    archive: Path
    success: bool
    method: str
    original_size: int = 0
    compressed_size: int = 0
    duration_seconds: float = 0.0
    error: str = ""

    @property
    def ratio_percent(self) -> float | None:
        """Archive size as a percentage of the original."""
        if not self.success or not self.original_size:
            return None
        return self.compressed_size * 100 / self.original_size


def archive_path_for(backup_dir: Path) -> Path:
    return backup_dir.with_name(backup_dir.name + ARCHIVE_SUFFIX)


def _tar_stream_command(backup_dir: Path) -> list[str]:
    return ["tar", "-cf", "-", "-C", str(backup_dir.parent), backup_dir.name]


def _compress_pigz(
    backup_dir: Path, archive: Path, threads: int, total: int, show_progress: bool
) -> int:
    """tar | pigz > archive. Returns the first non-zero exit code, or 0."""
    progress = Progress(
        SpinnerColumn(),
        TextColumn("Compressing"),
        BarColumn(),
        DownloadColumn(),
        TransferSpeedColumn(),
        TimeElapsedColumn(),
        console=__logger__.cons,
        disable=not show_progress,
    )
    with open(archive, "wb") as out:
        tar = __util__.exec_subprocess(
            _tar_stream_command(backup_dir), method="Popen", stdout=subprocess.PIPE
        )
        pigz = __util__.exec_subprocess(
            ["pigz", "-p", str(threads)],
            method="Popen",
            stdin=subprocess.PIPE,
            stdout=out,
        )
        try:
            with progress:
                task = progress.add_task("compress", total=total or None)
                for chunk in iter(lambda: tar.stdout.read(CHUNK_SIZE), b""):
                    pigz.stdin.write(chunk)
                    progress.update(task, advance=len(chunk))
        except BrokenPipeError:
            logger.error("pigz terminated early")
        finally:
            with contextlib.suppress(BrokenPipeError):
                pigz.stdin.close()
            tar.stdout.close()
            tar_rc = tar.wait()
            pigz_rc = pigz.wait()

    return tar_rc or pigz_rc


def _compress_tar(
    backup_dir: Path, archive: Path, on_output: Callable[[str], None]
) -> int:
    cmd = ["tar", "czvf", str(archive), "-C", str(backup_dir.parent), backup_dir.name]
    return __util__.stream_subprocess(cmd, on_output)


def compress_backup(
    backup_dir: Path,
    threads: int,
    original_size: int,
    on_output: Callable[[str], None] | None = None,
    show_progress: bool = True,
) -> CompressResult:
    """Archive ``backup_dir`` and remove it on success.

    On failure the partial archive is removed and the directory is kept.
    """
    archive = archive_path_for(backup_dir)
    on_output = on_output or (lambda line: None)
    use_pigz = __util__.have_command("pigz")
    method = "pigz" if use_pigz else "tar"
    start = time.monotonic()

    logger.info("Starting compression with %d threads...", threads)
    if use_pigz:
        logger.info("Using pigz for parallel compression...")
    else:
        logger.info("Using tar with verbose output...")

    try:
        if use_pigz:
            exit_code = _compress_pigz(
                backup_dir, archive, threads, original_size, show_progress
            )
        else:
            exit_code = _compress_tar(backup_dir, archive, on_output)
        error = f"{method} exited with {exit_code}" if exit_code else ""
    except OSError as e:
        error = str(e)

    result = CompressResult(
        archive=archive,
        success=not error,
        method=method,
        original_size=original_size,
        duration_seconds=time.monotonic() - start,
        error=error,
    )

    if not result.success:
        logger.error("Compression failed (%s), keeping uncompressed backup", error)
        with contextlib.suppress(OSError):
            archive.unlink()
        return result

    result.compressed_size = archive.stat().st_size
    try:
        shutil.rmtree(backup_dir)
    except OSError as e:
        # The archive is complete and stays the final artifact
        logger.warning("Could not remove %s after archiving: %s", backup_dir, e)
    __logger__.log_success(
        logger,
        "Backup compressed to %s (%.2f%% of original)",
        __util__.format_size(result.compressed_size),
        result.ratio_percent or 0.0,
    )
    return result
