"""One backup run, start to finish.

Resolve destination -> privilege check -> lock -> capacity check ->
collect system state -> rsync -> stats, verify, compress, marker,
retention, report.

Once the transfer has started nothing aborts the run: post-processing
failures are logged and recorded, and the exit code is always rsync's raw
exit code.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable

from .. import __logger__, __util__, run_stamp
from ..config import Config
from . import capacity, collect, compress, marker, report, retention, transfer, verify
from .lock import RunLock
from .steps import StepResult, StepStatus, failed, problems
from .target import Prompter, resolve_destination

logger = logging.getLogger(__name__)

LOG_DIR_NAME = retention.LOG_DIR_NAME


@dataclass
class RunContext:
    """Everything one run creates on the destination."""

    mount: Path
    started_at: datetime
    backup_type: str
    backup_dir: Path
    log_file: Path
    marker_file: Path
    final_artifact: Path | None = None
    steps: list[StepResult] = field(default_factory=list)

    @classmethod
    def create(cls, mount: Path, backup_type: str, started_at: datetime) -> "RunContext":
        date, clock = run_stamp(started_at)
        return cls(
            mount=mount,
            started_at=started_at,
            backup_type=backup_type,
            backup_dir=mount / f"backup-{date}-{clock}",
            log_file=mount / LOG_DIR_NAME / f"backup-log-{date}-{clock}.log",
            marker_file=marker.marker_path(mount),
        )

    @property
    def stamp(self) -> str:
        date, clock = run_stamp(self.started_at)
        return f"{date} {clock}"

    @property
    def archive(self) -> Path:
        return compress.archive_path_for(self.backup_dir)


class BackupRun:
    """Executes the backup pipeline for one destination."""

    def __init__(
        self,
        config: Config,
        destination: str | None = None,
        prompter: Prompter | None = None,
        now: Callable[[], datetime] = datetime.now,
        show_progress: bool = True,
    ) -> None:
        self.config = config
        self.destination = destination
        self.prompter = prompter
        self.now = now
        self.show_progress = show_progress
        self._run_log: __logger__.RunLogHandler | None = None
        self._ctx: RunContext | None = None

    def execute(self) -> int:
        """Run the whole pipeline and return rsync's exit code.

        Raises:
            AbortError: Pre-flight failures, before anything is written
        """
        mount = resolve_destination(self.destination, self.config, self.prompter)
        if self.config.backup.require_root:
            __util__.require_root()

        with RunLock(mount):
            ctx = RunContext.create(mount, self.config.backup.backup_type, self.now())
            handler = __logger__.attach_run_log(ctx.log_file)
            self._run_log = handler
            self._ctx = ctx
            try:
                return self._run(ctx)
            finally:
                __logger__.detach_run_log(handler)
                self._run_log = None
                self._ctx = None

    # Pipeline stages

    def _write_raw(self, text: str) -> None:
        """Append raw text to the run log; stop mirroring after a write error."""
        if self._run_log is None:
            return
        try:
            self._run_log.write_raw(text)
        except OSError as e:
            self._run_log = None
            logger.error("Cannot write to run log, raw output no longer mirrored: %s", e)
            if self._ctx is not None:
                self._ctx.steps.append(failed("run log", str(e)))

    def _tee(self, line: str) -> None:
        """Raw external tool output: console and run log."""
        __logger__.cons.out(line, highlight=False)
        self._write_raw(line)

    def _run(self, ctx: RunContext) -> int:
        cfg = self.config.backup
        rule = "=" * 41
        logger.info(rule)
        logger.info("host-backup starting")
        logger.info(rule)
        logger.info("Backup type: %s", cfg.backup_type)
        logger.info("Compression: %s", cfg.compress)
        logger.info("Retention: %d days", cfg.retention_days)

        self._check_capacity(ctx)

        ctx.backup_dir.mkdir(parents=True, exist_ok=False)
        logger.info("Backup directory: %s", ctx.backup_dir)
        ctx.steps += collect.collect_snapshot(ctx.backup_dir, self.config, ctx.started_at)

        result = self._transfer(ctx)
        self._post_process(ctx, result)
        return result.exit_code

    def _check_capacity(self, ctx: RunContext) -> None:
        logger.info("Checking disk space...")
        try:
            check = capacity.check_space(self.config, ctx.mount)
            capacity.log_space_check(check)
            capacity.remediate_low_space(check, self.config, ctx.mount, self.prompter)
        except OSError as e:
            logger.warning("Disk space check failed: %s", e)
            ctx.steps.append(failed("space check", str(e)))

    def _transfer(self, ctx: RunContext) -> transfer.TransferResult:
        newer_than = None
        if self.config.backup.incremental:
            newer_than = marker.read_marker(ctx.marker_file)
            if newer_than is None:
                logger.info("No incremental marker found, performing a full backup")

        logger.info("Starting system backup (this may take a while)...")
        result = transfer.run_transfer(
            self.config.paths.source,
            ctx.backup_dir,
            ctx.mount,
            self.config.paths.all_excludes(),
            newer_than=newer_than,
            on_output=self._tee,
        )

        minutes = int(result.duration_seconds // 60)
        if result.status is transfer.TransferStatus.SUCCESS:
            __logger__.log_success(
                logger, "Backup completed successfully in %d minutes!", minutes
            )
        elif result.status is transfer.TransferStatus.PARTIAL:
            logger.warning(
                "Backup completed with minor errors (exit code: %d)", result.exit_code
            )
        else:
            logger.error("Backup failed with exit code %d", result.exit_code)
        return result

    def _step(self, ctx: RunContext, name: str, func, *args, **kwargs):
        """Run a post-processing step; failures are logged, never raised."""
        try:
            return func(*args, **kwargs)
        except Exception as e:
            logger.error("%s failed: %s", name, e)
            ctx.steps.append(failed(name, str(e)))
            return None

    def _post_process(self, ctx: RunContext, result: transfer.TransferResult) -> None:
        cfg = self.config.backup
        ctx.final_artifact = ctx.backup_dir

        stats = self._step(ctx, "statistics", verify.collect_stats, ctx.backup_dir)
        if stats is not None:
            logger.info(
                "Backup statistics: %s, %d files",
                __util__.format_size(stats.total_bytes),
                stats.file_count,
            )

        if cfg.verify:
            self._step(ctx, "verification", self._verify, ctx, result)

        if cfg.compress:
            self._step(ctx, "compression", self._compress, ctx, stats)

        self._step(
            ctx,
            "incremental marker",
            marker.update_marker,
            ctx.marker_file,
            ctx.started_at,
            result.exit_code,
        )

        self._step(ctx, "retention", self._apply_retention, ctx)

        usage = self._step(ctx, "disk usage", report.disk_usage_report, ctx.mount)
        if usage:
            logger.info("Final disk usage:")
            self._tee(usage)

        self._step(
            ctx,
            "restore instructions",
            report.write_restore_instructions,
            ctx.mount,
            ctx.final_artifact,
            ctx.stamp,
        )

        self._summarise(ctx, result)

        if cfg.email_report:
            subject, body = report.build_email(
                result.exit_code, ctx.final_artifact, ctx.log_file, problems(ctx.steps)
            )
            ctx.steps.append(report.send_email_report(cfg.email_report, subject, body))

    def _verify(self, ctx: RunContext, result: transfer.TransferResult) -> None:
        logger.info("Performing quick verification...")
        rep = verify.verify_backup(
            ctx.backup_dir / "system",
            self.config.paths.verify_files,
            self.config.paths.source,
            incremental=result.newer_than is not None,
        )
        if rep.failed == 0:
            __logger__.log_success(
                logger,
                "Backup verification passed (%d checked, %d skipped)",
                rep.passed,
                rep.skipped,
            )
        else:
            logger.warning(
                "Backup verification found %d issues out of %d files",
                rep.failed,
                rep.total,
            )
            ctx.steps.append(failed("verification", f"{rep.failed} canonical file(s) missing"))

    def _compress(self, ctx: RunContext, stats: verify.BackupStats | None) -> None:
        outcome = compress.compress_backup(
            ctx.backup_dir,
            self.config.backup.max_parallel,
            stats.total_bytes if stats else 0,
            on_output=self._tee,
            show_progress=self.show_progress,
        )
        logger.info("Compression took %d minutes", int(outcome.duration_seconds // 60))
        if outcome.success:
            ctx.final_artifact = outcome.archive
        else:
            ctx.steps.append(failed("compression", outcome.error))

    def _apply_retention(self, ctx: RunContext) -> None:
        cfg = self.config.backup
        logger.info(
            "Cleaning up old backups (older than %d days)...", cfg.retention_days
        )
        protect = [ctx.backup_dir, ctx.archive]
        backups = retention.prune_backups(ctx.mount, cfg.retention_days, protect=protect)
        logs = retention.prune_logs(
            ctx.log_file.parent, cfg.log_retention_days, protect=[ctx.log_file]
        )
        for error in backups.errors + logs.errors:
            ctx.steps.append(failed("retention", error))

    def _summarise(self, ctx: RunContext, result: transfer.TransferResult) -> None:
        rule = "=" * 41
        minutes = int(result.duration_seconds // 60)
        if result.acceptable:
            level = __logger__.SUCCESS
            outcome = "Backup process completed successfully!"
        else:
            level = logging.ERROR
            outcome = "Backup process finished with a failed transfer"
        logger.log(level, rule)
        logger.log(level, outcome)
        logger.log(level, "Final backup: %s", ctx.final_artifact)
        logger.log(level, "Total duration: %d minutes", minutes)
        logger.log(level, "Log file: %s", ctx.log_file)
        logger.log(level, rule)
        for step in problems(ctx.steps):
            level = logging.ERROR if step.status is StepStatus.FAILED else logging.WARNING
            logger.log(level, "Step %s", step)
