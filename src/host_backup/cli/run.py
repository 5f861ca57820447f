"""Run command: Back up this host to a mounted destination."""

import argparse
import logging

from .. import __util__
from ..__logger__ import create_logger
from ..config import Config
from ..core.pipeline import BackupRun
from ..core.target import ConsolePrompter
from .common import get_log_level, load_cli_config

logger = logging.getLogger(__name__)


def apply_run_flags(config: Config, args: argparse.Namespace) -> Config:
    """Layer the run-only command line flags over the effective config."""
    backup = config.backup
    if getattr(args, "backup_type", None):
        backup.backup_type = args.backup_type
    if getattr(args, "no_compress", False):
        backup.compress = False
    if getattr(args, "no_verify", False):
        backup.verify = False
    if getattr(args, "email", None):
        backup.email_report = args.email
    if getattr(args, "allow_unmounted", False):
        backup.allow_unmounted = True
    return config


def execute_run(args: argparse.Namespace) -> int:
    """Execute the run command.

    Args:
        args: Parsed command line arguments

    Returns:
        rsync's exit code once the transfer has started, 1 for a
        pre-flight abort, 130 when interrupted
    """
    # Initialize logger
    log_level = get_log_level(args)
    create_logger(level=log_level)

    config = load_cli_config(args)
    if config is None:
        return 1
    apply_run_flags(config, args)

    prompter = ConsolePrompter() if config.backup.interactive else None
    run = BackupRun(
        config,
        destination=getattr(args, "destination", None),
        prompter=prompter,
        show_progress=not getattr(args, "no_progress", False),
    )

    try:
        return run.execute()
    except __util__.AbortError as e:
        logger.error("%s", e)
        return 1
    except OSError as e:
        logger.error("Backup aborted: %s", e)
        return 1
    except KeyboardInterrupt:
        logger.error("Interrupted")
        return 130
