"""Estimate command: Check free space on a destination before a run."""

import argparse
import json
import logging

from .. import __util__
from ..__logger__ import create_logger
from ..core import capacity
from ..core.target import ConsolePrompter, resolve_destination
from .common import get_log_level, load_cli_config

logger = logging.getLogger(__name__)


def execute_estimate(args: argparse.Namespace) -> int:
    """Execute the estimate command.

    Runs the same capacity check a backup starts with, without writing
    anything to the destination.

    Args:
        args: Parsed command line arguments

    Returns:
        Exit code (0 enough space, 2 low space, 1 error)
    """
    log_level = get_log_level(args)
    create_logger(level=log_level)

    config = load_cli_config(args)
    if config is None:
        return 1

    prompter = ConsolePrompter() if config.backup.interactive else None
    try:
        destination = resolve_destination(
            getattr(args, "destination", None), config, prompter
        )
        check = capacity.check_space(config, destination)
    except __util__.AbortError as e:
        logger.error("%s", e)
        return 1
    except OSError as e:
        logger.error("Space check failed: %s", e)
        return 1

    if getattr(args, "json", False):
        data = {
            "destination": str(destination),
            "available_bytes": check.available,
            "source_estimate_bytes": check.source_estimate,
            "required_bytes": check.required,
            "margin_bytes": check.margin,
            "compressed": check.compressed,
            "low_space": check.low_space,
        }
        print(json.dumps(data, indent=2))
    else:
        logger.info(__util__.log_heading(f"Space check for {destination}"))
        capacity.log_space_check(check)
        if not check.low_space:
            logger.info("Enough space for a backup")

    return 2 if check.low_space else 0
