"""Shared CLI utilities and argument parsers."""

import argparse
import logging

from ..config import Config, ConfigError, load_effective_config

logger = logging.getLogger(__name__)


def add_verbosity_args(parser: argparse.ArgumentParser) -> None:
    """Add verbosity-related arguments to a parser."""
    group = parser.add_argument_group("Output options")
    group.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose output",
    )
    group.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Suppress non-essential output",
    )
    group.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug output",
    )


def add_destination_arg(parser: argparse.ArgumentParser, required: bool = False) -> None:
    """Add the destination mount point positional argument."""
    parser.add_argument(
        "destination",
        nargs=None if required else "?",
        metavar="DESTINATION",
        help="Mount point to back up to"
        + ("" if required else " (prompted for when omitted)"),
    )


def get_log_level(args: argparse.Namespace) -> str:
    """Determine log level from parsed arguments.

    Args:
        args: Parsed command line arguments

    Returns:
        Log level string (DEBUG, INFO, WARNING, ERROR)
    """
    if getattr(args, "debug", False):
        return "DEBUG"
    elif getattr(args, "quiet", False):
        return "WARNING"
    elif getattr(args, "verbose", False):
        return "DEBUG"
    else:
        return "INFO"


def load_cli_config(args: argparse.Namespace) -> Config | None:
    """Load defaults, config file and environment, then apply CLI flags.

    Returns:
        The effective Config, or None after logging a configuration error
    """
    try:
        config, config_path, warnings = load_effective_config(
            getattr(args, "config", None)
        )
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        return None

    if config_path is not None:
        logger.debug("Loaded configuration from: %s", config_path)
    for warning in warnings:
        logger.warning("Config: %s", warning)

    if getattr(args, "non_interactive", False):
        config.backup.interactive = False
    return config
