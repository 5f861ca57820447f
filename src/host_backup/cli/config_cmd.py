"""Config command: Configuration management."""

import argparse
import logging

from ..__logger__ import create_logger
from ..config import ConfigError, load_effective_config
from ..config.loader import CONFIG_PATHS, generate_example_config
from .common import get_log_level

logger = logging.getLogger(__name__)


def execute_config(args: argparse.Namespace) -> int:
    """Execute the config command.

    Args:
        args: Parsed command line arguments

    Returns:
        Exit code
    """
    log_level = get_log_level(args)
    create_logger(level=log_level)

    action = getattr(args, "config_action", None)

    if action == "validate":
        return _validate_config(args)
    elif action == "init":
        return _init_config(args)
    else:
        print("Usage: host-backup config <validate|init>")
        return 1


def _validate_config(args: argparse.Namespace) -> int:
    """Validate the configuration file and environment overrides."""
    try:
        config, config_path, warnings = load_effective_config(
            getattr(args, "config", None)
        )
    except ConfigError as e:
        print(f"Configuration error: {e}")
        return 1

    if config_path is None:
        print("No configuration file found, using defaults.")
        print("Searched locations:")
        for path in CONFIG_PATHS:
            print(f"  {path}")
    else:
        print(f"Validating: {config_path}")

    if warnings:
        print("")
        print("Warnings:")
        for warning in warnings:
            print(f"  - {warning}")

    backup = config.backup
    print("")
    print("Configuration is valid.")
    print(f"  Backup type: {backup.backup_type}")
    print(f"  Retention: {backup.retention_days} days (logs {backup.log_retention_days})")
    print(f"  Compression: {backup.compress} ({backup.max_parallel} threads)")
    print(f"  Verification: {backup.verify}")
    print(f"  Interactive: {backup.interactive}")
    print(f"  Email report: {backup.email_report or 'disabled'}")
    print(f"  Excludes: {len(config.paths.all_excludes())}")

    return 0


def _init_config(args: argparse.Namespace) -> int:
    """Generate example configuration."""
    content = generate_example_config()

    output = getattr(args, "output", None)
    if output:
        try:
            with open(output, "w") as f:
                f.write(content)
            print(f"Example configuration written to: {output}")
        except OSError as e:
            print(f"Error writing file: {e}")
            return 1
    else:
        print(content)

    return 0
