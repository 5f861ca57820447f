"""CLI dispatcher.

``host-backup /mnt/backup`` (or no arguments at all) keeps working as the
one-shot backup command; everything else goes through subcommands.
"""

import argparse
import sys
from typing import Callable

from .common import add_destination_arg, add_verbosity_args

# Known subcommands
SUBCOMMANDS = frozenset(
    {
        "run",
        "estimate",
        "prune",
        "status",
        "config",
    }
)

# Global options that consume the next argument
_OPTIONS_WITH_VALUE = frozenset({"-c", "--config"})
_INFO_FLAGS = frozenset({"-h", "--help", "-V", "--version"})


def normalize_argv(argv: list[str]) -> list[str]:
    """Insert the implicit ``run`` subcommand where needed.

    The first positional argument decides: a known subcommand is left
    alone, anything else (a destination path) gets ``run`` in front of it.
    Without any positional argument ``run`` is appended, unless help or
    version output was requested.

    Args:
        argv: Command line arguments (without program name)

    Returns:
        Arguments ready for the subcommand parser
    """
    skip_next = False
    for i, arg in enumerate(argv):
        if skip_next:
            skip_next = False
            continue
        if arg in _OPTIONS_WITH_VALUE:
            skip_next = True
            continue
        if arg.startswith("-"):
            continue
        if arg in SUBCOMMANDS:
            return list(argv)
        return argv[:i] + ["run"] + argv[i:]

    if any(arg in _INFO_FLAGS for arg in argv):
        return list(argv)
    return list(argv) + ["run"]


def _add_run_control_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-c",
        "--config",
        metavar="FILE",
        help="Path to configuration file",
    )
    parser.add_argument(
        "--non-interactive",
        action="store_true",
        help="Never prompt (for cron); see allow_unmounted and auto_clean",
    )


def create_subcommand_parser() -> argparse.ArgumentParser:
    """Create the main argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        prog="host-backup",
        description="Full or incremental rsync backup of this host to a mounted disk",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    add_verbosity_args(parser)
    _add_run_control_args(parser)

    parser.add_argument(
        "-V",
        "--version",
        action="store_true",
        help="Show version and exit",
    )

    # Same options after the subcommand, without clobbering the ones above
    shared = argparse.ArgumentParser(add_help=False, argument_default=argparse.SUPPRESS)
    add_verbosity_args(shared)
    _add_run_control_args(shared)

    subparsers = parser.add_subparsers(
        dest="command",
        title="commands",
        description="Available commands (use 'command --help' for details)",
    )

    # run command
    run_parser = subparsers.add_parser(
        "run",
        parents=[shared],
        help="Back up this host (default command)",
        description="Collect system state, rsync the root filesystem, "
        "verify, compress, rotate and report",
    )
    add_destination_arg(run_parser)
    run_parser.add_argument(
        "--type",
        dest="backup_type",
        choices=["full", "incremental"],
        help="Backup type (overrides BACKUP_TYPE)",
    )
    run_parser.add_argument(
        "--no-compress",
        action="store_true",
        help="Keep the uncompressed backup directory",
    )
    run_parser.add_argument(
        "--no-verify",
        action="store_true",
        help="Skip the canonical file check",
    )
    run_parser.add_argument(
        "--email",
        metavar="ADDRESS",
        help="Mail a report to ADDRESS (overrides EMAIL_REPORT)",
    )
    run_parser.add_argument(
        "--allow-unmounted",
        action="store_true",
        help="Accept a destination that is not a mount point",
    )
    run_parser.add_argument(
        "--no-progress",
        action="store_true",
        help="Do not show the compression progress bar",
    )

    # estimate command
    estimate_parser = subparsers.add_parser(
        "estimate",
        parents=[shared],
        help="Check free space on a destination",
        description="Compare free space with the estimated backup size",
    )
    add_destination_arg(estimate_parser)
    estimate_parser.add_argument(
        "--json",
        action="store_true",
        help="Output in JSON format",
    )

    # prune command
    prune_parser = subparsers.add_parser(
        "prune",
        parents=[shared],
        help="Apply retention to a destination",
        description="Remove backups and logs older than the retention window",
    )
    add_destination_arg(prune_parser, required=True)
    prune_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be deleted without making changes",
    )
    prune_parser.add_argument(
        "--days",
        type=int,
        metavar="N",
        help="Retention window in days (overrides RETENTION_DAYS)",
    )

    # status command
    status_parser = subparsers.add_parser(
        "status",
        parents=[shared],
        help="Show backups on a destination",
        description="List backups, the incremental marker and the last log",
    )
    add_destination_arg(status_parser, required=True)

    # config command with subcommands
    config_parser = subparsers.add_parser(
        "config",
        parents=[shared],
        help="Configuration management",
        description="Validate or initialize configuration",
    )
    config_subs = config_parser.add_subparsers(dest="config_action")

    config_subs.add_parser(
        "validate",
        help="Validate configuration file and environment",
    )

    init_parser = config_subs.add_parser(
        "init",
        help="Generate example configuration",
    )
    init_parser.add_argument(
        "-o",
        "--output",
        metavar="FILE",
        help="Output file (default: stdout)",
    )

    return parser


def run_subcommand(args: argparse.Namespace) -> int:
    """Run the specified subcommand.

    Args:
        args: Parsed arguments

    Returns:
        Exit code
    """
    from .. import __version__

    if args.version:
        print(f"host-backup {__version__}")
        return 0

    if not args.command:
        print("No command specified. Use --help for usage information.")
        return 1

    # Route to appropriate command handler
    handlers: dict[str, Callable] = {
        "run": cmd_run,
        "estimate": cmd_estimate,
        "prune": cmd_prune,
        "status": cmd_status,
        "config": cmd_config,
    }

    handler = handlers.get(args.command)
    if handler:
        return handler(args)
    else:
        print(f"Unknown command: {args.command}")
        return 1


def cmd_run(args: argparse.Namespace) -> int:
    """Execute run command."""
    from .run import execute_run

    return execute_run(args)


def cmd_estimate(args: argparse.Namespace) -> int:
    """Execute estimate command."""
    from .estimate import execute_estimate

    return execute_estimate(args)


def cmd_prune(args: argparse.Namespace) -> int:
    """Execute prune command."""
    from .prune import execute_prune

    return execute_prune(args)


def cmd_status(args: argparse.Namespace) -> int:
    """Execute status command."""
    from .status import execute_status

    return execute_status(args)


def cmd_config(args: argparse.Namespace) -> int:
    """Execute config command."""
    from .config_cmd import execute_config

    return execute_config(args)


def main(argv: list[str] | None = None) -> int:
    """Main entry point for host-backup CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    if argv is None:
        argv = sys.argv[1:]

    parser = create_subcommand_parser()
    args = parser.parse_args(normalize_argv(argv))

    return run_subcommand(args)
