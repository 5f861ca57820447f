"""Tests for the CLI dispatcher."""

from unittest import mock

import pytest

from host_backup import __version__
from host_backup.cli.dispatcher import (
    create_subcommand_parser,
    main,
    normalize_argv,
    run_subcommand,
)


class TestNormalizeArgv:
    """Tests for the implicit run subcommand."""

    def test_no_arguments_means_run(self):
        assert normalize_argv([]) == ["run"]

    def test_path_first(self):
        assert normalize_argv(["/mnt/backup"]) == ["run", "/mnt/backup"]

    def test_options_before_path(self):
        assert normalize_argv(["-q", "-c", "cfg.toml", "/mnt/b"]) == [
            "-q", "-c", "cfg.toml", "run", "/mnt/b",
        ]

    def test_config_value_is_not_a_command(self):
        """The argument of -c must not be mistaken for a destination."""
        assert normalize_argv(["-c", "status"]) == ["-c", "status", "run"]

    def test_known_subcommand_untouched(self):
        argv = ["prune", "/mnt/b", "--dry-run"]
        assert normalize_argv(argv) == argv

    def test_options_only(self):
        assert normalize_argv(["--non-interactive"]) == ["--non-interactive", "run"]

    @pytest.mark.parametrize("flag", ["-h", "--help", "-V", "--version"])
    def test_info_flags(self, flag):
        assert normalize_argv([flag]) == [flag]


class TestParser:
    """Tests for create_subcommand_parser."""

    def test_run_options(self):
        parser = create_subcommand_parser()
        args = parser.parse_args(
            ["run", "/mnt/b", "--type", "incremental", "--no-compress", "--email", "a@b"]
        )
        assert args.command == "run"
        assert args.destination == "/mnt/b"
        assert args.backup_type == "incremental"
        assert args.no_compress is True
        assert args.email == "a@b"

    def test_global_options_before_subcommand_survive(self):
        """Options given before the subcommand are not reset by it."""
        parser = create_subcommand_parser()
        args = parser.parse_args(["-q", "--non-interactive", "run"])
        assert args.quiet is True
        assert args.non_interactive is True

    def test_global_options_after_subcommand(self):
        parser = create_subcommand_parser()
        args = parser.parse_args(["status", "/mnt/b", "--debug", "-c", "x.toml"])
        assert args.debug is True
        assert args.config == "x.toml"

    def test_prune_requires_destination(self):
        parser = create_subcommand_parser()
        with pytest.raises(SystemExit):
            parser.parse_args(["prune"])

    def test_invalid_backup_type(self):
        parser = create_subcommand_parser()
        with pytest.raises(SystemExit):
            parser.parse_args(["run", "--type", "differential"])

    def test_config_init_output(self):
        parser = create_subcommand_parser()
        args = parser.parse_args(["config", "init", "-o", "out.toml"])
        assert args.config_action == "init"
        assert args.output == "out.toml"


class TestRunSubcommand:
    """Tests for handler routing."""

    def test_version(self, capsys):
        parser = create_subcommand_parser()
        assert run_subcommand(parser.parse_args(["-V"])) == 0
        assert __version__ in capsys.readouterr().out

    def test_routes_to_handler(self):
        with mock.patch("host_backup.cli.prune.execute_prune", return_value=0) as handler:
            assert main(["prune", "/mnt/b", "--dry-run"]) == 0
        args = handler.call_args[0][0]
        assert args.dry_run is True

    def test_bare_path_routes_to_run(self):
        with mock.patch("host_backup.cli.run.execute_run", return_value=23) as handler:
            assert main(["/mnt/b"]) == 23
        assert handler.call_args[0][0].destination == "/mnt/b"
