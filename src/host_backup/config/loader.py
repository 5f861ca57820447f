"""TOML configuration loading and validation.

Handles config file discovery, parsing, environment overrides and
validation with helpful error messages.
"""

import os
import tomllib
from pathlib import Path
from typing import Any, Mapping

from .schema import BACKUP_TYPES, BackupConfig, Config, PathsConfig


class ConfigError(Exception):
    """Configuration loading or validation error."""

    pass


# Config file search paths in priority order
CONFIG_PATHS = [
    Path.home() / ".config" / "host-backup" / "config.toml",
    Path("/etc/host-backup/config.toml"),
]

# Environment variable -> BackupConfig field
ENV_OVERRIDES = {
    "RETENTION_DAYS": "retention_days",
    "COMPRESS_BACKUP": "compress",
    "VERIFY_BACKUP": "verify",
    "MAX_PARALLEL": "max_parallel",
    "BACKUP_TYPE": "backup_type",
    "EMAIL_REPORT": "email_report",
    "BACKUP_INTERACTIVE": "interactive",
}

_TRUE = {"true", "yes", "1", "on"}
_FALSE = {"false", "no", "0", "off"}


def find_config_file(explicit_path: str | None = None) -> Path | None:
    """Find configuration file.

    Args:
        explicit_path: Explicitly specified config path (highest priority)

    Returns:
        Path to config file, or None if not found
    """
    if explicit_path:
        path = Path(explicit_path)
        if path.exists():
            return path
        raise ConfigError(f"Config file not found: {explicit_path}")

    for path in CONFIG_PATHS:
        if path.exists():
            return path

    return None


def parse_bool(value: Any, name: str) -> bool:
    """Interpret a TOML or environment value as a boolean."""
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ConfigError(f"'{name}' must be true or false, got {value!r}")


def parse_int(value: Any, name: str, minimum: int = 0) -> int:
    """Interpret a TOML or environment value as a bounded integer."""
    if isinstance(value, bool):
        raise ConfigError(f"'{name}' must be an integer, got {value!r}")
    try:
        number = int(str(value).strip())
    except ValueError:
        raise ConfigError(f"'{name}' must be an integer, got {value!r}")
    if number < minimum:
        raise ConfigError(f"'{name}' must be >= {minimum}, got {number}")
    return number


def _parse_backup_type(value: Any) -> str:
    backup_type = str(value).strip().lower()
    if backup_type not in BACKUP_TYPES:
        raise ConfigError(
            f"'backup_type' must be one of {', '.join(BACKUP_TYPES)}, got {value!r}"
        )
    return backup_type


def _parse_str_list(data: dict[str, Any], key: str, default: list[str]) -> list[str]:
    value = data.get(key, default)
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigError(f"'{key}' must be a list of strings")
    return list(value)


def _set_backup_field(backup: BackupConfig, name: str, value: Any) -> None:
    """Convert and assign a single BackupConfig field."""
    if name == "backup_type":
        backup.backup_type = _parse_backup_type(value)
    elif name in ("compress", "verify", "interactive", "allow_unmounted",
                  "auto_clean", "require_root"):
        setattr(backup, name, parse_bool(value, name))
    elif name == "max_parallel":
        backup.max_parallel = parse_int(value, name, minimum=1)
    elif name in ("retention_days", "log_retention_days", "space_margin_gb"):
        setattr(backup, name, parse_int(value, name))
    elif name == "compression_estimate":
        try:
            ratio = float(value)
        except (TypeError, ValueError):
            raise ConfigError(f"'{name}' must be a number, got {value!r}")
        if not 0 < ratio <= 1:
            raise ConfigError(f"'{name}' must be in (0, 1], got {ratio}")
        backup.compression_estimate = ratio
    elif name in ("email_report", "default_device"):
        setattr(backup, name, str(value).strip())
    else:
        raise ConfigError(f"Unknown backup option '{name}'")


def _parse_backup(data: dict[str, Any]) -> BackupConfig:
    """Parse the [backup] table."""
    backup = BackupConfig()
    for key, value in data.items():
        _set_backup_field(backup, key, value)
    return backup


def _parse_paths(data: dict[str, Any]) -> PathsConfig:
    """Parse the [paths] table."""
    defaults = PathsConfig()
    return PathsConfig(
        source=str(data.get("source", defaults.source)),
        excludes=_parse_str_list(data, "excludes", defaults.excludes),
        extra_excludes=_parse_str_list(data, "extra_excludes", []),
        config_files=_parse_str_list(data, "config_files", defaults.config_files),
        repository_sources=_parse_str_list(
            data, "repository_sources", defaults.repository_sources
        ),
        verify_files=_parse_str_list(data, "verify_files", defaults.verify_files),
    )


def apply_env_overrides(
    config: Config, environ: Mapping[str, str] | None = None
) -> list[str]:
    """Apply the environment variables documented for the backup script.

    Returns the names of the variables that were applied.
    """
    environ = os.environ if environ is None else environ
    applied = []
    for var, name in ENV_OVERRIDES.items():
        # An empty variable falls back to the default, like ${VAR:-default}
        if not environ.get(var, "").strip():
            continue
        try:
            _set_backup_field(config.backup, name, environ[var])
        except ConfigError as e:
            raise ConfigError(f"{var}: {e}")
        applied.append(var)
    return applied


def _validate_config(config: Config) -> list[str]:
    """Validate configuration and return list of warnings."""
    warnings = []

    if not config.paths.source.startswith("/"):
        warnings.append(f"Source '{config.paths.source}' is not an absolute path")

    if config.backup.retention_days == 0:
        warnings.append("retention_days = 0 removes every previous backup")

    if not config.backup.compress and config.backup.max_parallel != 4:
        warnings.append("max_parallel has no effect when compress = false")

    if config.backup.auto_clean and config.backup.interactive:
        warnings.append("auto_clean only applies to non-interactive runs")

    for name in config.paths.verify_files:
        if name.startswith("/"):
            warnings.append(f"verify_files entry '{name}' should be relative")

    excludes = config.paths.all_excludes()
    if len(excludes) != len(set(excludes)):
        warnings.append("Duplicate exclude patterns detected")

    return warnings


def load_config(path: Path | str) -> tuple[Config, list[str]]:
    """Load and validate configuration from TOML file.

    Args:
        path: Path to configuration file

    Returns:
        Tuple of (Config object, list of warnings)

    Raises:
        ConfigError: If config is invalid or cannot be parsed
    """
    path = Path(path)

    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML syntax: {e}")
    except OSError as e:
        raise ConfigError(f"Cannot read config file: {e}")

    unknown = set(data) - {"backup", "paths"}
    if unknown:
        raise ConfigError(f"Unknown section(s): {', '.join(sorted(unknown))}")

    config = Config(
        backup=_parse_backup(data.get("backup", {})),
        paths=_parse_paths(data.get("paths", {})),
    )

    return config, _validate_config(config)


def load_effective_config(
    explicit_path: str | None = None, environ: Mapping[str, str] | None = None
) -> tuple[Config, Path | None, list[str]]:
    """Defaults, then the config file (if any), then the environment.

    Returns:
        Tuple of (Config, path of the file used or None, warnings)
    """
    config_path = find_config_file(explicit_path)
    if config_path is None:
        config, warnings = Config(), []
    else:
        config, warnings = load_config(config_path)

    apply_env_overrides(config, environ)
    return config, config_path, warnings


def generate_example_config() -> str:
    """Generate example configuration file content."""
    return """# host-backup configuration
# Environment variables (RETENTION_DAYS, COMPRESS_BACKUP, VERIFY_BACKUP,
# MAX_PARALLEL, BACKUP_TYPE, EMAIL_REPORT, BACKUP_INTERACTIVE) override
# the values below.

[backup]
retention_days = 7          # Remove backups older than this
log_retention_days = 30     # Remove run logs older than this
compress = true             # Produce backup-<date>-<time>.tar.gz
verify = true               # Check canonical files after the transfer
max_parallel = 4            # pigz threads
backup_type = "full"        # "full" or "incremental"
# email_report = "root@localhost"

# Unattended (cron) runs
interactive = true
allow_unmounted = false     # Accept a destination that is not a mount point
auto_clean = false          # Prune old backups on low space without asking

default_device = "/dev/sdb1"
space_margin_gb = 10

[paths]
source = "/"
# extra_excludes = ["/srv/scratch"]
config_files = [
    "/etc/fstab",
    "/etc/hosts",
    "/etc/hostname",
    "/etc/network/interfaces",
    "/etc/crontab",
]
"""
