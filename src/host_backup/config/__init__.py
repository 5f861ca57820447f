"""Configuration system for host-backup.

This module provides TOML-based configuration loading, environment
overrides, validation and schema definitions.
"""

from .loader import (
    ConfigError,
    apply_env_overrides,
    find_config_file,
    load_config,
    load_effective_config,
)
from .schema import BackupConfig, Config, PathsConfig

__all__ = [
    "BackupConfig",
    "PathsConfig",
    "Config",
    "load_config",
    "load_effective_config",
    "apply_env_overrides",
    "find_config_file",
    "ConfigError",
]
