"""Configuration schema definitions using dataclasses.

Defines the structure for TOML configuration with sensible defaults.
"""

from dataclasses import dataclass, field

BACKUP_TYPES = ("full", "incremental")

# Paths never copied by rsync (the destination mount is added at runtime)
DEFAULT_EXCLUDES = [
    "/proc",
    "/sys",
    "/dev",
    "/tmp",
    "/run",
    "/mnt",
    "/media",
    "/lost+found",
    "*.cache",
    "*.tmp",
    "*.log",
    "/var/log/*",
    "/var/cache/*",
    "/var/tmp/*",
    "/swapfile",
    "/swap.img",
    "/home/*/.cache",
    "/home/*/.local/share/Trash",
]

DEFAULT_CONFIG_FILES = [
    "/etc/fstab",
    "/etc/hosts",
    "/etc/hostname",
    "/etc/network/interfaces",
    "/etc/crontab",
]

DEFAULT_REPOSITORY_SOURCES = [
    "/etc/apt/sources.list",
    "/etc/apt/sources.list.d",
]

DEFAULT_VERIFY_FILES = [
    "etc/hostname",
    "etc/passwd",
    "etc/fstab",
]


@dataclass
class BackupConfig:
    """Run behaviour settings.

    Attributes:
        retention_days: Backups older than this many days are removed
        log_retention_days: Run logs older than this many days are removed
        compress: Archive the backup directory into a .tar.gz
        verify: Check canonical files after the transfer
        max_parallel: Compression threads passed to pigz
        backup_type: "full" or "incremental"
        email_report: Address for the summary mail (empty disables it)
        interactive: Whether prompts may be shown (attended run)
        allow_unmounted: Accept a destination that is not a mount point
        auto_clean: Prune old backups on low space without asking
        require_root: Refuse to run unless uid 0
        default_device: Device whose mount point is used as fallback
        space_margin_gb: Free space to keep on top of the estimate
        compression_estimate: Assumed archive size relative to the source
    """

    retention_days: int = 7
    log_retention_days: int = 30
    compress: bool = True
    verify: bool = True
    max_parallel: int = 4
    backup_type: str = "full"
    email_report: str = ""
    interactive: bool = True
    allow_unmounted: bool = False
    auto_clean: bool = False
    require_root: bool = True
    default_device: str = "/dev/sdb1"
    space_margin_gb: int = 10
    compression_estimate: float = 0.5

    @property
    def incremental(self) -> bool:
        return self.backup_type == "incremental"


@dataclass
class PathsConfig:
    """What gets backed up and checked.

    Attributes:
        source: Root of the tree handed to rsync
        excludes: rsync exclude patterns
        extra_excludes: Additional patterns appended to ``excludes``
        config_files: Files copied into configs/
        repository_sources: Package repository definitions to copy
        verify_files: Paths (relative to source) checked after transfer
    """

    source: str = "/"
    excludes: list[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDES))
    extra_excludes: list[str] = field(default_factory=list)
    config_files: list[str] = field(default_factory=lambda: list(DEFAULT_CONFIG_FILES))
    repository_sources: list[str] = field(
        default_factory=lambda: list(DEFAULT_REPOSITORY_SOURCES)
    )
    verify_files: list[str] = field(default_factory=lambda: list(DEFAULT_VERIFY_FILES))

    def all_excludes(self) -> list[str]:
        return self.excludes + [e for e in self.extra_excludes if e not in self.excludes]


@dataclass
class Config:
    """Root configuration object.

    Attributes:
        backup: Run behaviour settings
        paths: Source, exclusion and check lists
    """

    backup: BackupConfig = field(default_factory=BackupConfig)
    paths: PathsConfig = field(default_factory=PathsConfig)
