"""Pytest configuration and shared fixtures."""

import subprocess
from pathlib import Path

import pytest

from host_backup import __util__
from host_backup.config import Config
from host_backup.config.loader import ENV_OVERRIDES


class FakeCommands:
    """Stand-in for the external tools, keyed by program name.

    ``responses`` maps a program to (returncode, stdout); programs listed in
    ``missing`` raise FileNotFoundError like a missing executable would.
    Every call is recorded in ``calls``.
    """

    def __init__(self):
        self.responses = {
            "mountpoint": (1, ""),
            "findmnt": (1, ""),
            "du": (0, "1000\t/\n"),
            "df": (0, "Filesystem Size Used Avail Use% Mounted on\n/dev/sdb1 1T 1G 1T 1% /mnt\n"),
            "uname": (0, "6.1.0-test\n"),
            "uptime": (0, " 10:00:00 up 1 day\n"),
            "lsb_release": (0, "Description:\tTest Linux 1.0\n"),
            "dpkg": (0, "bash\t\t\t\t\tinstall\ncoreutils\t\t\t\tinstall\n"),
            "apt": (0, "bash/stable,now 5.2 amd64 [installed]\n"),
            "snap": (0, "Name Version\ncore 16\n"),
            "find": (0, ""),
            "mail": (0, ""),
        }
        self.missing = set()
        self.find_output = b""
        self.calls = []

    def find_call(self, program):
        for call in self.calls:
            if call[0] == program:
                return call
        return None

    def __call__(self, command, method="run", **kwargs):
        self.calls.append(list(command))
        program = command[0]
        if program in self.missing:
            raise FileNotFoundError(program)
        returncode, stdout = self.responses.get(program, (0, ""))

        # find writes its NUL separated list to the file it was given
        out = kwargs.get("stdout")
        if program == "find" and hasattr(out, "write"):
            out.write(self.find_output)
            stdout = None
        return subprocess.CompletedProcess(command, returncode, stdout, "")


class FakeRsync:
    """Stand-in for stream_subprocess running rsync.

    Copies the files under ``source`` into the destination argument and
    returns ``exit_code``.
    """

    def __init__(self, exit_code=0):
        self.exit_code = exit_code
        self.commands = []

    def __call__(self, command, on_line, **kwargs):
        self.commands.append(list(command))
        if command[0] != "rsync":
            return 0
        source, dest = Path(command[-2]), Path(command[-1])
        for path in source.rglob("*"):
            if path.is_file():
                target = dest / path.relative_to(source)
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_bytes(path.read_bytes())
        on_line("sent 1,000 bytes  received 35 bytes")
        return self.exit_code


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep the host's config files and environment out of the tests."""
    monkeypatch.setattr(
        "host_backup.config.loader.CONFIG_PATHS", [tmp_path / "no-such-config.toml"]
    )
    for var in ENV_OVERRIDES:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def fake_commands(monkeypatch):
    """Replace every external tool call with a FakeCommands instance."""
    fake = FakeCommands()
    monkeypatch.setattr(__util__, "exec_subprocess", fake)
    return fake


@pytest.fixture
def fake_rsync(monkeypatch):
    """Replace streamed commands (rsync, tar) with a FakeRsync instance."""
    fake = FakeRsync()
    monkeypatch.setattr(__util__, "stream_subprocess", fake)
    return fake


@pytest.fixture
def source_tree(tmp_path):
    """A small host tree with the canonical files."""
    root = tmp_path / "source"
    (root / "etc" / "apt" / "sources.list.d").mkdir(parents=True)
    (root / "etc" / "hostname").write_text("testhost\n")
    (root / "etc" / "passwd").write_text("root:x:0:0:root:/root:/bin/bash\n")
    (root / "etc" / "fstab").write_text("/dev/sda1 / ext4 defaults 0 1\n")
    (root / "etc" / "apt" / "sources.list").write_text("deb http://deb.example stable main\n")
    (root / "etc" / "apt" / "sources.list.d" / "extra.list").write_text("deb http://x y z\n")
    (root / "home" / "user").mkdir(parents=True)
    (root / "home" / "user" / "notes.txt").write_text("hello\n")
    return root


@pytest.fixture
def mount(tmp_path):
    """An empty destination directory."""
    path = tmp_path / "mnt"
    path.mkdir()
    return path


@pytest.fixture
def host_config(source_tree):
    """Unattended config pointing at ``source_tree``."""
    config = Config()
    config.backup.interactive = False
    config.backup.allow_unmounted = True
    config.backup.require_root = False
    config.backup.compress = False
    config.paths.source = str(source_tree)
    config.paths.excludes = ["/proc", "/sys", "*.tmp"]
    config.paths.repository_sources = [
        str(source_tree / "etc" / "apt" / "sources.list"),
        str(source_tree / "etc" / "apt" / "sources.list.d"),
    ]
    config.paths.config_files = [
        str(source_tree / "etc" / "fstab"),
        str(source_tree / "etc" / "hostname"),
    ]
    return config


@pytest.fixture
def tmp_config_dir(tmp_path):
    """Create a temporary config directory."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    return config_dir


@pytest.fixture
def sample_config_toml():
    """Return a sample valid TOML configuration string."""
    return """
[backup]
retention_days = 14
log_retention_days = 60
compress = false
verify = true
max_parallel = 8
backup_type = "incremental"
email_report = "admin@example.com"
interactive = false
allow_unmounted = true

[paths]
source = "/"
extra_excludes = ["/srv/scratch"]
config_files = ["/etc/fstab", "/etc/hosts"]
"""


@pytest.fixture
def config_file(tmp_config_dir, sample_config_toml):
    """Create a temporary config file with sample content."""
    config_path = tmp_config_dir / "config.toml"
    config_path.write_text(sample_config_toml)
    return config_path
