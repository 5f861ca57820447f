"""host-backup: host_backup/__init__.py."""

from datetime import datetime


__version__ = "1.0.0"


def run_stamp(moment: datetime) -> tuple[str, str]:
    """Return the (date, time) pair used to name a run's artifacts."""
    return moment.strftime("%Y-%m-%d"), moment.strftime("%H%M%S")
