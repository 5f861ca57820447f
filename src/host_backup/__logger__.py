# pyright: standard

"""host-backup: host_backup/__logger__.py
Console logging through rich plus the per-run log file on the destination.
"""

import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

# Level used for the "[SUCCESS]" lines of the run log
SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")

RUN_LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
RUN_LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Initialize basic console and handler
cons = Console()
rich_handler = RichHandler(console=cons, show_path=False)
logger = logging.getLogger("host_backup")


def create_logger(level: str | int = "INFO") -> None:
    """Helper function to setup console logging at the given level."""
    # pylint: disable=global-statement
    global cons, rich_handler

    cons = Console()
    rich_handler = RichHandler(console=cons, show_path=False, markup=False)
    rich_handler.setLevel(level)

    # The run log always records INFO, whatever the console shows
    numeric = logging.getLevelName(level) if isinstance(level, str) else level
    logger.setLevel(min(numeric, logging.INFO))

    logging.basicConfig(
        format="%(message)s",
        datefmt="%H:%M:%S",
        level=level,
        handlers=[rich_handler],
        force=True,
    )


def log_success(log: logging.Logger, msg: str, *args) -> None:
    """Log ``msg`` at the SUCCESS level."""
    log.log(SUCCESS, msg, *args)


class RunLogHandler(logging.FileHandler):
    """Append-only log file for a single backup run.

    Besides formatted records, raw output of external tools (rsync, tar)
    can be appended with :meth:`write_raw`, the way ``tee -a`` would.
    """

    def __init__(self, path: Path | str) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        super().__init__(path, mode="a", encoding="utf-8")
        self.setFormatter(logging.Formatter(RUN_LOG_FORMAT, RUN_LOG_DATEFMT))

    def write_raw(self, text: str) -> None:
        """Append unformatted text to the log file."""
        if not text.endswith("\n"):
            text += "\n"
        self.acquire()
        try:
            if self.stream is None:
                self.stream = self._open()
            self.stream.write(text)
            self.flush()
        finally:
            self.release()


def attach_run_log(path: Path | str) -> RunLogHandler:
    """Start mirroring all host_backup log records into ``path``."""
    handler = RunLogHandler(path)
    if logger.getEffectiveLevel() > logging.INFO:
        logger.setLevel(logging.INFO)
    logger.addHandler(handler)
    return handler


def detach_run_log(handler: RunLogHandler) -> None:
    """Stop writing to the run log and close it."""
    logger.removeHandler(handler)
    handler.close()
