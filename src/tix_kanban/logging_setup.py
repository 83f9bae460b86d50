# src/tix_kanban/logging_setup.py

from __future__ import annotations

import logging
import sys
from pathlib import Path

LOG_FILENAME = "tix-kanban.log"

_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Minimum console level per logger-name prefix; the first match wins.
# Unmatched loggers need ERROR+.
_CONSOLE_FLOORS: tuple[tuple[str, int], ...] = (
    ("tix_kanban.github.", logging.WARNING),
    ("tix_kanban.agents.", logging.INFO),
    ("tix_kanban.", logging.NOTSET),
    ("py.warnings", logging.ERROR),
)

# Libraries that log every HTTP request at INFO.
_CHATTY_LIBRARIES = ("httpx", "httpcore")


class _ConsoleNoiseFilter(logging.Filter):
    """
    Keep the interactive console readable: tix_kanban logs pass (minus the
    floors above), everything else only at ERROR+.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        for prefix, floor in _CONSOLE_FLOORS:
            if record.name.startswith(prefix):
                return record.levelno >= floor
        return record.levelno >= logging.ERROR


def _quiet_chatty_libraries() -> None:
    for name in _CHATTY_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)


def setup_logging(
    *,
    log_dir: str | Path = ".tix-kanban",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> Path:
    """
    Configure logging for the main process:
    - Console handler: filtered for interactive use
    - File handler: <log_dir>/tix-kanban.log with everything down to file_level

    Call this ONCE, before the first log call. Returns the log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILENAME

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(fmt=_FORMAT, datefmt=_DATEFMT)

    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(console_level)
    ch.setFormatter(fmt)
    ch.addFilter(_ConsoleNoiseFilter())
    root.addHandler(ch)

    fh = logging.FileHandler(str(log_file), encoding="utf-8")
    fh.setLevel(file_level)
    fh.setFormatter(fmt)
    root.addHandler(fh)

    logging.captureWarnings(True)
    _quiet_chatty_libraries()
    return log_file


def setup_worker_logging(level: int = logging.INFO) -> None:
    """
    Logging for the GitHub worker child process.

    stdout carries the JSON protocol, so everything goes to stderr, which the
    parent inherits. Lines are tagged so they can be told apart from the
    parent's own console output.
    """
    root = logging.getLogger()
    root.setLevel(level)
    for h in list(root.handlers):
        root.removeHandler(h)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(fmt="%(asctime)s %(levelname)s github-worker: %(message)s"))
    root.addHandler(handler)

    logging.captureWarnings(True)
    _quiet_chatty_libraries()
