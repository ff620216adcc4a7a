# src/hearth/logging_setup.py

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FILE_NAME = "hearth.log"

# components that log per task or per blob; console shows only their problems
_CHATTY_HEARTH_LOGGERS = frozenset({"hearth.tasks.background", "hearth.blobs.cache"})

# file-level caps for libraries that log every request
_QUIET_LOGGERS = {
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "openai": logging.INFO,
    "PIL": logging.INFO,
}


class _ConsoleNoiseFilter(logging.Filter):
    """
    Keep the console readable while the REPL waits on input():
    hearth logs pass, except the chatty task/blob components below WARNING;
    everything else (third-party, py.warnings) only at ERROR+.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if name.startswith("hearth."):
            if name in _CHATTY_HEARTH_LOGGERS:
                return record.levelno >= logging.WARNING
            return True
        return record.levelno >= logging.ERROR


def _coerce_level(level: int | str, default: int = logging.INFO) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).strip().upper())
    return resolved if isinstance(resolved, int) else default


def setup_logging(
    *,
    log_dir: str | Path = ".local/hearth",
    console_level: int | str = logging.INFO,
    file_level: int | str = logging.DEBUG,
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 3,
) -> Path:
    """
    Install a filtered stderr handler and a rotating DEBUG file log under log_dir.

    Replaces any handlers already on the root logger, so call it once at
    startup. Returns the log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)
        h.close()

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s [%(threadName)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(_coerce_level(console_level))
    console.setFormatter(fmt)
    console.addFilter(_ConsoleNoiseFilter())
    root.addHandler(console)

    file_handler = RotatingFileHandler(
        log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    file_handler.setLevel(_coerce_level(file_level, logging.DEBUG))
    file_handler.setFormatter(fmt)
    root.addHandler(file_handler)

    logging.captureWarnings(True)

    for name, level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)

    return log_file
