"""
logging_setup.py
────────────────
Console + file logging for the service.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Union

LOG_FILENAME = "taskreminder.log"


class _ConsoleNoiseFilter(logging.Filter):
    """Our own logs pass; third-party loggers (uvicorn access, asyncio) only at WARNING+."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name == "taskreminder" or record.name.startswith("taskreminder."):
            return True
        return record.levelno >= logging.WARNING


def setup_logging(
    *,
    log_dir: Union[str, Path],
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> Path:
    """
    Configure the root logger with a filtered console handler and a full
    file handler.  Call once, before the app starts.  Returns the log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILENAME

    root = logging.getLogger()
    root.setLevel(min(console_level, file_level))

    # Remove any pre-existing handlers to avoid duplicates.
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

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
    return log_file
