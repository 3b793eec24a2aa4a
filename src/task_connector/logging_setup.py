"""Process-wide logging configuration for the agent."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

_LOG_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class _ConsoleNoiseFilter(logging.Filter):
    """Keep agent records; let third-party loggers through only at WARNING+.

    httpx logs every request at INFO, which would double the console output
    of each poll.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name.startswith("task_connector"):
            return True
        return record.levelno >= logging.WARNING


def setup_logging(*, level: str = "INFO", log_file: Path | None = None) -> None:
    """Configure root logging with a console handler and an optional file.

    Call this once, before the first iteration runs.
    """

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    formatter = logging.Formatter(fmt=_LOG_FORMAT, datefmt=_DATE_FORMAT)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)
    console.setFormatter(formatter)
    console.addFilter(_ConsoleNoiseFilter())
    root.addHandler(console)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(str(log_file), encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    logging.captureWarnings(True)
