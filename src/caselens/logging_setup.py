"""Console and per-run file logging."""

from __future__ import annotations

from contextlib import contextmanager
import logging
from pathlib import Path
from typing import Iterator

from rich.logging import RichHandler

PACKAGE_LOGGER = "caselens"
FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | int = "INFO") -> logging.Logger:
    """Install a single RichHandler on the package logger (idempotent)."""
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level.upper() if isinstance(level, str) else level)
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(show_path=False, markup=False, rich_tracebacks=False)
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)
    return logger


def run_log_path(run_id: str, log_dir: str | Path) -> Path:
    return Path(log_dir) / run_id / "run.log"


@contextmanager
def run_log_handler(run_id: str, log_dir: str | Path) -> Iterator[Path]:
    """Mirror package logs into <log_dir>/<run_id>/run.log while the block runs."""
    path = run_log_path(run_id, log_dir)
    path.parent.mkdir(parents=True, exist_ok=True)

    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(FILE_FORMAT))

    logger = logging.getLogger(PACKAGE_LOGGER)
    previous_level = logger.level
    if previous_level == logging.NOTSET:
        # unconfigured (library use, tests): still record progress in the file
        logger.setLevel(logging.INFO)
    logger.addHandler(handler)
    try:
        yield path
    finally:
        logger.removeHandler(handler)
        logger.setLevel(previous_level)
        handler.close()
