"""Application logging setup."""

from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path

from gre_insight.config import APP_NAME, LOGS_DIR


def setup_logging(level: int = logging.INFO, log_dir: Path | None = None) -> None:
    """Configure the ``gre_insight`` logger tree.

    Args:
        level: Root level for the application logger.
        log_dir: Directory for the rotating log file. Defaults to ``LOGS_DIR``.
    """
    root_logger = logging.getLogger(APP_NAME)
    root_logger.setLevel(level)

    # repeated calls (tests, reloads) must not stack handlers
    if root_logger.handlers:
        return

    fmt = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(fmt)
    root_logger.addHandler(console)

    log_dir = log_dir or LOGS_DIR
    log_dir.mkdir(parents=True, exist_ok=True)
    file_handler = logging.handlers.RotatingFileHandler(
        log_dir / "gre_insight.log",
        maxBytes=5 * 1024 * 1024,
        backupCount=3,
        encoding="utf-8",
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(fmt)
    root_logger.addHandler(file_handler)


def get_logger(name: str) -> logging.Logger:
    """Return a child logger inside the application namespace."""
    if name == APP_NAME or name.startswith(f"{APP_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{APP_NAME}.{name}")
