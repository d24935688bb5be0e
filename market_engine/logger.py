"""
Logging setup for marketsync.

Configured once per process from environment variables:

- ``LOG_LEVEL`` (default INFO)
- ``LOG_TO_STDOUT`` (default true)
- ``LOG_FILE``: when set, a rotating file handler is added
- ``LOG_MAX_BYTES`` / ``LOG_BACKUPS`` for rotation
"""

from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

_configured = False

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(*, log_file: Path | None = None, level: str | None = None) -> None:
    """
    Configure the root logger once.

    Parameters
    ----------
    log_file:
        Optional file path for a rotating handler. ``LOG_FILE`` takes precedence.
    level:
        Optional level name. ``LOG_LEVEL`` takes precedence.
    """
    global _configured
    if _configured:
        return

    log_level = os.getenv("LOG_LEVEL", level or "INFO").upper()
    log_to_stdout = os.getenv("LOG_TO_STDOUT", "true").lower() == "true"
    env_file = os.getenv("LOG_FILE")
    target_file = Path(env_file) if env_file else log_file
    log_max_bytes = int(os.getenv("LOG_MAX_BYTES", str(2 * 1024 * 1024)))
    log_backups = int(os.getenv("LOG_BACKUPS", "3"))

    root = logging.getLogger()
    root.setLevel(getattr(logging, log_level, logging.INFO))
    formatter = logging.Formatter(LOG_FORMAT)

    # Avoid duplicate handlers
    if not root.handlers:
        if log_to_stdout:
            ch = logging.StreamHandler(sys.stdout)
            ch.setFormatter(formatter)
            root.addHandler(ch)

        if target_file is not None:
            try:
                target_file.parent.mkdir(parents=True, exist_ok=True)
                fh = RotatingFileHandler(
                    target_file,
                    maxBytes=log_max_bytes,
                    backupCount=log_backups,
                    encoding="utf-8",
                )
                fh.setFormatter(formatter)
                root.addHandler(fh)
            except OSError as e:
                root.warning("Failed to initialize file logging: %s", e)

    _configured = True


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a named logger. Configuration is left to the entry point."""
    return logging.getLogger(name)
