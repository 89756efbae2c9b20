"""Logging setup for ipuaro.

The interactive REPL owns stdout, so log records go to stderr or, when a log
file is configured, only to that file.
"""

import logging
import os
import sys
from pathlib import Path

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# http client libraries log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "openai")


def _resolve_level(level: str | None) -> int:
    # CLI flag > env var > WARNING
    name = (level or os.environ.get("IPUARO_LOG_LEVEL") or "WARNING").upper()
    numeric = getattr(logging, name, None)
    if not isinstance(numeric, int):
        print(f"Warning: Invalid log level '{name}', using WARNING", file=sys.stderr)
        return logging.WARNING
    return numeric


def setup_logging(level: str | None = None, log_file: str | Path | None = None) -> logging.Logger:
    """Configure the ``ipuaro`` logger.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR). Falls back to
               IPUARO_LOG_LEVEL, then WARNING.
        log_file: Write records to this file instead of stderr.

    Returns:
        The package logger.
    """
    numeric_level = _resolve_level(level)
    logger = logging.getLogger("ipuaro")
    logger.setLevel(numeric_level)

    # calling twice replaces the handler instead of stacking another one
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if log_file is not None:
        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = logging.FileHandler(path, encoding="utf-8")
    else:
        handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(numeric_level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(handler)

    quiet = logging.DEBUG if numeric_level <= logging.DEBUG else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(quiet)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Return the logger of a module (pass ``__name__``)."""
    return logging.getLogger(name)
