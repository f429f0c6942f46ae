"""Logging for tagchat: terse console output plus an optional rotating file."""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

__all__ = ["setup_logger", "get_logger"]

PACKAGE_LOGGER = "tagchat"
CONSOLE_FORMAT = "[%(levelname).1s] %(message)s"
FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
MAX_LOG_BYTES = 5 * 1024 * 1024
LOG_BACKUP_COUNT = 3

_QUIET_LIBRARIES = ("litellm", "LiteLLM", "httpx")


def setup_logger(verbose: bool = False, log_file: Optional[str] = None) -> logging.Logger:
    """Configure the ``tagchat`` logger that every module logger propagates to.

    The console shows warnings, or everything with ``verbose``. ``log_file``
    (the ``log-file`` config value) adds a rotating file handler; an empty
    value leaves file logging off.
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.propagate = False

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    logger.addHandler(console_handler)

    if log_file:
        _add_file_handler(logger, Path(log_file).expanduser())

    for name in _QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)
    return logger


def _add_file_handler(logger: logging.Logger, path: Path) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(path, maxBytes=MAX_LOG_BYTES,
                                      backupCount=LOG_BACKUP_COUNT, encoding="utf-8")
    except OSError as e:
        logger.warning("File logging disabled: %s", e)
        return
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(FILE_FORMAT))
    logger.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
