from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

LOGGER_NAME = "foundry"
LOG_FILE_NAME = "foundry.log"
FILE_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"
MAX_BYTES = 1_000_000
BACKUP_COUNT = 5

# configuration files spell levels the nix-foundry way
_LEVEL_ALIASES = {"WARN": "WARNING"}


def get_logger() -> logging.Logger:
    return logging.getLogger(LOGGER_NAME)


def level_from_name(level: str) -> int:
    name = str(level).upper()
    return getattr(logging, _LEVEL_ALIASES.get(name, name), logging.INFO)


def _file_handler(logger: logging.Logger) -> Optional[RotatingFileHandler]:
    for h in logger.handlers:
        if isinstance(h, RotatingFileHandler):
            return h
    return None


def setup_logging(
    log_dir: str = "logs",
    level: str = "INFO",
    *,
    file_name: str = LOG_FILE_NAME,
    fmt: str = FILE_FORMAT,
    max_bytes: int = MAX_BYTES,
    backup_count: int = BACKUP_COUNT,
) -> logging.Logger:
    """
    Configure the "foundry" logger: a rotating file under log_dir plus bare
    messages on stderr.

    Safe to call repeatedly. A later call re-targets the file handler when
    the path changes and always applies the given level and format.
    """
    os.makedirs(log_dir, exist_ok=True)
    logger = get_logger()
    logger.setLevel(level_from_name(level))
    logger.propagate = False

    path = os.path.abspath(os.path.join(log_dir, file_name))
    fh = _file_handler(logger)
    if fh is not None and (fh.baseFilename != path or fh.maxBytes != max_bytes or fh.backupCount != backup_count):
        logger.removeHandler(fh)
        fh.close()
        fh = None
    if fh is None:
        fh = RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
        logger.addHandler(fh)
    fh.setFormatter(logging.Formatter(fmt))

    if not any(type(h) is logging.StreamHandler for h in logger.handlers):
        sh = logging.StreamHandler()
        sh.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(sh)

    return logger
