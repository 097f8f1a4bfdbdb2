"""Logging setup for the ChangeGov service.

Modules log through ``logging.getLogger(__name__)``; everything lives under
the ``changegov`` logger, which the API configures once at start-up with
configure_logging().
"""

import logging
import logging.handlers
import os
from typing import List, Optional

from changegov.core.config import Settings

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"
ISO_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

# Third-party loggers that are only interesting when debugging
NOISY_LOGGERS = ("sqlalchemy.engine", "uvicorn.access")


def _handlers(
    name: str,
    log_dir: str,
    file_logging: bool,
    console_logging: bool,
    max_bytes: int,
    backup_count: int,
) -> List[logging.Handler]:
    handlers: List[logging.Handler] = []
    if file_logging:
        os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.handlers.RotatingFileHandler(
            os.path.join(log_dir, f"{name}.log"),
            maxBytes=max_bytes,
            backupCount=backup_count,
        ))
    if console_logging:
        handlers.append(logging.StreamHandler())
    return handlers


def setup_logger(
    name: str,
    log_dir: str = "logs",
    level: str = "INFO",
    log_format: Optional[str] = None,
    date_format: Optional[str] = None,
    file_logging: bool = False,
    console_logging: bool = True,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> logging.Logger:
    """Configure a named logger with console and/or rotating file output.

    Calling it again for the same name only updates the level.

    Raises:
        ValueError: If ``level`` is not a standard level name
    """
    level_name = level.upper()
    if level_name not in LOG_LEVELS:
        raise ValueError(f"Invalid log level: {level}. Must be one of: {', '.join(LOG_LEVELS)}")

    logger = logging.getLogger(name)
    logger.setLevel(level_name)
    if logger.handlers:
        return logger

    formatter = logging.Formatter(log_format or DEFAULT_FORMAT, datefmt=date_format or ISO_DATE_FORMAT)
    for handler in _handlers(name, log_dir, file_logging, console_logging, max_bytes, backup_count):
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger


def configure_logging(settings: Settings) -> logging.Logger:
    """Configure the ``changegov`` logger from application settings."""
    logger = setup_logger(
        "changegov",
        log_dir=settings.log_dir,
        level=settings.log_level,
        file_logging=settings.log_to_file,
    )
    quiet = logging.INFO if settings.debug else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(quiet)
    return logger
