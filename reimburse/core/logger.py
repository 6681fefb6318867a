"""Logging setup for Reimburse.

Console output is always ISO 8601 stamped; file output with rotation is
opt-in through settings since most deployments ship stdout to a collector.
"""

import logging
import logging.handlers
import os
from typing import Optional

from reimburse.core.config import Settings

LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"


def setup_logger(
    name: str,
    level: str = "INFO",
    *,
    log_dir: Optional[str] = None,
    console_logging: bool = True,
    max_bytes: int = 10485760,  # 10MB
    backup_count: int = 5,
) -> logging.Logger:
    """Configure a named logger.

    Args:
        name: Logger name, usually the top-level package
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        log_dir: Directory for a rotating ``<name>.log``; no file output when None
        console_logging: Attach a stderr handler
        max_bytes: Maximum log file size before rotation
        backup_count: Number of rotated files to keep

    Returns:
        The configured logger. Calling again for the same name only updates the level.
    """
    logger = logging.getLogger(name)

    level_upper = level.upper()
    if level_upper not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        raise ValueError(
            f"Invalid log level: {level}. "
            f"Must be one of: DEBUG, INFO, WARNING, ERROR, CRITICAL"
        )
    logger.setLevel(getattr(logging, level_upper))

    # Prevent duplicate handlers
    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            os.path.join(log_dir, f"{name}.log"),
            maxBytes=max_bytes,
            backupCount=backup_count,
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if console_logging:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger


def configure_logging(settings: Settings) -> logging.Logger:
    """Configure the ``reimburse`` logger tree from application settings."""
    return setup_logger(
        "reimburse",
        settings.log_level,
        log_dir=settings.log_dir if settings.file_logging else None,
    )
