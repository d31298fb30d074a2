"""Logging setup for the approval flow engine.

Engine modules log under the ``approvalflow`` package logger. Each process
(API server, catalog seeder) configures it once from ``Settings``: console
output always, plus a rotating ``approvalflow-<component>.log`` file when
``log_to_file`` is on. Request access lines go to
``approvalflow.api.requests`` and can run at their own level.
"""

import logging
import logging.handlers
import os

from approvalflow.core.config import Settings

PACKAGE_LOGGER = "approvalflow"
REQUEST_LOGGER = "approvalflow.api.requests"

LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

# Collaborator client and ORM loggers, per-call chatter at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine")


def parse_level(value: str) -> int:
    level = getattr(logging, value.upper(), None)
    if not isinstance(level, int):
        raise ValueError(
            f"Invalid log level: {value}. "
            f"Must be one of: DEBUG, INFO, WARNING, ERROR, CRITICAL"
        )
    return level


def setup_logger(settings: Settings, component: str = "api") -> logging.Logger:
    """Configure the package logger for one process.

    Args:
        settings: Supplies log_level, request_log_level, log_dir,
            log_to_file and the rotation limits
        component: Process name ("api", "seed"); names the log file

    Returns:
        The configured ``approvalflow`` logger
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(parse_level(settings.log_level))
    logging.getLogger(REQUEST_LOGGER).setLevel(
        parse_level(settings.request_log_level or settings.log_level)
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if settings.debug else logging.WARNING)

    # Prevent duplicate handlers
    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    if settings.log_to_file:
        os.makedirs(settings.log_dir, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            os.path.join(settings.log_dir, f"approvalflow-{component}.log"),
            maxBytes=settings.log_max_bytes,
            backupCount=settings.log_backup_count,
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger
