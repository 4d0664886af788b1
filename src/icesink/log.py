"""
Logging configuration for hosts embedding icesink.

Library modules only create module-level loggers (logging.getLogger(__name__)); nothing
is configured on import. A host that wants the default setup calls configure_logging().
"""

from __future__ import annotations

import copy
import os
from logging.config import dictConfig
from typing import Any

LOG_FILE_NAME = "icesink.log"

LOGGING_CONFIG: dict[str, Any] = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
            "level": "INFO",
        },
        "rotating_file": {
            "class": "logging.handlers.RotatingFileHandler",
            "formatter": "standard",
            "level": "DEBUG",
            "filename": os.path.join("logs", LOG_FILE_NAME),
            "maxBytes": 10485760,  # 10MB
            "backupCount": 5,
            "encoding": "utf8",
        },
    },
    "loggers": {
        "icesink": {
            "handlers": ["console", "rotating_file"],
            "level": "DEBUG",
            "propagate": False,
        },
    },
}


def configure_logging(log_dir: str | None = None, level: str = "INFO") -> dict[str, Any]:
    """
    Apply LOGGING_CONFIG to the "icesink" logger tree.

    Args:
        log_dir (str | None): Directory for the rotating file; None disables the file handler.
        level (str): Console level.

    Returns:
        dict[str, Any]: The configuration that was applied.
    """
    config = copy.deepcopy(LOGGING_CONFIG)
    config["handlers"]["console"]["level"] = level.upper()
    if log_dir is None:
        del config["handlers"]["rotating_file"]
        config["loggers"]["icesink"]["handlers"] = ["console"]
    else:
        os.makedirs(log_dir, exist_ok=True)
        config["handlers"]["rotating_file"]["filename"] = os.path.join(log_dir, LOG_FILE_NAME)
    dictConfig(config)
    return config
