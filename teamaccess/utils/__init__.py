"""
Logging helpers shared by every module.
"""
import logging
import logging.config
import sys
from typing import Any, Dict

from teamaccess.core import config


def setup_logging() -> None:
    """Configure console logging for the service."""
    log_config: Dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": config.LOG_LEVEL,
                "formatter": "default",
                "stream": sys.stdout,
            },
        },
        "loggers": {
            "teamaccess": {
                "level": config.LOG_LEVEL,
                "handlers": ["console"],
                "propagate": False,
            },
            "sqlalchemy.engine": {
                "level": "WARNING",
                "handlers": ["console"],
                "propagate": False,
            },
            "uvicorn.access": {
                "level": "WARNING",
                "handlers": ["console"],
                "propagate": False,
            },
        },
    }
    logging.config.dictConfig(log_config)


def get_logger(name: str) -> logging.Logger:
    """Get logger with consistent naming"""
    if name.startswith("teamaccess"):
        return logging.getLogger(name)
    return logging.getLogger(f"teamaccess.{name}")
