"""Logging setup for the meal-plan engine.

Usage:
    from mealplan.logging_utils import get_logger

    logger = get_logger(__name__)
    logger.info("Plan generated")
"""

import logging
import logging.config
import threading

from mealplan.config import get_settings

_configured = False
_lock = threading.Lock()


def _logging_config(level: str) -> dict:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "standard",
                "level": level,
            },
        },
        "loggers": {
            "mealplan": {
                "handlers": ["console"],
                "level": level,
                "propagate": True,
            },
        },
    }


def setup_logging(level: str = None) -> None:
    """Configure the ``mealplan`` logger tree once. Safe to call repeatedly."""
    global _configured
    with _lock:
        if _configured:
            return
        logging.config.dictConfig(_logging_config(level or get_settings().log_level))
        _configured = True


def get_logger(name: str) -> logging.Logger:
    setup_logging()
    return logging.getLogger(name)
