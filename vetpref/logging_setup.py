"""Central logging configuration.

Applies a root stdout handler so every ``vetpref`` module logger emits INFO
records without per-module setup. Uvicorn loggers share the same handler.
"""

from __future__ import annotations

import logging
from logging.config import dictConfig


_DICT_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {
            "format": "%(asctime)s %(levelname)s:%(name)s:%(message)s",
        }
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "level": "INFO",
            "formatter": "default",
            "stream": "ext://sys.stdout",
        }
    },
    "root": {"level": "INFO", "handlers": ["console"]},
    "loggers": {
        "uvicorn": {"level": "INFO", "handlers": ["console"], "propagate": False},
        "uvicorn.error": {"level": "INFO", "handlers": ["console"], "propagate": False},
        "uvicorn.access": {"level": "INFO", "handlers": ["console"], "propagate": False},
    },
}


def configure_logging() -> bool:
    """Configure logging once. Returns False if the root logger was already set up."""
    if logging.getLogger().handlers:
        return False
    dictConfig(_DICT_CONFIG)
    return True
