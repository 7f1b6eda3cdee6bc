"""
Logging setup for fixture loading runs.

Test suites usually configure logging themselves; ``configure_logging`` is
for standalone runs (seed scripts, CI bootstrap steps) that want the same
line format everywhere.
"""
from __future__ import annotations

import logging
from logging.config import dictConfig
from typing import Optional

from fixturer.core.config import settings


_is_configured = False


def configure_logging(level: Optional[str] = None) -> None:
    """
    Configure the root and ``fixturer`` loggers once per process.

    Args:
        level: Optional log level override; falls back to ``settings.log_level``.
    """
    global _is_configured

    if _is_configured:
        return

    log_level = (level or settings.log_level or "INFO").upper()

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "standard": {
                    "format": "%(asctime)s | %(levelname)-7s | %(threadName)s | %(name)s | %(message)s",
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                }
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "standard",
                    "level": log_level,
                }
            },
            "root": {
                "handlers": ["console"],
                "level": log_level,
            },
        }
    )

    logging.getLogger("fixturer").setLevel(log_level)
    # Statement echo is only useful when debugging a single bad fixture row.
    if log_level != "DEBUG":
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    _is_configured = True
