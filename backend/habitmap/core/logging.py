"""Logging setup for the habitmap API process."""
from __future__ import annotations

import logging
from logging.config import dictConfig
from typing import Optional

from habitmap.core.context import get_request_id


class RequestIdFilter(logging.Filter):
    """Stamp every record with the active request id ("-" for startup and store callbacks outside a request)."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id() or "-"
        return True


def configure_logging(*, log_level: str = "INFO", expansion_log_level: Optional[str] = None) -> None:
    """Configure console logging once per process.

    `expansion_log_level` tunes the expander and cache loggers separately; their
    DEBUG output (skipped entries, recompute ranges) is noisy on busy calendars.
    """
    if getattr(configure_logging, "_configured", False):
        return

    expansion_level = expansion_log_level or log_level
    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s | %(levelname)s | %(name)s | req=%(request_id)s | %(message)s",
                }
            },
            "filters": {
                "request_id": {
                    "()": "habitmap.core.logging.RequestIdFilter",
                }
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "level": log_level,
                    "filters": ["request_id"],
                }
            },
            "loggers": {
                "habitmap.services.expanders": {"level": expansion_level},
                "habitmap.services.mapping_cache": {"level": expansion_level},
            },
            "root": {
                "handlers": ["console"],
                "level": log_level,
            },
        }
    )

    logging.getLogger(__name__).debug("Logging configured at %s (expansion %s)", log_level, expansion_level)
    setattr(configure_logging, "_configured", True)
