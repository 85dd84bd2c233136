"""
Structured logging setup.

Every module logs through structlog with snake_case event names
and keyword context, e.g.::

    logger.info("balance_rebuild_completed", updated=12, errors=0)

Timestamps are rendered in the configured LOG_TIMEZONE. The
timezone is cosmetic; no arithmetic in the service depends on it.
"""

import logging
from datetime import datetime
from zoneinfo import ZoneInfo

import structlog

from pos_ledger.config import get_settings


class ZonedTimeStamper:
    """structlog processor adding an ISO timestamp in a fixed zone."""

    def __init__(self, timezone: str = "UTC", key: str = "timestamp"):
        self.zone = ZoneInfo(timezone)
        self.key = key

    def __call__(self, logger, method_name, event_dict):
        event_dict[self.key] = datetime.now(self.zone).isoformat()
        return event_dict


def configure_logging(
    level: str | None = None,
    json_output: bool | None = None,
    timezone: str | None = None,
    file=None,
) -> None:
    """
    Configure structlog for the process.

    Arguments left as None fall back to the application settings;
    ``file`` defaults to stdout.
    Safe to call more than once; the last call wins.
    """
    settings = get_settings()
    level = level or settings.LOG_LEVEL
    json_output = settings.LOG_JSON if json_output is None else json_output
    timezone = timezone or settings.LOG_TIMEZONE

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            ZonedTimeStamper(timezone),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level)
        ),
        logger_factory=structlog.PrintLoggerFactory(file=file),
        cache_logger_on_first_use=False,
    )
