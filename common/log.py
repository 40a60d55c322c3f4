"""Shared logging utilities for FastAPI applications."""

import logging

import common.settings

APP_LOGGER_NAME = 'journal'
LOG_FORMAT = '%(asctime)s %(levelname)s %(name)s: %(message)s'


class HealthCheckFilter(logging.Filter):
    """Filter out health check requests from uvicorn access logs."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Return False to suppress health check log entries."""
        return '/health' not in record.getMessage()


def configure_logging(level: str | None = None) -> None:
    """Configure the application logger and quiet uvicorn health checks.

    The ``journal`` logger gets a single stream handler no matter how many
    times this is called, so app factories and tests can call it freely.
    """
    access_logger = logging.getLogger('uvicorn.access')
    if not any(isinstance(f, HealthCheckFilter) for f in access_logger.filters):
        access_logger.addFilter(HealthCheckFilter())

    app_logger = logging.getLogger(APP_LOGGER_NAME)
    app_logger.setLevel(level or common.settings.LOG_LEVEL)
    if not app_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        app_logger.addHandler(handler)
