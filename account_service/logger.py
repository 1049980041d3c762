"""Centralized logging configuration for the application.

Every record carries the id of the HTTP request it was emitted under
(``-`` outside a request), so one sign-in or admin action can be followed
across the service, store and mailer logs.
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from .config import settings

# Set by the request-id middleware for the lifetime of one request
request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)

CONSOLE_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] [%(request_id)s] %(message)s"


class RequestContextFilter(logging.Filter):
    """Attach the current request id to each record."""

    def filter(self, record):
        record.request_id = request_id_var.get() or "-"
        return True


class JSONFormatter(logging.Formatter):
    """One JSON document per line, for log shippers."""

    def format(self, record):
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "request_id": getattr(record, "request_id", "-"),
            "message": record.getMessage(),
            "module": record.module,
            "line": record.lineno,
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data)


def _build_handler(handler: logging.Handler) -> logging.Handler:
    handler.addFilter(RequestContextFilter())
    if settings.LOG_FORMAT == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(fmt=CONSOLE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


def setup_logger() -> logging.Logger:
    """Configure the account_service logger once: stdout plus an optional LOG_FILE."""
    logger = logging.getLogger("account_service")
    logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper()))

    if logger.handlers:
        return logger

    logger.addHandler(_build_handler(logging.StreamHandler(sys.stdout)))

    if settings.LOG_FILE:
        try:
            logger.addHandler(_build_handler(logging.FileHandler(settings.LOG_FILE)))
        except OSError as e:
            logger.error(f"Failed to create file handler for {settings.LOG_FILE}: {e}")

    return logger


logger = setup_logger()
