"""Logging configuration: every record carries the request id and acting subject."""

from __future__ import annotations

import contextvars
import logging

from medilocker.config import settings

LOG_FORMAT = (
    "%(asctime)s %(levelname)s %(name)s %(message)s "
    "request_id=%(request_id)s subject=%(subject_id)s"
)

request_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "request_id",
    default=None,
)
subject_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "subject_id",
    default=None,
)

_CONTEXT_FIELDS = (
    ("request_id", request_id_var),
    ("subject_id", subject_id_var),
)


def _stamp(record: logging.LogRecord) -> logging.LogRecord:
    for field, var in _CONTEXT_FIELDS:
        if not getattr(record, field, None):
            setattr(record, field, var.get() or "-")
    return record


class RequestContextFilter(logging.Filter):
    """Attach request_id and subject_id from contextvars to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        _stamp(record)
        return True


def configure_logging() -> None:
    """Configure service logging once at startup."""
    factory = logging.getLogRecordFactory()

    def record_factory(*args, **kwargs):
        return _stamp(factory(*args, **kwargs))

    logging.setLogRecordFactory(record_factory)
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )
    root_logger = logging.getLogger()
    context_filter = RequestContextFilter()
    root_logger.addFilter(context_filter)
    for handler in root_logger.handlers:
        handler.addFilter(context_filter)
    # SQL echo goes through the same formatter when enabled.
    if settings.database_echo:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)
