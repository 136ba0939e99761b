"""Correlation ID logging context for tracing one inbound message across modules.

Provides a trace-id-aware logger that attaches a correlation ID to every
log record, making it easy to follow a single webhook delivery through
tenant resolution, the engine, the scheduler and the outbound sender.

Usage:
    from recruit_engine.logging_context import get_trace_logger, set_trace_id

    set_trace_id("wamid.HBgL...")
    logger = get_trace_logger(__name__)
    logger.info("Processing message")  # record.trace_id == "wamid.HBgL..."
"""

import logging
from contextvars import ContextVar

_trace_id: ContextVar[str] = ContextVar("trace_id", default="NO_TRACE_ID")


def set_trace_id(trace_id: str) -> None:
    """Set the correlation ID for the current async context."""
    _trace_id.set(trace_id)


def get_trace_id() -> str:
    """Retrieve the current correlation ID."""
    return _trace_id.get()


class TraceIdFilter(logging.Filter):
    """Injects trace_id into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.trace_id = _trace_id.get()  # type: ignore[attr-defined]
        return True


def get_trace_logger(name: str) -> logging.Logger:
    """Return a logger with the TraceIdFilter attached.

    The filter adds ``trace_id`` to each record so formatters can
    include ``%(trace_id)s`` in their format string.
    """
    logger = logging.getLogger(name)
    if not any(isinstance(f, TraceIdFilter) for f in logger.filters):
        logger.addFilter(TraceIdFilter())
    return logger
