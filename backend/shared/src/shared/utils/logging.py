"""Structured logging utilities with correlation ID support.

Provides:
- Correlation ID context management for request tracing
- Structured logging formatter for consistent log output
- Helper functions for payment and webhook logging

Usage:
    from shared.utils.logging import get_logger, set_correlation_id

    # In middleware/request handler:
    set_correlation_id(request.headers.get("X-Correlation-ID"))

    # In service code:
    logger = get_logger(__name__)
    logger.info("Settling payment", extra={"reference": "REF-001"})
"""

import logging
import uuid
from contextvars import ContextVar
from typing import Any

# Context variable for correlation ID - thread-safe and async-safe
_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)


def generate_correlation_id() -> str:
    """Generate a new UUID-based correlation ID."""
    return str(uuid.uuid4())


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Set the correlation ID for the current request context.

    Args:
        correlation_id: Optional existing correlation ID. If None, generates new one.

    Returns:
        The correlation ID that was set
    """
    cid = correlation_id or generate_correlation_id()
    _correlation_id.set(cid)
    return cid


def get_correlation_id() -> str | None:
    """Get the current correlation ID, or None if not set."""
    return _correlation_id.get()


def clear_correlation_id() -> None:
    """Clear the correlation ID context."""
    _correlation_id.set(None)


class CorrelationIdFilter(logging.Filter):
    """Logging filter that adds correlation_id to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or "no-correlation-id"
        return True


class StructuredFormatter(logging.Formatter):
    """Formatter for structured log output with correlation ID."""

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, "correlation_id"):
            record.correlation_id = get_correlation_id() or "no-correlation-id"

        base = super().format(record)

        # Prefix for easy grep/filtering
        return f"[{record.correlation_id}] {base}"


def configure_logging(level: int = logging.INFO) -> None:
    """Install the structured formatter on the root logger.

    Safe to call more than once.

    Args:
        level: Root log level
    """
    root = logging.getLogger()
    root.setLevel(level)
    if any(isinstance(h.formatter, StructuredFormatter) for h in root.handlers):
        return

    handler = logging.StreamHandler()
    handler.setFormatter(
        StructuredFormatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    )
    handler.addFilter(CorrelationIdFilter())
    root.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """Get a logger with correlation ID support.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    if not any(isinstance(f, CorrelationIdFilter) for f in logger.filters):
        logger.addFilter(CorrelationIdFilter())

    return logger


# Steps that completed without changing anything
_NO_CHANGE_STEPS = frozenset({"duplicate", "ignored", "malformed", "settle_skipped"})


def _log_step(
    logger: logging.Logger,
    source: str,
    step: str,
    context: dict[str, Any],
    error: str | None,
) -> None:
    fields = {key: value for key, value in context.items() if value is not None}
    if error:
        fields["error"] = error

    message = " | ".join(
        [f"{source}: {step}"] + [f"{key}={value}" for key, value in fields.items()]
    )
    extra = {"source": source, "step": step, **fields}

    if error:
        logger.error(message, extra=extra)
    elif step in _NO_CHANGE_STEPS:
        logger.warning(message, extra=extra)
    else:
        logger.info(message, extra=extra)


def log_payment_operation(
    logger: logging.Logger,
    operation: str,
    *,
    error: str | None = None,
    **context: Any,
) -> None:
    """Log one step on a payment or plantation record.

    Context values that are None are left out, so callers can pass
    optional identifiers unconditionally.

    Args:
        logger: Logger instance
        operation: Step name (e.g., "settle", "settle_skipped", "activation_cascade")
        error: Error message if the step failed
        **context: payment_id, reference, plantation_id, status and the like
    """
    _log_step(logger, "payment", operation, context, error)


def log_webhook_event(
    logger: logging.Logger,
    event_type: str | None,
    event_id: str,
    *,
    result: str = "received",
    error: str | None = None,
    **context: Any,
) -> None:
    """Log one step of handling a provider event.

    Args:
        logger: Logger instance
        event_type: Provider event name (e.g., "transaction.approved")
        event_id: Provider event ID
        result: received, settled, duplicate, ignored, malformed or error
        error: Error message if processing failed
        **context: reference, payment_id, reason and the like
    """
    _log_step(
        logger,
        "webhook",
        result,
        {"event_type": event_type, "event_id": event_id, **context},
        error,
    )
