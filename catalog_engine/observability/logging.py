"""
Contextual logging for CATALOG_ENGINE.

Service writes run inside ``request_context`` so every record logged on the
way down (saga steps, compensations, storage failures) carries who asked for
the write and on which entity.

    with request_context(requester_id=requester.id, entity="product", operation="create"):
        ...
"""

import contextvars
import logging
from contextlib import contextmanager
from typing import Any, Iterator

_request_context: contextvars.ContextVar[dict[str, Any]] = contextvars.ContextVar(
    "catalog_request_context", default={}
)


@contextmanager
def request_context(**context: Any) -> Iterator[dict[str, Any]]:
    """
    Add fields to the logging context for the duration of the block.

    Nested blocks extend the outer context; None values are dropped. The
    previous context is restored on exit, also when the block raises.
    """
    merged = {**_request_context.get(), **{k: v for k, v in context.items() if v is not None}}
    token = _request_context.set(merged)
    try:
        yield merged
    finally:
        _request_context.reset(token)


def get_logging_context() -> dict[str, Any]:
    """Copy of the fields set by the enclosing ``request_context`` blocks."""
    return dict(_request_context.get())


class ContextualLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that adds the current request context to each record."""

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        context = get_logging_context()
        context.update(kwargs.get("extra") or {})
        kwargs["extra"] = context
        return msg, kwargs


def get_logger(name: str) -> ContextualLoggerAdapter:
    return ContextualLoggerAdapter(logging.getLogger(name), {})


def log_operation(
    logger: logging.Logger | ContextualLoggerAdapter,
    operation: str,
    level: int = logging.INFO,
    success: bool = True,
    duration_ms: float | None = None,
    **context: Any,
) -> None:
    """
    Log an operation with structured fields.

    Args:
        logger: Logger or contextual adapter
        operation: Operation name ("saga.create", "category.update", ...)
        level: Log level
        success: Whether operation succeeded
        duration_ms: Operation duration in milliseconds
        **context: Additional fields
    """
    fields: dict[str, Any] = {**get_logging_context(), "operation": operation, "success": success}
    if duration_ms is not None:
        fields["duration_ms"] = round(duration_ms, 2)
    fields.update(context)

    message = f"Operation: {operation}" if success else f"Operation failed: {operation}"
    if duration_ms is not None:
        message += f" (duration: {duration_ms:.2f}ms)"

    logger.log(level, message, extra=fields)
