"""Request-scoped logging context.

Tool handlers bind the tool name and memory ids here; every log line and
captured error context emitted while handling the call picks them up.
"""

from contextvars import ContextVar
from typing import Any

import structlog

_log_context: ContextVar[dict[str, Any] | None] = ContextVar("log_context", default=None)


def get_log_context() -> dict[str, Any]:
    """Get a copy of the current logging context."""
    context = _log_context.get()
    return dict(context) if context else {}


def set_log_context(context: dict[str, Any]) -> None:
    """Replace the logging context and bind it into structlog's contextvars."""
    _log_context.set(dict(context))
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(**context)


def update_log_context(key: str, value: Any) -> None:
    """Update a single key in the logging context."""
    context = get_log_context()
    context[key] = value
    _log_context.set(context)
    structlog.contextvars.bind_contextvars(**{key: value})


def clear_log_context() -> None:
    """Clear the current logging context."""
    _log_context.set({})
    structlog.contextvars.clear_contextvars()
