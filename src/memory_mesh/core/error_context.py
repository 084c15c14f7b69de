"""Error context capture for structured error logs"""

from datetime import UTC, datetime
from types import TracebackType
from typing import Any
from uuid import uuid4

from .base import ApplicationError
from .logging import get_log_context, get_logger

logger = get_logger(__name__)


class ErrorContext:
    """Snapshot of an error plus the log context active when it was raised"""

    def __init__(self, error: Exception, trace_id: str | None = None, **context: Any):
        self.error = error
        self.trace_id = trace_id or str(uuid4())
        self.timestamp = datetime.now(UTC)
        self.context = {**get_log_context(), **context}

    def to_dict(self) -> dict[str, Any]:
        """Flatten the error into a log-friendly dictionary.

        ApplicationError details are prefixed with ``details.`` and extra context
        with ``context.`` so neither can shadow the top-level keys.
        """
        result: dict[str, Any] = {
            "error_type": self.error.__class__.__name__,
            "error_message": str(self.error),
            "trace_id": self.trace_id,
            "timestamp": self.timestamp.isoformat(),
        }

        if isinstance(self.error, ApplicationError):
            result["error_code"] = self.error.code.value
            result["error_level"] = self.error.level.value
            for key, value in self.error.details.model_dump(mode="json").items():
                result[f"details.{key}"] = value

        for key, value in self.context.items():
            result[f"context.{key}"] = value

        return result


class ErrorContextManager:
    """Creates an ErrorContext on enter and reports failures raised while handling it"""

    def __init__(self, error: Exception | None = None, **context: Any) -> None:
        self._error = error
        self._context = context

    def _open(self) -> ErrorContext:
        if self._error is None:
            raise ValueError("No error provided for context")
        return ErrorContext(self._error, **self._context)

    @staticmethod
    def _report(exc_type: type[BaseException] | None, exc_val: BaseException | None) -> None:
        # The handled error is re-raised by the caller, so only a different one is reported
        if exc_type is not None and exc_val is not None and not isinstance(exc_val, ApplicationError):
            logger.debug(f"Exception propagated through error context: {exc_type.__name__}: {exc_val}")

    async def __aenter__(self) -> ErrorContext:
        return self._open()

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self._report(exc_type, exc_val)

    def __enter__(self) -> ErrorContext:
        return self._open()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self._report(exc_type, exc_val)
