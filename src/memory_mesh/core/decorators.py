"""Error handling and session decorators"""

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any, ParamSpec, TypeVar, cast

from .base import ApplicationError, ErrorLevel
from .error_context import ErrorContextManager
from .logging import get_logger

logger = get_logger(__name__)
P = ParamSpec("P")
T = TypeVar("T")


def _log_failure(func_name: str, error: Exception, level: ErrorLevel, ctx: dict[str, Any]) -> None:
    logger.log(
        level.to_logging_level(),
        f"Error in {func_name}: {error!s}",
        extra={"function": func_name, "error_context": ctx},
        exc_info=level in (ErrorLevel.ERROR, ErrorLevel.CRITICAL),
    )


def with_error_handling(
    error_level: ErrorLevel = ErrorLevel.ERROR,
    reraise: bool = True,
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """Decorator for logging errors raised by a function.

    ApplicationErrors are logged at their own level, anything else at
    ``error_level``.

    Args:
        error_level: Severity level for unexpected exceptions
        reraise: Whether to re-raise the error after logging it

    Returns:
        Decorated function with error handling
    """

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        original_signature = inspect.signature(func)

        if asyncio.iscoroutinefunction(func):

            @wraps(func)
            async def async_wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
                try:
                    return await cast("Callable[P, Awaitable[T]]", func)(*args, **kwargs)
                except Exception as e:
                    level = e.level if isinstance(e, ApplicationError) else error_level
                    async with ErrorContextManager(e) as ctx:
                        _log_failure(func.__name__, e, level, ctx.to_dict())
                        if reraise:
                            raise
                        return cast("T", None)

            async_wrapper.__signature__ = original_signature  # type: ignore[attr-defined]
            return cast("Callable[P, T]", async_wrapper)

        @wraps(func)
        def sync_wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                level = e.level if isinstance(e, ApplicationError) else error_level
                with ErrorContextManager(e) as ctx:
                    _log_failure(func.__name__, e, level, ctx.to_dict())
                    if reraise:
                        raise
                    return cast("T", None)

        sync_wrapper.__signature__ = original_signature  # type: ignore[attr-defined]
        return sync_wrapper

    return decorator


def with_session(driver_attr: str = "driver") -> Callable[[Callable[P, T]], Callable[P, T]]:
    """Decorator to manage a Neo4j session per call.

    The decorated method receives the open session as its first argument
    after ``self``:

        @with_session()
        async def get(self, session, memory_id):
            result = await session.run(query, id=memory_id)

    Args:
        driver_attr: Name of the attribute holding the AsyncDriver
    """

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            if not args:
                raise ValueError(f"{func.__name__} requires at least 'self' argument")

            self_obj = args[0]
            driver = getattr(self_obj, driver_attr, None)
            if driver is None:
                raise AttributeError(f"Object {self_obj.__class__.__name__} has no attribute '{driver_attr}'")

            session_kwargs = {}
            database = getattr(self_obj, "database", None)
            if database:
                session_kwargs["database"] = database

            async with driver.session(**session_kwargs) as session:
                return await func(args[0], session, *args[1:], **kwargs)  # type: ignore[operator]

        return cast("Callable[P, T]", wrapper)

    return decorator
