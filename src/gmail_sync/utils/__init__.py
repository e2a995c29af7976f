"""Logging setup and retry helpers shared by the CLI, the API and the Gmail client."""

import logging
import time
from functools import wraps
from typing import Any, Callable, TypeVar

import structlog

logger = structlog.get_logger()

F = TypeVar("F", bound=Callable[..., Any])


def configure_logging(level: str = "INFO") -> None:
    """Configure structlog to drop events below ``level``."""

    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
    )


def retry_on_failure(
    max_retries: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    retry_if: Callable[[Exception], bool] | None = None,
) -> Callable[[F], F]:
    """Retry a synchronous call with exponential backoff.

    Args:
        max_retries: Retries after the first attempt.
        delay: Seconds to wait before the first retry.
        backoff: Multiplier applied to the wait after each retry.
        retry_if: Predicate selecting which exceptions are transient. Anything
            it rejects is raised immediately. When None every exception is
            retried.

    Returns:
        Decorator wrapping the function with the retry loop.
    """

    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            wait = delay
            attempt = 0
            while True:
                attempt += 1
                try:
                    return func(*args, **kwargs)
                except Exception as exc:
                    if retry_if is not None and not retry_if(exc):
                        raise
                    if attempt > max_retries:
                        logger.error(
                            "function_retry_exhausted",
                            function=func.__name__,
                            attempts=attempt,
                            error=str(exc),
                        )
                        raise
                    logger.warning(
                        "function_retry",
                        function=func.__name__,
                        attempt=attempt,
                        max_retries=max_retries,
                        delay=wait,
                        error=str(exc),
                    )
                    time.sleep(wait)
                    wait *= backoff

        return wrapper  # type: ignore

    return decorator
