"""Resilient API call decorator built on tenacity.

Remote calls are retried 3 times with exponential backoff and jitter; the
final failure is logged and the original exception re-raised so callers can
map it to a typed domain error.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeVar

import structlog
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

logger = structlog.get_logger()

F = TypeVar("F", bound=Callable[..., Any])

MAX_ATTEMPTS = 3


def _api_name(retry_state: RetryCallState) -> str:
    return getattr(retry_state.fn, "_api_name", "unknown") if retry_state.fn else "unknown"


def log_final_failure(retry_state: RetryCallState) -> Any:
    """Log exhaustion of all attempts and re-raise the last exception.

    Args:
        retry_state: Tenacity retry state with attempt info and exception.
    """
    exception = retry_state.outcome.exception() if retry_state.outcome else None
    logger.error(
        "API call failed after all retries",
        api_name=_api_name(retry_state),
        attempts=retry_state.attempt_number,
        exception=str(exception),
    )
    if retry_state.outcome is not None:
        return retry_state.outcome.result()
    return None


def _before_sleep_log(retry_state: RetryCallState) -> None:
    """Log a warning before each retry attempt.

    Args:
        retry_state: Tenacity retry state with attempt info.
    """
    logger.warning(
        "Retrying API call",
        api_name=_api_name(retry_state),
        attempt=retry_state.attempt_number,
        wait=retry_state.next_action.sleep if retry_state.next_action else 0,
    )


def resilient_api_call(
    api_name: str,
    retry_on: Callable[[BaseException], bool] | None = None,
) -> Callable[[F], F]:
    """Create a retry decorator for an API call.

    Returns a tenacity retry decorator configured with:
    - 3 attempts maximum
    - Exponential backoff with jitter (1s initial, 30s max, 5s jitter)
    - Warning log before each retry
    - Error log on final failure
    - Original exception re-raised after exhaustion

    Args:
        api_name: Human-readable name for the API (used in logs).
        retry_on: Optional predicate selecting which exceptions are worth
            retrying; others are raised immediately.  Defaults to all.

    Returns:
        A decorator that wraps the function with retry logic.
    """

    def decorator(func: F) -> F:
        func._api_name = api_name  # type: ignore[attr-defined]

        wrapped = retry(
            stop=stop_after_attempt(MAX_ATTEMPTS),
            wait=wait_exponential_jitter(initial=1, max=30, jitter=5),
            retry=retry_if_exception(retry_on or (lambda _exc: True)),
            before_sleep=_before_sleep_log,
            retry_error_callback=log_final_failure,
            reraise=True,
        )(func)

        return wrapped  # type: ignore[return-value]

    return decorator
