"""Retry utilities for throttled AWS calls."""

from collections.abc import Callable
from typing import Any, TypeVar

from botocore.exceptions import ClientError
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from cfgctl.utils.logging import get_logger

logger = get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

THROTTLING_ERROR_CODES = frozenset(
    {
        "Throttling",
        "ThrottlingException",
        "ThrottledException",
        "RequestLimitExceeded",
        "TooManyRequestsException",
        "RequestThrottled",
    }
)


def is_throttling_error(error: BaseException) -> bool:
    """Return True for AWS errors that signal rate limiting."""
    if not isinstance(error, ClientError):
        return False
    return error.response.get("Error", {}).get("Code") in THROTTLING_ERROR_CODES


def retry_on_throttle(
    max_attempts: int = 4,
    min_wait: int = 1,
    max_wait: int = 8,
) -> Callable[[F], F]:
    """Decorator retrying an AWS call while it is being throttled.

    Any other error, access denied included, propagates on the first attempt
    so that the caller can classify it.

    Args:
        max_attempts: Maximum number of attempts
        min_wait: Minimum wait time between retries (seconds)
        max_wait: Maximum wait time between retries (seconds)

    Returns:
        Decorated function with retry logic
    """

    def before_sleep(retry_state: RetryCallState) -> None:
        """Log before sleeping between retries."""
        if retry_state.outcome and retry_state.outcome.failed:
            exception = retry_state.outcome.exception()
            logger.warning(
                "aws_call_throttled",
                attempt=retry_state.attempt_number,
                max_attempts=max_attempts,
                message=str(exception),
            )

    return retry(
        retry=retry_if_exception(is_throttling_error),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait),
        before_sleep=before_sleep,
        reraise=True,
    )
