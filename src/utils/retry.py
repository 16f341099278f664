"""Retry helpers for flaky upstream calls.

Wraps tenacity so service code can decorate both sync and async methods with
the same ``@retry_api_call(...)`` line. Only the transient error types defined
here are retried; everything else propagates on the first attempt.
"""

import logging

import tenacity

logger = logging.getLogger(__name__)


class RetryableError(Exception):
    """Base class for errors worth another attempt."""


class NetworkError(RetryableError):
    """Connection reset, DNS failure, read timeout and friends."""


class APIRateLimitError(RetryableError):
    """Provider answered 429 or an equivalent quota message."""


class TemporaryServiceError(RetryableError):
    """Provider answered 5xx or reported itself temporarily unavailable."""


def _log_retry(retry_state: tenacity.RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    fn_name = getattr(retry_state.fn, "__qualname__", "call")
    logger.warning(
        f"{fn_name} failed (attempt {retry_state.attempt_number}): {exc}; retrying"
    )


def retry_api_call(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
):
    """Retry a sync or async callable on transient upstream errors.

    Args:
        max_retries: Number of retries after the first attempt
        base_delay: Initial backoff in seconds, doubled on each retry
        max_delay: Upper bound for a single backoff sleep

    Returns:
        Decorator usable on plain functions and coroutine functions
    """
    return tenacity.retry(
        stop=tenacity.stop_after_attempt(max_retries + 1),
        wait=tenacity.wait_exponential_jitter(initial=base_delay, max=max_delay),
        retry=tenacity.retry_if_exception_type(RetryableError),
        before_sleep=_log_retry,
        reraise=True,
    )


def classify_status(status_code: int, provider: str) -> Exception | None:
    """Map an HTTP status to the retryable error it represents, if any.

    Args:
        status_code: HTTP status returned by the provider
        provider: Provider name used in the error message

    Returns:
        A retryable exception instance, or None for non-transient statuses
    """
    if status_code == 429:
        return APIRateLimitError(f"{provider} rate limit exceeded")
    if status_code >= 500:
        return TemporaryServiceError(f"{provider} returned {status_code}")
    return None
