# ABOUTME: Exponential backoff retry decorator for OpenAI API calls.
# ABOUTME: Retries transient API failures with tenacity and logs each retry through loguru.

from collections.abc import Callable
from functools import wraps
from typing import Any, TypeVar

from loguru import logger
from openai import APIError, APITimeoutError, RateLimitError
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

F = TypeVar("F", bound=Callable[..., Any])

LLM_RETRY_ATTEMPTS = 3

RETRYABLE_ERRORS = (APIError, APITimeoutError, RateLimitError)


def llm_retry(func: F) -> F:
    """
    Retry decorator for async LLM API calls with exponential backoff.

    - 3 attempts
    - Wait: 1s min, 10s max, exponential multiplier=1
    - Retries on: APIError, APITimeoutError, RateLimitError
    - Any other exception is raised immediately

    Usage:
        @llm_retry
        async def call_openai_api(...):
            ...

    Args:
        func: Async function to wrap with retry logic

    Returns:
        Wrapped function with retry behavior
    """
    retrying_decorator = retry(
        stop=stop_after_attempt(LLM_RETRY_ATTEMPTS),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(RETRYABLE_ERRORS),
        before_sleep=before_sleep_log(logger, "WARNING"),
        reraise=True,
    )

    @wraps(func)
    async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
        @retrying_decorator
        async def _retry_call() -> Any:
            try:
                return await func(*args, **kwargs)
            except RETRYABLE_ERRORS as e:
                logger.warning(
                    f"LLM API call failed in {func.__name__}: {type(e).__name__}: {e}"
                )
                raise
            except Exception as e:
                logger.error(
                    f"Non-retryable error in {func.__name__}: {type(e).__name__}: {e}"
                )
                raise

        return await _retry_call()

    return async_wrapper  # type: ignore
