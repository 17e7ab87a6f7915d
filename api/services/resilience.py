"""
Resilience utilities for RoloDex AI.

Provides:
- Retry logic for transient model-service failures
- Retryable HTTP status classification
- Error wrapping and user-friendly messages
"""
import asyncio
import functools
import math
import logging
from typing import Callable, TypeVar, Optional, Any
from dataclasses import dataclass

from api.services.ai_errors import (
    APIError,
    AITimeoutError,
    ConfigurationError,
    ContextTooLargeError,
    ParseError,
    RateLimitError,
    ResponseValidationError,
    get_error_code,
    is_retryable_error,
)

logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_retries: int = 2  # retries after the first attempt
    base_delay: float = 1.0  # seconds
    max_delay: float = 10.0  # seconds
    exponential_base: float = 2.0
    retryable_exceptions: tuple = (Exception,)
    # Finer-grained filter applied to exceptions that match retryable_exceptions
    should_retry: Optional[Callable[[Exception], bool]] = None

    @classmethod
    def from_attempts(cls, max_attempts: int, **kwargs) -> "RetryConfig":
        """Build a config from a total attempt budget (first call included)."""
        return cls(max_retries=max(0, max_attempts - 1), **kwargs)

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number ``attempt + 1`` (attempt is 0-based)."""
        return min(self.base_delay * (self.exponential_base ** attempt), self.max_delay)


DEFAULT_RETRY_CONFIG = RetryConfig()


def retry_async(
    config: Optional[RetryConfig] = None,
    on_retry: Optional[Callable[[int, Exception], None]] = None,
):
    """
    Decorator for async functions with retry logic.

    Exceptions rejected by ``config.should_retry`` propagate immediately
    without consuming the retry budget.

    Args:
        config: Retry configuration
        on_retry: Optional callback on each retry (retry_num, exception)
    """
    cfg = config or DEFAULT_RETRY_CONFIG

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            last_exception = None

            for attempt in range(cfg.max_retries + 1):
                try:
                    return await func(*args, **kwargs)
                except cfg.retryable_exceptions as e:
                    if cfg.should_retry is not None and not cfg.should_retry(e):
                        raise
                    last_exception = e

                    if attempt < cfg.max_retries:
                        delay = cfg.delay_for(attempt)
                        logger.warning(
                            f"Retry {attempt + 1}/{cfg.max_retries} for {func.__name__}: {e}. "
                            f"Waiting {delay:.1f}s..."
                        )

                        if on_retry:
                            on_retry(attempt + 1, e)

                        await asyncio.sleep(delay)
                    else:
                        logger.error(
                            f"All {cfg.max_retries} retries exhausted for {func.__name__}: {e}"
                        )

            raise last_exception

        return wrapper
    return decorator


def is_retryable_status(status_code: int) -> bool:
    """
    Check if HTTP status code is retryable.

    Args:
        status_code: HTTP status code

    Returns:
        True if the error is transient and retryable
    """
    # 5xx server errors
    if status_code >= 500:
        return True

    # 429 Too Many Requests
    if status_code == 429:
        return True

    # 408 Request Timeout
    if status_code == 408:
        return True

    return False


def user_friendly_error(error: BaseException) -> str:
    """
    Convert exception to user-friendly error message.

    Args:
        error: The exception to convert

    Returns:
        User-friendly error message
    """
    # Known pipeline errors first
    if isinstance(error, ConfigurationError):
        return "Summary generation is not available. Please contact support."

    if isinstance(error, RateLimitError):
        if error.retry_after:
            return f"Too many requests. Please wait {math.ceil(error.retry_after)} seconds and try again."
        return "Too many requests. Please wait a moment and try again."

    if isinstance(error, AITimeoutError):
        return "Processing took too long. Please try again."

    if isinstance(error, ParseError):
        return "Could not process the response. Please try again."

    if isinstance(error, ResponseValidationError):
        return "Invalid response received. Please try again."

    if isinstance(error, ContextTooLargeError):
        return "The content is too large to process. Try adding shorter notes."

    if isinstance(error, APIError):
        if not error.retryable:
            return "The AI service rejected the request. Please contact support."
        return "Service temporarily unavailable. Please try again later."

    error_str = str(error).lower()

    # Network errors
    if "timeout" in error_str or "timed out" in error_str:
        return "Processing took too long. Please try again."

    if "connection" in error_str or "network" in error_str:
        return "Network error. Please check your connection and try again."

    # Default
    return "Something went wrong. Please try again."


def create_error_result(error: BaseException) -> dict[str, Any]:
    """
    Build the structured failure payload returned to callers.

    Returns:
        Dict with success=False, a friendly message, code, retryable flag,
        and retry_after (seconds) when the error carries a wait hint
    """
    result: dict[str, Any] = {
        "success": False,
        "error": user_friendly_error(error),
        "code": get_error_code(error),
        "retryable": is_retryable_error(error),
    }
    if isinstance(error, RateLimitError) and error.retry_after is not None:
        result["retry_after"] = error.retry_after
    return result
