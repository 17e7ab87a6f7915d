"""
Error types for AI note processing.

Every failure in the pipeline is expressed as an AIError subclass carrying a
stable code (for logs and API responses) and a retryable flag (whether the
UI should offer a retry). Notes are saved before processing starts, so none
of these errors ever mean data loss.
"""
from typing import Optional


class AIError(Exception):
    """Base class for AI processing errors."""

    code = "AI_ERROR"
    retryable = False

    def __init__(self, message: str, retryable: Optional[bool] = None):
        self.message = message
        if retryable is not None:
            self.retryable = retryable
        super().__init__(message)


class ConfigurationError(AIError):
    """Raised when the model service is not configured (missing API key)."""

    code = "CONFIG_ERROR"
    retryable = False

    def __init__(self, message: str = "AI processing is not configured"):
        super().__init__(message)


class RateLimitError(AIError):
    """Raised when a caller is over its rate limit or the model service throttles us."""

    code = "RATE_LIMIT"
    retryable = True

    def __init__(
        self,
        message: str = "Rate limit exceeded. Please try again later.",
        retry_after: Optional[float] = None,
    ):
        self.retry_after = retry_after
        super().__init__(message)


class AITimeoutError(AIError):
    """Raised when a model call exceeds its timeout."""

    code = "TIMEOUT"
    retryable = True

    def __init__(self, message: str = "AI processing timed out. Please try again."):
        super().__init__(message)


class ParseError(AIError):
    """Raised when the model response can't be turned into JSON."""

    code = "PARSE_ERROR"
    retryable = True

    def __init__(
        self,
        message: str = "Failed to parse AI response",
        raw_response: Optional[str] = None,
    ):
        self.raw_response = raw_response
        super().__init__(message)


class ResponseValidationError(AIError):
    """Raised when parsed JSON doesn't match the expected schema."""

    code = "VALIDATION_ERROR"
    retryable = True

    def __init__(
        self,
        message: str = "AI response validation failed",
        validation_errors: Optional[list[str]] = None,
    ):
        self.validation_errors = validation_errors or []
        super().__init__(message)


class APIError(AIError):
    """Raised for model service failures. Client-side 4xx errors are final."""

    code = "API_ERROR"
    retryable = True

    def __init__(
        self,
        message: str = "AI service error",
        status: Optional[int] = None,
        retryable: bool = True,
    ):
        self.status = status
        super().__init__(message, retryable=retryable)


class ContextTooLargeError(AIError):
    """Raised when a non-chunkable note plus its context exceeds the input cap."""

    code = "CONTEXT_TOO_LARGE"
    retryable = False

    def __init__(
        self,
        context_size: int,
        max_size: int,
        message: str = "Content is too large to process",
    ):
        self.context_size = context_size
        self.max_size = max_size
        super().__init__(message)


def is_retryable_error(error: BaseException) -> bool:
    """Unknown errors default to retryable; AIErrors carry their own flag."""
    if isinstance(error, AIError):
        return error.retryable
    return True


def get_error_code(error: BaseException) -> str:
    """Get a stable error code for logging and API responses."""
    if isinstance(error, AIError):
        return error.code
    if isinstance(error, Exception):
        return "UNKNOWN_ERROR"
    return "UNKNOWN"
