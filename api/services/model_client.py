"""
Model client for RoloDex AI.

Wraps the Anthropic Messages API for one-shot prompts:
- One system prompt + one user message in, one text block out
- Per-call timeout (default 30s)
- Bounded retry with exponential backoff for 429, 5xx, timeouts and
  network errors; other failures propagate on the first attempt
- Provider exceptions translated to the ai_errors taxonomy

The SDK's own retry loop is disabled so the retry policy here is the only one.

NOTE: anthropic library is imported lazily to speed up test collection.
"""
import asyncio
import logging
from typing import Any, Optional, TYPE_CHECKING

from config.settings import settings
from api.services.ai_errors import (
    AIError,
    APIError,
    AITimeoutError,
    ConfigurationError,
    ParseError,
    RateLimitError,
)
from api.services.resilience import RetryConfig, is_retryable_status, retry_async

if TYPE_CHECKING:
    import anthropic

logger = logging.getLogger(__name__)


def is_transient_error(error: Exception) -> bool:
    """Whether a model call failure is worth another attempt."""
    if isinstance(error, (RateLimitError, AITimeoutError)):
        return True
    if isinstance(error, APIError):
        return error.retryable
    return False


def _retry_after_seconds(response: Any) -> Optional[float]:
    """Read the retry-after header from an error response, if any."""
    headers = getattr(response, "headers", None)
    if not headers:
        return None
    value = headers.get("retry-after")
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def translate_error(error: Exception) -> AIError:
    """
    Translate an Anthropic SDK exception into an AIError.

    Args:
        error: Exception raised by the SDK call

    Returns:
        RateLimitError for 429, AITimeoutError for timeouts, APIError
        (retryable for 5xx/408 and network failures) for everything else
    """
    import anthropic

    if isinstance(error, AIError):
        return error

    if isinstance(error, anthropic.APITimeoutError):
        return AITimeoutError()

    if isinstance(error, anthropic.APIConnectionError):
        return APIError(f"Network error contacting AI service: {error}", retryable=True)

    if isinstance(error, anthropic.RateLimitError):
        return RateLimitError(
            "AI service rate limit reached",
            retry_after=_retry_after_seconds(error.response),
        )

    if isinstance(error, anthropic.APIStatusError):
        status = error.status_code
        return APIError(
            f"AI service error ({status}): {error.message}",
            status=status,
            retryable=is_retryable_status(status),
        )

    return APIError(f"Unexpected AI service error: {error}", retryable=False)


class ModelClient:
    """
    Client for one-shot text completions from Claude.

    The underlying SDK client is created on first use and reused.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        retry_base_delay: Optional[float] = None,
        retry_max_delay: Optional[float] = None,
        max_output_tokens: Optional[int] = None,
    ):
        """
        Initialize model client.

        Args:
            api_key: Anthropic API key (defaults to settings)
            model: Model identifier (defaults to settings)
            timeout: Per-call timeout in seconds
            max_attempts: Total attempts per call, first included
            retry_base_delay: First backoff between attempts (seconds)
            retry_max_delay: Cap on backoff between attempts
            max_output_tokens: Default max_tokens for responses
        """
        # Use provided key, but only fall back to settings if not explicitly passed
        self.api_key = api_key if api_key is not None else settings.anthropic_api_key
        self.model = model or settings.ai_model
        self.timeout = timeout if timeout is not None else settings.ai_timeout_seconds
        self.max_attempts = max_attempts if max_attempts is not None else settings.ai_max_attempts
        self.max_output_tokens = (
            max_output_tokens if max_output_tokens is not None else settings.max_output_tokens
        )
        self.retry_config = RetryConfig.from_attempts(
            self.max_attempts,
            base_delay=retry_base_delay if retry_base_delay is not None else settings.ai_retry_base_delay,
            max_delay=retry_max_delay if retry_max_delay is not None else settings.ai_retry_max_delay,
            retryable_exceptions=(AIError,),
            should_retry=is_transient_error,
        )
        self._client: Any = None

    def is_configured(self) -> bool:
        """Check if an API key is set."""
        return bool(self.api_key and self.api_key.strip())

    def _validate_api_key(self):
        """Validate that API key is configured."""
        if not self.is_configured():
            raise ConfigurationError(
                "Anthropic API key not configured. "
                "Please set ANTHROPIC_API_KEY in your .env file."
            )

    @property
    def client(self) -> "anthropic.AsyncAnthropic":
        """Lazy-load the Anthropic client."""
        if self._client is None:
            import anthropic
            self._client = anthropic.AsyncAnthropic(
                api_key=self.api_key,
                timeout=self.timeout,
                max_retries=0,
            )
        return self._client

    async def send_message(
        self,
        system_prompt: str,
        user_message: str,
        max_tokens: Optional[int] = None,
        temperature: float = 0.0,
    ) -> str:
        """
        Send one prompt and return the response text.

        Args:
            system_prompt: System prompt
            user_message: User message content
            max_tokens: Maximum response tokens (default from settings)
            temperature: Sampling temperature (0 for deterministic extraction)

        Returns:
            Text of the response's text block

        Raises:
            ConfigurationError: No API key
            RateLimitError, AITimeoutError, APIError: After retries are
                exhausted, or immediately for non-retryable failures
            ParseError: Response had no text block
        """
        self._validate_api_key()
        tokens = max_tokens or self.max_output_tokens

        @retry_async(config=self.retry_config)
        async def _attempt() -> str:
            return await self._create_message(system_prompt, user_message, tokens, temperature)

        return await _attempt()

    async def _create_message(
        self,
        system_prompt: str,
        user_message: str,
        max_tokens: int,
        temperature: float,
    ) -> str:
        """Make a single API call and extract its text."""
        try:
            response = await asyncio.wait_for(
                self.client.messages.create(
                    model=self.model,
                    max_tokens=max_tokens,
                    temperature=temperature,
                    system=system_prompt,
                    messages=[{"role": "user", "content": user_message}],
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Claude call timed out after {self.timeout}s")
            raise AITimeoutError()
        except Exception as e:
            translated = translate_error(e)
            logger.warning(f"Claude API error ({translated.code}): {e}")
            raise translated from e

        usage = getattr(response, "usage", None)
        if usage is not None:
            logger.debug(
                f"Claude usage: {getattr(usage, 'input_tokens', '?')} in, "
                f"{getattr(usage, 'output_tokens', '?')} out"
            )

        for block in response.content or []:
            if getattr(block, "type", None) == "text":
                return block.text

        raise ParseError("No text content in AI response")


# Singleton instance
_model_client: Optional[ModelClient] = None


def get_model_client() -> ModelClient:
    """Get or create ModelClient singleton."""
    global _model_client
    if _model_client is None:
        _model_client = ModelClient()
    return _model_client


def reset_model_client() -> None:
    """
    Reset the model client singleton.

    For testing only - allows tests to pick up patched settings.
    """
    global _model_client
    _model_client = None
