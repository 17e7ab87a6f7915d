"""
Tests for api/services/model_client.py

Tests the Anthropic wrapper: error translation, retry policy, timeouts and
response text extraction. The SDK client is mocked; no network calls.
"""
import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import pytest

from api.services.ai_errors import (
    APIError,
    AITimeoutError,
    ConfigurationError,
    ParseError,
    RateLimitError,
)
from api.services.model_client import ModelClient, get_model_client, translate_error

pytestmark = pytest.mark.unit

URL = "https://api.anthropic.com/v1/messages"


def _request() -> httpx.Request:
    return httpx.Request("POST", URL)


def _status_error(cls, status: int, headers: dict = None):
    response = httpx.Response(status, headers=headers or {}, request=_request())
    return cls(f"error {status}", response=response, body=None)


def _response(*blocks):
    return SimpleNamespace(
        content=list(blocks),
        usage=SimpleNamespace(input_tokens=120, output_tokens=40),
    )


def _text(text: str):
    return SimpleNamespace(type="text", text=text)


@pytest.fixture
def client():
    """ModelClient with a mocked SDK client and no retry delay."""
    model_client = ModelClient(
        api_key="test-key",
        model="claude-test",
        timeout=5,
        max_attempts=3,
        retry_base_delay=0,
        retry_max_delay=0,
    )
    sdk = MagicMock()
    sdk.messages.create = AsyncMock()
    model_client._client = sdk
    return model_client


# =============================================================================
# translate_error Tests
# =============================================================================

class TestTranslateError:
    """Tests for SDK exception translation."""

    def test_rate_limit_with_retry_after(self):
        error = _status_error(anthropic.RateLimitError, 429, {"retry-after": "7"})
        translated = translate_error(error)

        assert isinstance(translated, RateLimitError)
        assert translated.retry_after == 7.0

    def test_rate_limit_without_retry_after(self):
        translated = translate_error(_status_error(anthropic.RateLimitError, 429))
        assert isinstance(translated, RateLimitError)
        assert translated.retry_after is None

    def test_server_error_is_retryable(self):
        translated = translate_error(_status_error(anthropic.InternalServerError, 500))

        assert isinstance(translated, APIError)
        assert translated.status == 500
        assert translated.retryable is True

    def test_bad_request_is_final(self):
        translated = translate_error(_status_error(anthropic.BadRequestError, 400))

        assert isinstance(translated, APIError)
        assert translated.status == 400
        assert translated.retryable is False

    def test_timeout(self):
        translated = translate_error(anthropic.APITimeoutError(request=_request()))
        assert isinstance(translated, AITimeoutError)

    def test_connection_error_is_retryable(self):
        error = anthropic.APIConnectionError(message="connection reset", request=_request())
        translated = translate_error(error)

        assert isinstance(translated, APIError)
        assert translated.retryable is True

    def test_unknown_error_is_final(self):
        translated = translate_error(ValueError("weird"))
        assert isinstance(translated, APIError)
        assert translated.retryable is False

    def test_ai_error_passes_through(self):
        error = ParseError("bad")
        assert translate_error(error) is error


# =============================================================================
# Configuration Tests
# =============================================================================

class TestConfiguration:

    def test_is_configured(self):
        assert ModelClient(api_key="sk-test").is_configured() is True

    @pytest.mark.parametrize("key", ["", "   "])
    def test_not_configured(self, key):
        assert ModelClient(api_key=key).is_configured() is False

    @pytest.mark.asyncio
    async def test_send_without_key_raises(self):
        model_client = ModelClient(api_key="")
        with pytest.raises(ConfigurationError):
            await model_client.send_message("system", "user")

    def test_sdk_client_has_retries_disabled(self):
        model_client = ModelClient(api_key="sk-test", timeout=12)
        sdk = model_client.client

        assert isinstance(sdk, anthropic.AsyncAnthropic)
        assert sdk.max_retries == 0
        assert model_client.client is sdk

    def test_singleton(self):
        assert get_model_client() is get_model_client()


# =============================================================================
# send_message Tests
# =============================================================================

class TestSendMessage:
    """Tests for send_message retry and extraction."""

    @pytest.mark.asyncio
    async def test_returns_text_block(self, client):
        client._client.messages.create.return_value = _response(_text('{"ok": true}'))

        result = await client.send_message("system prompt", "user message")

        assert result == '{"ok": true}'
        kwargs = client._client.messages.create.call_args.kwargs
        assert kwargs["model"] == "claude-test"
        assert kwargs["system"] == "system prompt"
        assert kwargs["messages"] == [{"role": "user", "content": "user message"}]
        assert kwargs["temperature"] == 0.0
        assert kwargs["max_tokens"] == 2048

    @pytest.mark.asyncio
    async def test_skips_non_text_blocks(self, client):
        tool_block = SimpleNamespace(type="tool_use", input={})
        client._client.messages.create.return_value = _response(tool_block, _text("hello"))

        assert await client.send_message("s", "u") == "hello"

    @pytest.mark.asyncio
    async def test_no_text_block_is_parse_error(self, client):
        client._client.messages.create.return_value = _response()

        with pytest.raises(ParseError):
            await client.send_message("s", "u")
        # Parse errors are not retried
        assert client._client.messages.create.await_count == 1

    @pytest.mark.asyncio
    async def test_retries_server_errors(self, client):
        client._client.messages.create.side_effect = [
            _status_error(anthropic.InternalServerError, 500),
            _status_error(anthropic.InternalServerError, 503),
            _response(_text("finally")),
        ]

        assert await client.send_message("s", "u") == "finally"
        assert client._client.messages.create.await_count == 3

    @pytest.mark.asyncio
    async def test_retries_rate_limits_then_gives_up(self, client):
        client._client.messages.create.side_effect = _status_error(anthropic.RateLimitError, 429)

        with pytest.raises(RateLimitError):
            await client.send_message("s", "u")
        assert client._client.messages.create.await_count == 3

    @pytest.mark.asyncio
    async def test_does_not_retry_client_errors(self, client):
        client._client.messages.create.side_effect = _status_error(anthropic.BadRequestError, 400)

        with pytest.raises(APIError) as exc_info:
            await client.send_message("s", "u")

        assert exc_info.value.status == 400
        assert client._client.messages.create.await_count == 1

    @pytest.mark.asyncio
    async def test_timeout_translated_and_retried(self, client):
        client.timeout = 0.01

        async def hang(**kwargs):
            await asyncio.sleep(1)

        client._client.messages.create.side_effect = hang

        with pytest.raises(AITimeoutError):
            await client.send_message("s", "u")
        assert client._client.messages.create.await_count == 3

    @pytest.mark.asyncio
    async def test_single_attempt_budget(self):
        model_client = ModelClient(api_key="test-key", max_attempts=1, retry_base_delay=0)
        sdk = MagicMock()
        sdk.messages.create = AsyncMock(side_effect=_status_error(anthropic.InternalServerError, 500))
        model_client._client = sdk

        with pytest.raises(APIError):
            await model_client.send_message("s", "u")
        assert sdk.messages.create.await_count == 1

    @pytest.mark.asyncio
    async def test_max_tokens_override(self, client):
        client._client.messages.create.return_value = _response(_text("x"))

        await client.send_message("s", "u", max_tokens=100)

        assert client._client.messages.create.call_args.kwargs["max_tokens"] == 100
