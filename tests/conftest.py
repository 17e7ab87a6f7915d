"""
Pytest configuration and shared fixtures for RoloDex AI tests.

Test Categories:
- unit: Fast tests with no external dependencies (< 100ms each)
- slow: Tests that build the FastAPI app or sleep on real timers
- integration: Tests requiring a real ANTHROPIC_API_KEY

Run categories:
- pytest -m unit              # Fast unit tests only
- pytest -m "not slow"        # Skip slow tests
- pytest                      # All tests
"""
import pytest
from unittest.mock import AsyncMock, MagicMock

from tests.reset_singletons import reset_all_singletons


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "slow: Slow tests (app startup, real timers)")
    config.addinivalue_line("markers", "integration: Integration tests (real API key required)")


@pytest.fixture(autouse=True)
def reset_singletons_after_test():
    """Drop service singletons so patched settings and mocks don't leak."""
    yield
    reset_all_singletons()


@pytest.fixture(scope="function")
def mock_settings(monkeypatch):
    """
    Mock settings for testing.

    Uses a fake API key and no inter-chunk delay.
    """
    from config.settings import Settings

    mock = Settings(
        anthropic_api_key="test-key-for-testing",
        chunk_delay_seconds=0,
    )

    # Patch the global settings everywhere it was imported
    for module in (
        "config.settings",
        "api.services.chunker",
        "api.services.model_client",
        "api.services.note_pipeline",
        "api.services.note_prompts",
        "api.services.rate_limiter",
        "api.routes.ai",
    ):
        monkeypatch.setattr(f"{module}.settings", mock)
    return mock


class FakeClock:
    """Manually advanced monotonic clock for rate limiter tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    """A FakeClock starting at t=1000s."""
    return FakeClock()


@pytest.fixture
def contact_dict():
    """A contact as the caller would send it."""
    return {
        "id": "contact-1",
        "first_name": "Sarah",
        "last_name": "Chen",
        "company": "Acme Robotics",
        "role": "VP Engineering",
        "location": "Austin",
        "how_we_met": "PyCon 2024",
        "personal_intel": None,
        "current_summary": None,
    }


@pytest.fixture
def make_context(contact_dict):
    """Factory for ProcessingContext with a given note body and type."""
    from api.services.note_context import ProcessingContext

    def _make(content="Had coffee with Sarah.", note_type="manual", previous_notes=None):
        return ProcessingContext.from_dict({
            "contact": contact_dict,
            "new_note": {
                "id": "note-1",
                "content": content,
                "type": note_type,
                "created_at": "2025-03-15T10:00:00Z",
            },
            "previous_notes": previous_notes or [],
        })

    return _make


@pytest.fixture
def mock_model_client():
    """A configured ModelClient stand-in with an AsyncMock send_message."""
    client = MagicMock()
    client.is_configured.return_value = True
    client.model = "claude-3-haiku-20240307"
    client.send_message = AsyncMock()
    return client
