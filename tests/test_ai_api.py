"""
Tests for the AI processing API (/api/ai endpoints).

The pipeline is mocked; these tests cover request validation, status code
mapping and response shape.
"""
import pytest
from unittest.mock import patch, AsyncMock

from api.services.ai_errors import (
    APIError,
    ConfigurationError,
    ContextTooLargeError,
    RateLimitError,
)
from api.services.note_context import ExtractedData, ProcessNoteResult
from api.services.note_pipeline import PLACEHOLDER_SUMMARY
from api.services.resilience import create_error_result

# Mark all tests in this module as unit tests
pytestmark = pytest.mark.unit


def _payload(content="Had coffee with Sarah. She is hiring.", note_type="manual"):
    return {
        "caller_id": "user-1",
        "context": {
            "contact": {"id": "c1", "first_name": "Sarah", "last_name": "Chen", "company": "Acme"},
            "new_note": {"id": "n1", "content": content, "type": note_type, "created_at": "2025-03-15T10:00:00Z"},
            "previous_notes": [{"content": "Met at PyCon", "created_at": "2024-05-18"}],
        },
    }


class TestProcessNoteAPI:
    """Tests for POST /api/ai/process-note."""

    @pytest.fixture
    def client(self):
        """Create test client."""
        from fastapi.testclient import TestClient
        from api.main import app
        return TestClient(app)

    @pytest.fixture
    def mock_process_note(self):
        """Mock the shared pipeline entry point."""
        with patch("api.routes.ai.process_note", new_callable=AsyncMock) as mock:
            yield mock

    def test_success(self, client, mock_process_note):
        mock_process_note.return_value = ProcessNoteResult(
            success=True,
            data=ExtractedData(
                extracted_details=["Is hiring"],
                action_items=["Send referrals"],
                summary="Sarah leads engineering at Acme. She is hiring.",
            ),
        )

        response = client.post("/api/ai/process-note", json=_payload())

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["data"]["action_items"] == ["Send referrals"]
        assert data["was_chunked"] is False
        assert data["is_partial"] is False

        context, caller_id = mock_process_note.call_args.args
        assert caller_id == "user-1"
        assert context.contact.full_name == "Sarah Chen"
        assert context.new_note.is_transcript is False
        assert context.previous_notes[0].content == "Met at PyCon"

    def test_partial_success(self, client, mock_process_note):
        mock_process_note.return_value = ProcessNoteResult(
            success=True,
            data=ExtractedData(["Lives in Austin"], [], PLACEHOLDER_SUMMARY),
            was_chunked=True,
            is_partial=True,
        )

        response = client.post("/api/ai/process-note", json=_payload(note_type="transcript"))

        assert response.status_code == 200
        assert response.json()["is_partial"] is True

    def test_rate_limited_returns_429_with_retry_after(self, client, mock_process_note):
        mock_process_note.return_value = ProcessNoteResult.failure(
            create_error_result(RateLimitError(retry_after=6.2))
        )

        response = client.post("/api/ai/process-note", json=_payload())

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "7"
        data = response.json()
        assert data["success"] is False
        assert data["code"] == "RATE_LIMIT"
        assert data["retryable"] is True

    @pytest.mark.parametrize("error,status", [
        (ContextTooLargeError(50000, 45000), 413),
        (ConfigurationError(), 503),
        (APIError("upstream", status=500), 502),
    ])
    def test_failure_status_codes(self, client, mock_process_note, error, status):
        mock_process_note.return_value = ProcessNoteResult.failure(create_error_result(error))

        response = client.post("/api/ai/process-note", json=_payload())

        assert response.status_code == status
        assert response.json()["code"] == error.code
        assert "Retry-After" not in response.headers

    def test_empty_content_rejected(self, client, mock_process_note):
        """Empty note content should be rejected with 400 validation error."""
        response = client.post("/api/ai/process-note", json=_payload(content=""))

        assert response.status_code == 400
        assert response.json()["error"] == "Note content cannot be empty"
        mock_process_note.assert_not_called()

    def test_invalid_note_type_rejected(self, client, mock_process_note):
        response = client.post("/api/ai/process-note", json=_payload(note_type="voice"))

        assert response.status_code == 400
        assert response.json()["error"] == "Validation error"

    def test_missing_caller_rejected(self, client, mock_process_note):
        payload = _payload()
        del payload["caller_id"]

        response = client.post("/api/ai/process-note", json=payload)

        assert response.status_code == 400


class TestChunkPreviewAPI:
    """Tests for POST /api/ai/chunk-preview."""

    @pytest.fixture
    def client(self):
        from fastapi.testclient import TestClient
        from api.main import app
        return TestClient(app)

    def test_short_text(self, client):
        response = client.post("/api/ai/chunk-preview", json={"content": "A short transcript."})

        assert response.status_code == 200
        data = response.json()
        assert data["needs_chunking"] is False
        assert data["chunk_count"] == 1
        assert data["estimated_ms"] == 2500

    def test_long_transcript(self, client):
        response = client.post("/api/ai/chunk-preview", json={"content": "word " * 100000})

        data = response.json()
        assert data["needs_chunking"] is True
        assert data["total_length"] == 500000
        assert data["chunk_count"] == 4
        assert data["estimated_ms"] == 4 * 2500 + 3000


class TestStatusAPI:

    @pytest.fixture
    def client(self):
        from fastapi.testclient import TestClient
        from api.main import app
        return TestClient(app)

    def test_status_configured(self, client, mock_settings):
        response = client.get("/api/ai/status")

        assert response.status_code == 200
        data = response.json()
        assert data["configured"] is True
        assert data["model"] == mock_settings.ai_model
        assert data["chunk_size_chars"] == 144000

    def test_status_not_configured(self, client):
        with patch("api.routes.ai.get_model_client") as mock_get:
            mock_get.return_value.is_configured.return_value = False
            mock_get.return_value.model = "claude-3-haiku-20240307"

            response = client.get("/api/ai/status")

        assert response.json()["configured"] is False

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "rolodex-ai"
        assert "api_key_configured" in data["checks"]
