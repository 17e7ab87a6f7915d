"""
RoloDex AI Services Package.

Business logic for turning saved notes into structured contact data.

Example:
    from api.services import process_note, ProcessingContext

Key service modules:
- note_pipeline: Orchestrates standard and chunked processing
- chunker: Boundary-aware splitting of long transcripts
- note_prompts: Prompt construction and token estimates
- response_parser: Tolerant JSON extraction and validation
- model_client: Anthropic Messages API wrapper
- rate_limiter: Per-caller token buckets with backoff
- ai_errors: Error taxonomy
- resilience: Retry and friendly error mapping
- debounce: Collapses rapid repeated saves into one call
"""

# ============================================================================
# Pipeline
# ============================================================================

from api.services.note_pipeline import (
    NotePipeline,
    get_note_pipeline,
    process_note,
)

from api.services.note_context import (
    ContactProfile,
    ExtractedData,
    NewNote,
    PreviousNote,
    ProcessingContext,
    ProcessNoteResult,
    build_processing_context,
)

# ============================================================================
# Infrastructure
# ============================================================================

from api.services.model_client import ModelClient, get_model_client
from api.services.rate_limiter import RateLimiter, get_rate_limiter
from api.services.ai_errors import AIError
from api.services.debounce import NoteDebouncer


__all__ = [
    # Pipeline
    "NotePipeline",
    "get_note_pipeline",
    "process_note",
    "ContactProfile",
    "ExtractedData",
    "NewNote",
    "PreviousNote",
    "ProcessingContext",
    "ProcessNoteResult",
    "build_processing_context",
    # Infrastructure
    "ModelClient",
    "get_model_client",
    "RateLimiter",
    "get_rate_limiter",
    "AIError",
    "NoteDebouncer",
]
