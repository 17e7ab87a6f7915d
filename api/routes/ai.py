"""
AI processing API routes for RoloDex.

The caller (the notes UI backend) saves the note first, assembles the
processing context from its own storage, and posts it here. Persisting the
returned data is the caller's job.
"""
import logging
import math
from typing import Literal, Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from config.settings import settings
from api.services.chunker import estimate_processing_time, get_chunk_stats, needs_chunking
from api.services.model_client import get_model_client
from api.services.note_context import ProcessingContext
from api.services.note_pipeline import process_note

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ai", tags=["ai"])

# HTTP status for each failure code; anything else is a 502 from the model service
ERROR_STATUS = {
    "RATE_LIMIT": 429,
    "CONTEXT_TOO_LARGE": 413,
    "CONFIG_ERROR": 503,
}

NoteType = Literal["manual", "transcript"]


class ContactModel(BaseModel):
    """Contact profile for processing."""
    id: str
    first_name: str = Field(..., min_length=1)
    last_name: Optional[str] = None
    company: Optional[str] = None
    role: Optional[str] = None
    location: Optional[str] = None
    how_we_met: Optional[str] = None
    personal_intel: Optional[str] = None
    current_summary: Optional[str] = None


class NewNoteModel(BaseModel):
    """The note that was just saved."""
    id: str
    content: str = Field(..., min_length=1)
    type: NoteType = "manual"
    created_at: str = ""


class PreviousNoteModel(BaseModel):
    """An earlier note, newest first."""
    content: str
    type: NoteType = "manual"
    created_at: str = ""


class ProcessingContextModel(BaseModel):
    contact: ContactModel
    new_note: NewNoteModel
    previous_notes: list[PreviousNoteModel] = []


class ProcessNoteRequest(BaseModel):
    """Request to process a saved note."""
    caller_id: str = Field(..., min_length=1, description="Owning user id, used for rate limiting")
    context: ProcessingContextModel


class ChunkPreviewRequest(BaseModel):
    """Request to preview how a transcript would be chunked."""
    content: str = Field(..., min_length=1)


class ChunkPreviewResponse(BaseModel):
    needs_chunking: bool
    total_length: int
    chunk_count: int
    avg_chunk_size: int
    estimated_ms: int


class AIStatusResponse(BaseModel):
    configured: bool
    model: str
    chunk_size_chars: int


@router.post("/process-note")
async def process_note_endpoint(request: ProcessNoteRequest):
    """
    **Process a saved note** into extracted details, action items and an
    updated contact summary.

    Long transcripts are processed in chunks and merged. When the merge step
    fails the response is still successful but `is_partial` is true and the
    summary is a placeholder.
    """
    context = ProcessingContext.from_dict(request.context.model_dump())
    result = await process_note(context, request.caller_id)
    body = result.to_dict()

    if result.success:
        return body

    status = ERROR_STATUS.get(result.code, 502)
    headers = {}
    if result.retry_after is not None:
        headers["Retry-After"] = str(math.ceil(result.retry_after))
    logger.info(f"process-note failed for {request.caller_id}: {result.code}")
    return JSONResponse(status_code=status, content=body, headers=headers)


@router.post("/chunk-preview", response_model=ChunkPreviewResponse)
async def chunk_preview(request: ChunkPreviewRequest):
    """Preview chunking and processing time for a transcript before upload."""
    stats = get_chunk_stats(request.content)
    return ChunkPreviewResponse(
        needs_chunking=needs_chunking(request.content),
        estimated_ms=estimate_processing_time(stats["chunk_count"]),
        **stats,
    )


@router.get("/status", response_model=AIStatusResponse)
async def ai_status():
    """Report whether AI processing is available."""
    client = get_model_client()
    return AIStatusResponse(
        configured=client.is_configured(),
        model=client.model,
        chunk_size_chars=settings.chunk_size_chars,
    )
