"""
AI note processing pipeline for RoloDex.

Turns a freshly saved note into extracted details, action items and an
updated contact summary.

Pipeline:
1. Configuration check (fatal if the model service has no API key)
2. Routing: transcripts longer than the chunk budget go to the chunked
   path; anything else must fit the input cap or fails as too large
3. Admission: one rate-limit token per invocation
4. Standard path: one model call, parse, normalize
5. Chunked path: one call per chunk in order, then one merge call; a
   failed chunk becomes an empty result, a failed merge falls back to
   deterministic aggregation with a placeholder summary

process_note never raises for pipeline failures (only for cancellation):
errors come back as a failed ProcessNoteResult with a friendly message.
The note itself was saved by the caller before processing started.
"""
import asyncio
import logging
from enum import Enum
from typing import Optional

from config.settings import settings
from api.services.ai_errors import AIError, ConfigurationError, ContextTooLargeError, ParseError
from api.services.chunker import chunk_text, get_chunk_size, needs_chunking
from api.services.model_client import ModelClient, get_model_client
from api.services.note_context import ExtractedData, ProcessingContext, ProcessNoteResult
from api.services.note_prompts import (
    MERGE_SYSTEM_PROMPT,
    SYSTEM_PROMPT,
    build_chunk_prompt,
    build_merge_prompt,
    build_user_message,
    estimate_context_tokens,
)
from api.services.rate_limiter import RateLimiter, get_rate_limiter
from api.services.resilience import create_error_result
from api.services.response_parser import (
    ChunkResult,
    normalize_action_items,
    normalize_details,
    parse_ai_response,
    parse_chunk_result,
    validate_summary_length,
)

logger = logging.getLogger(__name__)

# Returned in place of a synthesized summary when the merge call fails
PLACEHOLDER_SUMMARY = "Summary generation in progress. Please check back later."


class PipelineState(str, Enum):
    """Processing states for one invocation."""
    IDLE = "idle"
    ADMISSION_CHECK = "admission_check"
    STANDARD = "standard"
    CHUNKED = "chunked"
    COMPLETED = "completed"
    FAILED = "failed"


def aggregate_chunk_results(chunk_results: list[ChunkResult]) -> ExtractedData:
    """
    Combine chunk results without a model call (merge fallback).

    Details and action items are concatenated in chunk order and
    deduplicated; the summary is the placeholder.
    """
    all_details = [d for r in chunk_results for d in r.extracted_details]
    all_actions = [a for r in chunk_results for a in r.action_items]
    return ExtractedData(
        extracted_details=normalize_details(all_details),
        action_items=normalize_action_items(all_actions),
        summary=PLACEHOLDER_SUMMARY,
    )


class NotePipeline:
    """
    Orchestrates model calls for one note at a time.

    Holds no per-invocation state; the model client and rate limiter are
    shared across invocations.
    """

    def __init__(
        self,
        model_client: Optional[ModelClient] = None,
        rate_limiter: Optional[RateLimiter] = None,
        chunk_size: Optional[int] = None,
        chunk_delay: Optional[float] = None,
        max_input_tokens: Optional[int] = None,
    ):
        """
        Initialize pipeline.

        Args:
            model_client: Client for the model service (default singleton)
            rate_limiter: Per-caller limiter (default singleton)
            chunk_size: Chunk budget in characters (default 80% of context window)
            chunk_delay: Seconds to wait between chunk calls
            max_input_tokens: Input cap for the standard path
        """
        self.model_client = model_client if model_client is not None else get_model_client()
        self.rate_limiter = rate_limiter if rate_limiter is not None else get_rate_limiter()
        self.chunk_size = chunk_size if chunk_size is not None else get_chunk_size()
        self.chunk_delay = chunk_delay if chunk_delay is not None else settings.chunk_delay_seconds
        self.max_input_tokens = (
            max_input_tokens if max_input_tokens is not None else settings.max_input_tokens
        )

    def _enter(self, note_id: str, state: PipelineState) -> PipelineState:
        logger.debug(f"Note {note_id}: {state.value}")
        return state

    async def process_note(self, context: ProcessingContext, caller_id: str) -> ProcessNoteResult:
        """
        Process a note and extract information.

        Args:
            context: Contact, new note and previous notes
            caller_id: Id used for rate limiting (the owning user)

        Returns:
            ProcessNoteResult; success=False carries a friendly error,
            code, retryable flag and retry_after hint where applicable
        """
        note = context.new_note
        state = self._enter(note.id, PipelineState.IDLE)

        try:
            if not self.model_client.is_configured():
                raise ConfigurationError()

            chunked = note.is_transcript and needs_chunking(note.content, self.chunk_size)

            if not chunked:
                estimated = estimate_context_tokens(context)
                if estimated > self.max_input_tokens:
                    raise ContextTooLargeError(
                        estimated,
                        self.max_input_tokens,
                        "Content is too large to process. Try adding shorter notes.",
                    )

            state = self._enter(note.id, PipelineState.ADMISSION_CHECK)

            async def run() -> ProcessNoteResult:
                nonlocal state
                if chunked:
                    state = self._enter(note.id, PipelineState.CHUNKED)
                    return await self._process_with_chunking(context)
                state = self._enter(note.id, PipelineState.STANDARD)
                return await self._process_standard(context)

            result = await self.rate_limiter.with_rate_limit(caller_id, run)

        except AIError as e:
            logger.error(f"Processing failed for note {note.id} in {state.value} ({e.code}): {e}")
            self._enter(note.id, PipelineState.FAILED)
            return ProcessNoteResult.failure(create_error_result(e))
        except Exception as e:
            logger.exception(f"Unexpected error processing note {note.id} in {state.value}: {e}")
            self._enter(note.id, PipelineState.FAILED)
            return ProcessNoteResult.failure(create_error_result(e))

        self._enter(note.id, PipelineState.COMPLETED)
        return result

    def _to_extracted(self, response_text: str) -> ExtractedData:
        """Parse, validate and normalize a standard or merge response."""
        parsed = parse_ai_response(response_text)
        summary = parsed.summary.strip()
        if not validate_summary_length(summary):
            logger.info("Summary is outside the 2-4 sentence range; keeping it")
        return ExtractedData(
            extracted_details=normalize_details(parsed.extracted_details),
            action_items=normalize_action_items(parsed.action_items),
            summary=summary,
        )

    async def _process_standard(self, context: ProcessingContext) -> ProcessNoteResult:
        """Standard processing for regular notes."""
        user_message = build_user_message(context)
        response = await self.model_client.send_message(SYSTEM_PROMPT, user_message)

        try:
            data = self._to_extracted(response)
        except AIError:
            raise
        except Exception as e:
            raise ParseError(f"Failed to process note: {e}", raw_response=response) from e

        logger.info(
            f"Processed note {context.new_note.id}: {len(data.extracted_details)} details, "
            f"{len(data.action_items)} action items"
        )
        return ProcessNoteResult(success=True, data=data, was_chunked=False)

    async def _process_with_chunking(self, context: ProcessingContext) -> ProcessNoteResult:
        """Process a long transcript chunk by chunk, then merge."""
        chunks = chunk_text(context.new_note.content, chunk_size=self.chunk_size)
        contact_name = context.contact.full_name
        logger.info(f"Processing note {context.new_note.id} in {len(chunks)} chunks")

        chunk_results: list[ChunkResult] = []
        for chunk in chunks:
            system, user = build_chunk_prompt(chunk, contact_name)
            try:
                response = await self.model_client.send_message(system, user)
                chunk_results.append(parse_chunk_result(response))
            except Exception as e:
                logger.warning(f"Failed to process chunk {chunk.index + 1}/{chunk.total}: {e}")
                chunk_results.append(ChunkResult())

            if chunk.index < len(chunks) - 1 and self.chunk_delay > 0:
                await asyncio.sleep(self.chunk_delay)

        failed = sum(1 for r in chunk_results if r.is_empty())
        if failed:
            logger.info(f"{failed}/{len(chunks)} chunks produced no results")

        return await self._merge_chunk_results(context, chunk_results)

    async def _merge_chunk_results(
        self,
        context: ProcessingContext,
        chunk_results: list[ChunkResult],
    ) -> ProcessNoteResult:
        """Merge chunk results with one model call, aggregating locally if it fails."""
        try:
            user_message = build_merge_prompt(context, chunk_results)
            response = await self.model_client.send_message(MERGE_SYSTEM_PROMPT, user_message)
            data = self._to_extracted(response)
        except Exception as e:
            logger.warning(f"Merge failed for note {context.new_note.id}, aggregating chunks: {e}")
            return ProcessNoteResult(
                success=True,
                data=aggregate_chunk_results(chunk_results),
                was_chunked=True,
                is_partial=True,
            )

        return ProcessNoteResult(success=True, data=data, was_chunked=True)


# Singleton instance
_note_pipeline: Optional[NotePipeline] = None


def get_note_pipeline() -> NotePipeline:
    """Get or create NotePipeline singleton."""
    global _note_pipeline
    if _note_pipeline is None:
        _note_pipeline = NotePipeline()
    return _note_pipeline


def reset_note_pipeline() -> None:
    """
    Reset the pipeline singleton.

    For testing only - the pipeline holds references to the other singletons.
    """
    global _note_pipeline
    _note_pipeline = None


async def process_note(context: ProcessingContext, caller_id: str) -> ProcessNoteResult:
    """Process a note with the shared pipeline."""
    return await get_note_pipeline().process_note(context, caller_id)
