"""
Transcript chunking service for RoloDex AI.

Long meeting transcripts can exceed the model's context window, so they are
split into overlapping chunks that are processed one at a time and merged.

Chunking strategy:
- Chunk budget is 80% of the context window (room for system prompt + response)
- Text that fits the budget is returned as a single chunk
- Cuts are moved back to the nearest paragraph, line, sentence, clause or
  word boundary within the last 500 characters of the window
- Consecutive chunks overlap by 500 characters for cross-boundary context
- A tail shorter than the minimum chunk size is folded into the last chunk

All offsets are positions in the trimmed text.
"""
from dataclasses import dataclass
from typing import Optional

from config.settings import settings


# Separators tried in priority order when looking for a cut point
PARAGRAPH_BREAK = "\n\n"
LINE_BREAK = "\n"
SENTENCE_ENDINGS = (". ", "! ", "? ")
CLAUSE_ENDINGS = (", ", "; ", ": ")

# Processing time heuristics (milliseconds)
AVG_MS_PER_CHUNK = 2500
MERGE_MS = 3000


@dataclass
class TextChunk:
    """A bounded slice of a long note."""
    index: int
    total: int
    content: str
    start_offset: int
    end_offset: int

    def to_dict(self) -> dict:
        """Convert to dict for JSON serialization."""
        return {
            "index": self.index,
            "total": self.total,
            "content": self.content,
            "start_offset": self.start_offset,
            "end_offset": self.end_offset,
        }


def get_chunk_size(context_window_chars: Optional[int] = None) -> int:
    """Chunk budget in characters for a given context window."""
    if context_window_chars is None:
        return settings.chunk_size_chars
    return int(context_window_chars * 0.8)


def needs_chunking(text: str, chunk_size: Optional[int] = None) -> bool:
    """Check if text is longer than the chunk budget."""
    size = chunk_size if chunk_size is not None else get_chunk_size()
    return len(text) > size


def find_break_point(
    text: str,
    start: int,
    target: int,
    search_window: Optional[int] = None,
) -> int:
    """
    Find a natural cut point at or before ``target``.

    Searches the last ``search_window`` characters before ``target`` (never
    before ``start``) for, in order: paragraph break, line break, sentence
    ending, clause ending, then any space. The cut lands just after the
    separator. Falls back to ``target`` (hard cut) when nothing is found.

    Args:
        text: Full text being chunked
        start: Start offset of the current chunk
        target: Desired end offset

    Returns:
        Offset in the range [start, target]
    """
    window = search_window if search_window is not None else settings.break_search_chars
    search_start = max(start, target - window)
    search_text = text[search_start:target]

    paragraph = search_text.rfind(PARAGRAPH_BREAK)
    if paragraph != -1:
        return search_start + paragraph + len(PARAGRAPH_BREAK)

    line = search_text.rfind(LINE_BREAK)
    if line != -1:
        return search_start + line + len(LINE_BREAK)

    for separators in (SENTENCE_ENDINGS, CLAUSE_ENDINGS):
        for sep in separators:
            pos = search_text.rfind(sep)
            if pos != -1:
                return search_start + pos + len(sep)

    space = search_text.rfind(" ")
    if space != -1:
        return search_start + space + 1

    return target


def chunk_text(
    text: str,
    chunk_size: Optional[int] = None,
    overlap: Optional[int] = None,
    min_chunk_size: Optional[int] = None,
) -> list[TextChunk]:
    """
    Split text into overlapping chunks.

    Args:
        text: Text to chunk (leading/trailing whitespace is trimmed)
        chunk_size: Max characters per chunk (default: 80% of context window)
        overlap: Characters shared by consecutive chunks
        min_chunk_size: Smallest tail worth its own chunk

    Returns:
        Ordered list of TextChunk, all with the same ``total``
    """
    size = chunk_size if chunk_size is not None else get_chunk_size()
    overlap = overlap if overlap is not None else settings.chunk_overlap_chars
    min_size = min_chunk_size if min_chunk_size is not None else settings.min_chunk_chars

    trimmed = text.strip()

    if len(trimmed) <= size:
        return [TextChunk(
            index=0,
            total=1,
            content=trimmed,
            start_offset=0,
            end_offset=len(trimmed),
        )]

    chunks: list[TextChunk] = []
    position = 0

    while position < len(trimmed):
        end = min(position + size, len(trimmed))

        if end < len(trimmed):
            end = find_break_point(trimmed, position, end)

        chunks.append(TextChunk(
            index=len(chunks),
            total=0,  # filled in below
            content=trimmed[position:end],
            start_offset=position,
            end_offset=end,
        ))

        if end >= len(trimmed):
            break

        # Step back by the overlap, but always make forward progress
        next_position = end - overlap
        if next_position <= position:
            next_position = end
        position = next_position

        if len(trimmed) - position < min_size:
            break

    # Fold any remainder into the last chunk
    last = chunks[-1]
    if last.end_offset < len(trimmed):
        last.end_offset = len(trimmed)
        last.content = trimmed[last.start_offset:]

    for chunk in chunks:
        chunk.total = len(chunks)

    return chunks


def get_chunk_stats(text: str, chunk_size: Optional[int] = None) -> dict:
    """
    Summarize how a text would be chunked.

    Returns:
        Dict with 'total_length', 'chunk_count', 'avg_chunk_size'
    """
    chunks = chunk_text(text, chunk_size=chunk_size)
    chunk_count = len(chunks)
    avg_chunk_size = round(sum(len(c.content) for c in chunks) / chunk_count)

    return {
        "total_length": len(text),
        "chunk_count": chunk_count,
        "avg_chunk_size": avg_chunk_size,
    }


def estimate_processing_time(chunk_count: int) -> int:
    """
    Estimate processing time in milliseconds.

    Based on ~2.5s per chunk call plus ~3s for the merge call.
    """
    merge = MERGE_MS if chunk_count > 1 else 0
    return chunk_count * AVG_MS_PER_CHUNK + merge
