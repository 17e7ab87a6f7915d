"""
Prompts for AI note processing.

Three prompt families:
- Standard: one note plus contact context -> details, action items, summary
- Chunk: one slice of a long transcript -> details, action items, key points
- Merge: the union of all chunk extractions -> deduplicated final result

All prompts ask for bare JSON; response_parser tolerates fences and prose anyway.
"""
import math
from typing import Optional

from config.settings import settings
from api.services.chunker import TextChunk
from api.services.note_context import (
    ContactProfile,
    PreviousNote,
    ProcessingContext,
    NOTE_TYPE_TRANSCRIPT,
)
from api.services.response_parser import ChunkResult
from api.utils.datetime_utils import format_note_date

# Rough estimate: 1 token ~= 4 characters of English text
CHARS_PER_TOKEN = 4


SYSTEM_PROMPT = """You are a personal CRM assistant helping a user keep up with the people in their network. You analyze notes about a contact and pull out what is worth remembering.

You will receive:
1. Information about the contact (name, company, role, etc.)
2. The current summary of the contact, if there is one
3. Previous notes about the contact, if any
4. A new note that was just added

Your job:
1. Extract personal details worth remembering (interests, family, preferences, key dates)
2. Identify action items the user should follow up on
3. Write a 2-4 sentence "living summary" of who this person is

For the summary, cover:
- Who they are professionally (role, company)
- What they care about
- Recent highlights or context that matters for the relationship

Rules:
- Be concise and specific
- Only list real action items (things the user should DO), not observations
- Phrase action items as tasks starting with a verb
- Update the existing summary with new information instead of starting over
- Return ONLY valid JSON, no other text

Output format (JSON):
{
  "extracted_details": ["detail 1", "detail 2"],
  "action_items": ["action 1", "action 2"],
  "summary": "2-4 sentence summary"
}"""


TRANSCRIPT_CHUNK_SYSTEM_PROMPT = """You are a personal CRM assistant reading part of a meeting transcript or long conversation.

This is CHUNK {chunk_index} of {total_chunks} of a longer transcript.

Your job:
1. Extract personal details about the contact (interests, family, preferences, key dates)
2. Identify action items or commitments made
3. Note important context or developments in the relationship

Rules:
- Focus on facts and commitments, not general observations
- Action items should be specific and start with a verb
- Be brief; this is only one part of the conversation
- Return ONLY valid JSON

Output format (JSON):
{{
  "extracted_details": ["detail 1", "detail 2"],
  "action_items": ["action 1", "action 2"],
  "key_points": ["point 1", "point 2"]
}}"""


MERGE_SYSTEM_PROMPT = """You are a personal CRM assistant. A long transcript was processed in several chunks and you now need to combine the results.

You will receive:
1. Contact information
2. The current summary, if there is one
3. Details and action items extracted from every chunk
4. Key points from the conversation

Your job:
1. Combine the extracted details, removing duplicates
2. Combine the action items, removing duplicates
3. Write a 2-4 sentence "living summary" that includes the new information

For the summary, cover:
- Who they are professionally
- What they care about
- Highlights from this conversation

Rules:
- Treat items that say the same thing in different words as duplicates
- Prefer specific, actionable items
- Keep the summary natural and conversational
- Return ONLY valid JSON

Output format (JSON):
{
  "extracted_details": ["detail 1", "detail 2"],
  "action_items": ["action 1", "action 2"],
  "summary": "2-4 sentence summary"
}"""


def build_contact_info(contact: ContactProfile) -> str:
    """Build the '## Contact Info' section, or '' if nothing is known."""
    lines = []
    if contact.company:
        lines.append(f"- Company: {contact.company}")
    if contact.role:
        lines.append(f"- Role: {contact.role}")
    if contact.location:
        lines.append(f"- Location: {contact.location}")
    if contact.how_we_met:
        lines.append(f"- How we met: {contact.how_we_met}")
    if contact.personal_intel:
        lines.append(f"- Personal notes: {contact.personal_intel}")

    if not lines:
        return ""
    return "## Contact Info\n" + "\n".join(lines)


def build_previous_notes(
    notes: list[PreviousNote],
    limit: Optional[int] = None,
    max_chars: Optional[int] = None,
) -> str:
    """
    Build the '## Previous Notes' section.

    Only the most recent ``limit`` notes are included and each is cut to
    ``max_chars``; these are background, not the note being processed.
    """
    limit = limit if limit is not None else settings.previous_notes_limit
    max_chars = max_chars if max_chars is not None else settings.previous_note_max_chars

    if not notes or limit <= 0:
        return ""

    sections = []
    for index, note in enumerate(notes[:limit]):
        kind = " (transcript)" if note.type == NOTE_TYPE_TRANSCRIPT else ""
        content = note.content
        if len(content) > max_chars:
            content = content[:max_chars] + "..."
        date = format_note_date(note.created_at)
        sections.append(f"### Note {index + 1}{kind} - {date}\n{content}")

    return "\n## Previous Notes\n" + "\n\n".join(sections)


def build_user_message(context: ProcessingContext) -> str:
    """Build the user message for standard (single-call) processing."""
    contact = context.contact
    note = context.new_note

    contact_info = build_contact_info(contact)
    summary_section = (
        f"\n## Current Summary\n{contact.current_summary}"
        if contact.current_summary else ""
    )
    previous_section = build_previous_notes(context.previous_notes)

    return (
        f"# Contact: {contact.full_name}\n\n"
        f"{contact_info}{summary_section}{previous_section}\n\n"
        f"## New Note ({note.type})\n{note.content}\n\n"
        "Please analyze this information and return the extracted details, "
        "action items, and updated summary as JSON."
    )


def estimate_tokens(text: str) -> int:
    """Estimate token count from character length."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def estimate_context_tokens(context: ProcessingContext) -> int:
    """Estimated tokens for system prompt plus the standard user message."""
    return estimate_tokens(SYSTEM_PROMPT) + estimate_tokens(build_user_message(context))


def build_chunk_prompt(chunk: TextChunk, contact_name: str) -> tuple[str, str]:
    """
    Build the (system, user) prompt pair for one transcript chunk.
    """
    system = TRANSCRIPT_CHUNK_SYSTEM_PROMPT.format(
        chunk_index=chunk.index + 1,
        total_chunks=chunk.total,
    )
    user = (
        f"# Transcript Chunk {chunk.index + 1} of {chunk.total}\n"
        f"## Contact: {contact_name}\n\n"
        f"{chunk.content}\n\n"
        "Please analyze this transcript segment and extract the relevant information as JSON."
    )
    return system, user


def _bullets(title: str, items: list[str]) -> str:
    if not items:
        return ""
    return f"\n## {title}\n" + "\n".join(f"- {item}" for item in items)


def build_merge_prompt(context: ProcessingContext, chunk_results: list[ChunkResult]) -> str:
    """Build the user message for the merge call from all chunk results."""
    contact = context.contact

    all_details = [d for r in chunk_results for d in r.extracted_details]
    all_actions = [a for r in chunk_results for a in r.action_items]
    all_points = [p for r in chunk_results for p in r.key_points]

    contact_lines = [f"## Contact: {contact.full_name}"]
    if contact.company:
        contact_lines.append(f"- Company: {contact.company}")
    if contact.role:
        contact_lines.append(f"- Role: {contact.role}")

    summary_section = (
        f"\n## Current Summary\n{contact.current_summary}"
        if contact.current_summary else ""
    )

    return (
        "\n".join(contact_lines)
        + summary_section
        + _bullets("Extracted Details from Transcript", all_details)
        + _bullets("Action Items Found", all_actions)
        + _bullets("Key Points from Conversation", all_points)
        + "\n\nPlease synthesize this information into a deduplicated set of details, "
        "action items, and an updated summary. Return as JSON."
    )
