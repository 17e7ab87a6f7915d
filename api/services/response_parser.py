"""
Model response parsing and normalization for RoloDex AI.

The model is asked to return bare JSON, but in practice responses arrive
wrapped in code fences or surrounded by prose. This module finds the JSON
object, validates it against the expected schema, and cleans the lists
before they reach the caller.

## Usage

    from api.services.response_parser import parse_ai_response, normalize_action_items

    parsed = parse_ai_response(response_text)
    items = normalize_action_items(parsed.action_items)
"""
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Iterator, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from api.services.ai_errors import ParseError, ResponseValidationError

logger = logging.getLogger(__name__)

CODE_BLOCK_PATTERN = re.compile(r"```(?:json)?\s*\n?([\s\S]*?)\n?```")
REQUIRED_KEYS_PATTERN = re.compile(
    r'\{[\s\S]*"extracted_details"[\s\S]*"action_items"[\s\S]*"summary"[\s\S]*\}'
)
BULLET_PATTERN = re.compile(r"^(?:[-*•]\s*)+")
SENTENCE_END_PATTERN = re.compile(r"[.!?]+")

SUMMARY_MIN_CHARS = 10
SUMMARY_MAX_CHARS = 1000


class ExtractedNoteSchema(BaseModel):
    """Expected shape of a standard or merge response."""

    model_config = ConfigDict(str_strip_whitespace=True)

    extracted_details: list[str] = Field(
        ..., description="Personal details about the contact extracted from notes"
    )
    action_items: list[str] = Field(
        ..., description="Action items identified from the note content"
    )
    summary: str = Field(
        ...,
        min_length=SUMMARY_MIN_CHARS,
        max_length=SUMMARY_MAX_CHARS,
        description="A 2-4 sentence summary of who this person is",
    )


@dataclass
class ChunkResult:
    """Extraction from one transcript chunk, before the merge step."""
    extracted_details: list[str] = field(default_factory=list)
    action_items: list[str] = field(default_factory=list)
    key_points: list[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.extracted_details or self.action_items or self.key_points)


def _json_candidates(text: str) -> Iterator[str]:
    """Yield candidate JSON substrings, most specific first."""
    trimmed = text.strip()

    # Pure JSON
    if trimmed.startswith("{") and trimmed.endswith("}"):
        yield trimmed

    # Markdown code block
    block = CODE_BLOCK_PATTERN.search(trimmed)
    if block and block.group(1):
        yield block.group(1).strip()

    # Object containing all three required keys
    keyed = REQUIRED_KEYS_PATTERN.search(trimmed)
    if keyed:
        yield keyed.group(0)

    # Lenient: first { to last }
    first_brace = trimmed.find("{")
    last_brace = trimmed.rfind("}")
    if first_brace != -1 and last_brace > first_brace:
        yield trimmed[first_brace:last_brace + 1]


def extract_json(text: str) -> Optional[str]:
    """
    Extract the JSON object string from a model response.

    Handles pure JSON, JSON in a markdown code block, and JSON with
    surrounding text. Each strategy is tried in turn until one yields a
    string that decodes to a JSON object.

    Returns:
        The JSON string, or None if no strategy produced a valid object
    """
    for candidate in _json_candidates(text):
        try:
            if isinstance(json.loads(candidate), dict):
                return candidate
        except json.JSONDecodeError:
            continue
    return None


def load_json_object(text: str) -> dict:
    """Extract and decode the JSON object in a response, or raise ParseError."""
    json_string = extract_json(text)
    if json_string is None:
        logger.debug(f"No JSON object in response: {text[:500]}")
        raise ParseError("No valid JSON found in AI response", raw_response=text)
    return json.loads(json_string)


def parse_ai_response(response_text: str) -> ExtractedNoteSchema:
    """
    Parse and validate a standard or merge response.

    Raises:
        ParseError: No JSON object could be extracted
        ResponseValidationError: JSON didn't match the schema; carries
            one "field: message" entry per problem
    """
    data = load_json_object(response_text)

    try:
        return ExtractedNoteSchema.model_validate(data)
    except PydanticValidationError as e:
        errors = [
            f"{'.'.join(str(p) for p in err['loc']) or 'response'}: {err['msg']}"
            for err in e.errors()
        ]
        raise ResponseValidationError(
            f"AI response validation failed: {', '.join(errors)}",
            validation_errors=errors,
        ) from e


def _string_list(value) -> list[str]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, str)]


def parse_chunk_result(response_text: str) -> ChunkResult:
    """
    Parse a chunk response tolerantly.

    Missing or malformed lists become empty; non-string entries are dropped.
    Only a response with no JSON object at all is an error.
    """
    data = load_json_object(response_text)
    return ChunkResult(
        extracted_details=_string_list(data.get("extracted_details")),
        action_items=_string_list(data.get("action_items")),
        key_points=_string_list(data.get("key_points")),
    )


def validate_summary_length(summary: str) -> bool:
    """Check that the summary is 2-4 sentences."""
    sentence_count = len(SENTENCE_END_PATTERN.findall(summary))
    return 2 <= sentence_count <= 4


def _dedupe(items: list[str]) -> list[str]:
    """Drop empties and case-insensitive duplicates, keeping first occurrence."""
    seen = set()
    result = []
    for item in items:
        key = item.casefold()
        if not item or key in seen:
            continue
        seen.add(key)
        result.append(item)
    return result


def normalize_details(details: list[str]) -> list[str]:
    """
    Clean and normalize extracted details.
    Removes duplicates and empty strings.
    """
    return _dedupe([d.strip() for d in details])


def normalize_action_item(item: str) -> str:
    """Trim, strip leading bullets, and capitalize one action item."""
    cleaned = BULLET_PATTERN.sub("", item.strip()).strip()
    if not cleaned:
        return ""
    return cleaned[0].upper() + cleaned[1:]


def normalize_action_items(items: list[str]) -> list[str]:
    """
    Clean and normalize action items.
    Removes duplicates, empty strings, and leading bullet points.
    """
    return _dedupe([normalize_action_item(item) for item in items])
