"""
Data model for AI note processing.

ProcessingContext is assembled by the caller from its own storage for every
invocation and never persisted here. ExtractedData and ProcessNoteResult are
what the caller gets back and is responsible for saving.
"""
from dataclasses import dataclass, field
from typing import Any, Optional

NOTE_TYPE_MANUAL = "manual"
NOTE_TYPE_TRANSCRIPT = "transcript"
NOTE_TYPES = {NOTE_TYPE_MANUAL, NOTE_TYPE_TRANSCRIPT}


@dataclass
class ContactProfile:
    """The contact a note is about."""
    id: str
    first_name: str
    last_name: Optional[str] = None
    company: Optional[str] = None
    role: Optional[str] = None
    location: Optional[str] = None
    how_we_met: Optional[str] = None
    personal_intel: Optional[str] = None
    current_summary: Optional[str] = None

    @property
    def full_name(self) -> str:
        if self.last_name:
            return f"{self.first_name} {self.last_name}"
        return self.first_name


@dataclass
class NewNote:
    """The note that was just saved and triggered processing."""
    id: str
    content: str
    type: str = NOTE_TYPE_MANUAL
    created_at: str = ""

    @property
    def is_transcript(self) -> bool:
        return self.type == NOTE_TYPE_TRANSCRIPT


@dataclass
class PreviousNote:
    """An earlier note about the same contact, newest first."""
    content: str
    type: str = NOTE_TYPE_MANUAL
    created_at: str = ""


@dataclass
class ProcessingContext:
    """Everything the pipeline needs for one invocation."""
    contact: ContactProfile
    new_note: NewNote
    previous_notes: list[PreviousNote] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "ProcessingContext":
        """Create a ProcessingContext from a dict with contact/new_note/previous_notes."""
        return cls(
            contact=ContactProfile(**data["contact"]),
            new_note=NewNote(**data["new_note"]),
            previous_notes=[PreviousNote(**n) for n in data.get("previous_notes") or []],
        )


@dataclass
class ExtractedData:
    """Final extraction for one note."""
    extracted_details: list[str] = field(default_factory=list)
    action_items: list[str] = field(default_factory=list)
    summary: str = ""

    def to_dict(self) -> dict:
        return {
            "extracted_details": list(self.extracted_details),
            "action_items": list(self.action_items),
            "summary": self.summary,
        }


@dataclass
class ProcessNoteResult:
    """
    Outcome of process_note.

    is_partial marks a chunked result whose merge call failed: details and
    action items are real, but the summary is a placeholder the caller
    should not store over an existing summary.
    """
    success: bool
    data: Optional[ExtractedData] = None
    error: Optional[str] = None
    code: Optional[str] = None
    retryable: Optional[bool] = None
    retry_after: Optional[float] = None
    was_chunked: bool = False
    is_partial: bool = False

    @classmethod
    def failure(cls, error_result: dict[str, Any]) -> "ProcessNoteResult":
        """Build a failed result from create_error_result() output."""
        return cls(
            success=False,
            error=error_result["error"],
            code=error_result["code"],
            retryable=error_result["retryable"],
            retry_after=error_result.get("retry_after"),
        )

    def to_dict(self) -> dict:
        """Convert to dict for JSON serialization, omitting unset fields."""
        result: dict[str, Any] = {"success": self.success}
        if self.data is not None:
            result["data"] = self.data.to_dict()
            result["was_chunked"] = self.was_chunked
            result["is_partial"] = self.is_partial
        if self.error is not None:
            result["error"] = self.error
            result["code"] = self.code
            result["retryable"] = self.retryable
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        return result


def build_processing_context(
    contact: dict,
    new_note: dict,
    previous_notes: list[dict],
) -> ProcessingContext:
    """
    Build a ProcessingContext from storage rows.

    Args:
        contact: Contact row (first_name, last_name, company, role, location,
            how_we_met, personal_intel, ai_summary)
        new_note: Note row (id, content, note_type, created_at)
        previous_notes: Earlier note rows, newest first

    Returns:
        ProcessingContext ready for process_note
    """
    return ProcessingContext(
        contact=ContactProfile(
            id=contact["id"],
            first_name=contact["first_name"],
            last_name=contact.get("last_name"),
            company=contact.get("company"),
            role=contact.get("role"),
            location=contact.get("location"),
            how_we_met=contact.get("how_we_met"),
            personal_intel=contact.get("personal_intel"),
            current_summary=contact.get("ai_summary"),
        ),
        new_note=NewNote(
            id=new_note["id"],
            content=new_note["content"],
            type=new_note.get("note_type", NOTE_TYPE_MANUAL),
            created_at=new_note.get("created_at", ""),
        ),
        previous_notes=[
            PreviousNote(
                content=note["content"],
                type=note.get("note_type", NOTE_TYPE_MANUAL),
                created_at=note.get("created_at", ""),
            )
            for note in previous_notes
        ],
    )
