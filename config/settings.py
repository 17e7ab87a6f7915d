"""
RoloDex AI Configuration Settings
"""
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Server
    port: int = Field(default=8000, alias="ROLODEX_PORT")
    host: str = Field(default="0.0.0.0", alias="ROLODEX_HOST")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # API Keys (no prefix - standard env var names)
    anthropic_api_key: str = Field(default="", alias="ANTHROPIC_API_KEY")

    # Model
    # Haiku keeps per-note processing cheap; every note save triggers a call
    ai_model: str = Field(default="claude-3-haiku-20240307", alias="ROLODEX_AI_MODEL")
    max_output_tokens: int = Field(default=2048, alias="ROLODEX_MAX_OUTPUT_TOKENS")
    ai_timeout_seconds: float = Field(
        default=30.0,
        alias="ROLODEX_AI_TIMEOUT",
        description="Per-call timeout for the model service (seconds)"
    )
    ai_max_attempts: int = Field(
        default=3,
        alias="ROLODEX_AI_MAX_ATTEMPTS",
        description="Total attempts per model call, including the first"
    )
    ai_retry_base_delay: float = Field(default=1.0, alias="ROLODEX_AI_RETRY_BASE_DELAY")
    ai_retry_max_delay: float = Field(default=10.0, alias="ROLODEX_AI_RETRY_MAX_DELAY")

    # Context budget
    # Characters, not tokens: ~3.5 chars per token keeps this conservative
    context_window_chars: int = Field(default=180000, alias="ROLODEX_CONTEXT_WINDOW_CHARS")
    max_input_tokens: int = Field(
        default=45000,
        alias="ROLODEX_MAX_INPUT_TOKENS",
        description="Hard cap on estimated prompt tokens for the standard path"
    )
    previous_notes_limit: int = Field(default=10, alias="ROLODEX_PREVIOUS_NOTES_LIMIT")
    previous_note_max_chars: int = Field(default=2000, alias="ROLODEX_PREVIOUS_NOTE_MAX_CHARS")

    # Chunking
    chunk_overlap_chars: int = Field(default=500, alias="ROLODEX_CHUNK_OVERLAP_CHARS")
    min_chunk_chars: int = Field(
        default=1000,
        alias="ROLODEX_MIN_CHUNK_CHARS",
        description="Tails shorter than this are folded into the previous chunk"
    )
    break_search_chars: int = Field(default=500, alias="ROLODEX_BREAK_SEARCH_CHARS")
    chunk_delay_seconds: float = Field(
        default=0.5,
        alias="ROLODEX_CHUNK_DELAY",
        description="Pause between sequential chunk calls"
    )

    # Rate limiting (per caller)
    rate_limit_capacity: int = Field(
        default=10,
        alias="ROLODEX_RATE_LIMIT_CAPACITY",
        description="Requests per minute per caller"
    )
    rate_limit_refill_per_second: Optional[float] = Field(
        default=None,
        alias="ROLODEX_RATE_LIMIT_REFILL_PER_SECOND",
        description="Token refill rate; defaults to capacity / 60"
    )
    backoff_base_seconds: float = Field(default=1.0, alias="ROLODEX_BACKOFF_BASE")
    backoff_max_seconds: float = Field(default=60.0, alias="ROLODEX_BACKOFF_MAX")
    rate_limit_idle_seconds: float = Field(
        default=300.0,
        alias="ROLODEX_RATE_LIMIT_IDLE_SECONDS",
        description="Inactive caller state older than this is swept"
    )
    rate_limit_sweep_seconds: float = Field(default=300.0, alias="ROLODEX_RATE_LIMIT_SWEEP_SECONDS")

    # Debounce for rapid repeated saves
    debounce_seconds: float = Field(default=2.0, alias="ROLODEX_DEBOUNCE_SECONDS")

    @property
    def chunk_size_chars(self) -> int:
        """Chunk budget: 80% of the context window, leaving room for prompt and response."""
        return int(self.context_window_chars * 0.8)

    @property
    def rate_limit_refill_rate(self) -> float:
        """Tokens added per second for each caller's bucket."""
        if self.rate_limit_refill_per_second is not None:
            return self.rate_limit_refill_per_second
        return self.rate_limit_capacity / 60

    @property
    def ai_enabled(self) -> bool:
        """Check if the model service is configured."""
        return bool(self.anthropic_api_key and self.anthropic_api_key.strip())


settings = Settings()
