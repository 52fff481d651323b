"""Typed settings configuration - single source of truth."""

from functools import lru_cache

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # LLM provider
    openai_api_key: SecretStr | None = None
    openai_model: str = "gpt-4o-mini"
    openai_base_url: str | None = None

    # Outbound concurrency cap (simultaneous model calls per client)
    llm_max_concurrency: int = 4

    # Per-kind call timeouts (seconds)
    summary_timeout_seconds: float = 60.0
    study_guide_timeout_seconds: float = 120.0
    quiz_timeout_seconds: float = 90.0
    explanation_timeout_seconds: float = 45.0
    adjust_timeout_seconds: float = 60.0

    # Whole-request deadline (seconds)
    request_timeout_seconds: float = 180.0

    # Input limits
    max_request_bytes: int = 4 * 1024 * 1024
    max_document_chars: int = 60_000
    trim_boilerplate: bool = False

    # Chunking (characters)
    summary_chunk_size: int = 2000
    summary_chunk_overlap: int = 200
    study_guide_chunk_size: int = 4000
    study_guide_chunk_overlap: int = 400

    # Study guide fan-out
    study_guide_max_workers: int = 4

    # Practice quiz
    quiz_section_count: int = 3
    default_question_count: int = 10
    max_questions: int = 30

    # Retry policy for generation calls
    generation_max_attempts: int = 3
    retry_backoff_initial_ms: int = 0
    retry_backoff_multiplier: float = 2.0
    retry_backoff_max_ms: int = 4000
    retry_jitter_ms: int = 0

    # Logging
    log_level: str = "INFO"
    log_json: bool = True


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
