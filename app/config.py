"""Configuration management for the assessment marker service.

This module uses Pydantic Settings to load configuration from environment
variables. All settings are validated at startup to catch configuration
errors early. Local rule-based marking needs no configuration at all; the
Gemini API key is only required for remote marking.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All sensitive values (API keys) must be provided via environment
    variables or .env file.
    """

    # Gemini API Configuration
    gemini_api_key: Optional[str] = Field(
        default=None,
        description="Google Gemini API key for remote marking"
    )

    # AI Model Configuration
    model_name: str = Field(
        default="gemini-3-flash-preview",
        description="Gemini model to use for remote marking"
    )
    temperature: float = Field(
        default=0.1,
        description="Sampling temperature for marking completions"
    )
    single_max_output_tokens: int = Field(
        default=3000,
        description="Output token limit when a document fits one request"
    )
    chunk_max_output_tokens: int = Field(
        default=2500,
        description="Output token limit per chunk of a split document"
    )

    # Request budget and chunking
    max_request_tokens: int = Field(
        default=8000,
        description="Token budget for system prompt, user prompt and document content"
    )
    max_chunks_per_document: int = Field(
        default=10,
        description="Refuse documents that would need more chunks than this"
    )

    # Pacing (shared rate limits)
    chunk_delay_seconds: float = Field(
        default=8.0,
        description="Pause between chunk requests of one document"
    )
    document_delay_seconds: float = Field(
        default=5.0,
        description="Pause between documents in a batch"
    )
    request_timeout_seconds: float = Field(
        default=120.0,
        description="Timeout for a single completion request"
    )

    # Retry policy
    retry_max_retries: int = Field(default=3, ge=0, description="Retries after the first attempt")
    retry_base_delay_seconds: float = Field(default=2.0, ge=0.0, description="Base backoff delay")
    retry_max_jitter_seconds: float = Field(default=2.0, ge=0.0, description="Max random jitter for rate-limit backoff")
    retry_max_delay_seconds: float = Field(default=30.0, ge=0.0, description="Cap for rate-limit backoff")

    # API
    trusted_proxies: str = Field(
        default="",
        description="Comma-separated proxy IPs whose X-Forwarded-For header is trusted"
    )
    log_level: str = Field(default="INFO", description="Root log level")

    # Model configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("gemini_api_key")
    @classmethod
    def validate_gemini_api_key(cls, v: Optional[str]) -> Optional[str]:
        """Strip the key; treat blank values as not configured."""
        if v is None or not v.strip():
            return None
        return v.strip()

    @field_validator(
        "single_max_output_tokens",
        "chunk_max_output_tokens",
        "max_request_tokens",
        "max_chunks_per_document",
    )
    @classmethod
    def validate_positive_int(cls, v: int) -> int:
        """Token budgets and chunk limits must be positive."""
        if v <= 0:
            raise ValueError(f"must be a positive integer (got {v})")
        return v

    @field_validator("request_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Request timeout must be positive."""
        if v <= 0:
            raise ValueError(f"REQUEST_TIMEOUT_SECONDS must be positive (got {v})")
        return v

    @field_validator("chunk_delay_seconds", "document_delay_seconds")
    @classmethod
    def validate_delay(cls, v: float) -> float:
        """Delays cannot be negative."""
        if v < 0:
            raise ValueError(f"delay must not be negative (got {v})")
        return v

    @field_validator("temperature")
    @classmethod
    def validate_temperature(cls, v: float) -> float:
        """Temperature must be within the provider's accepted range."""
        if not 0.0 <= v <= 2.0:
            raise ValueError(f"TEMPERATURE must be between 0 and 2 (got {v})")
        return v

    @property
    def gemini_configured(self) -> bool:
        return self.gemini_api_key is not None


@lru_cache
def get_settings() -> Settings:
    """Get cached Settings instance.

    This function uses lru_cache to ensure settings are loaded only once
    and reused across the application lifetime.

    Returns:
        Settings: Validated application settings

    Raises:
        ValueError: If environment variables are invalid
    """
    return Settings()
