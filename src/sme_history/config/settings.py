"""Configuration settings for the SME history synthesizer."""

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class FlatSettings(BaseSettings):
    """Flat settings read from environment variables or a .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # LLM API keys (all optional; clients raise when theirs is missing)
    google_api_key: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("GEMINI_API_KEY", "GOOGLE_API_KEY", "API_KEY"),
    )
    anthropic_api_key: SecretStr | None = Field(
        default=None, validation_alias="ANTHROPIC_API_KEY"
    )
    openai_api_key: SecretStr | None = Field(
        default=None, validation_alias="OPENAI_API_KEY"
    )

    # Provider and model selections
    llm_provider: Literal["gemini", "claude", "openai"] = Field(
        default="gemini", validation_alias="LLM_PROVIDER"
    )
    gemini_model: str = Field(default="gemini-2.5-flash", validation_alias="GEMINI_MODEL")
    claude_model: str = Field(
        default="claude-haiku-4-5", validation_alias="CLAUDE_MODEL"
    )
    gpt_model: str = Field(default="gpt-5-nano", validation_alias="GPT_MODEL")

    # LLM parameters
    llm_max_tokens: int = Field(default=32768, validation_alias="LLM_MAX_TOKENS")
    llm_temperature: float = Field(default=0.7, validation_alias="LLM_TEMPERATURE")

    # Bulk generation
    bulk_chunk_size: int = Field(default=10, ge=1, validation_alias="BULK_CHUNK_SIZE")
    bulk_chunk_delay_seconds: float = Field(
        default=2.0, ge=0.0, validation_alias="BULK_CHUNK_DELAY_SECONDS"
    )
    single_doc_delay_seconds: float = Field(
        default=1.0, ge=0.0, validation_alias="SINGLE_DOC_DELAY_SECONDS"
    )

    # Debug artifacts
    debug_dir: str = Field(
        default="debug/failed_responses", validation_alias="DEBUG_DIR"
    )
    save_prompt: bool = Field(default=False, validation_alias="SAVE_PROMPT")

    # Reconciliation
    reconcile_tax_rate: float = Field(
        default=0.30, ge=0.0, le=1.0, validation_alias="RECONCILE_TAX_RATE"
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", validation_alias="LOG_FORMAT"
    )


@lru_cache
def get_settings() -> FlatSettings:
    """Get cached settings instance."""
    return FlatSettings()
