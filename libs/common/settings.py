"""Application settings for the WorkerBank assistant."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from ``WORKERBANK_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="WORKERBANK_",
        env_file=None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Core application settings
    app_env: Literal["development", "staging", "production", "test"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    debug: bool = False

    # CORS - use string to avoid JSON parsing issues
    cors_origins_str: str = Field(
        default="http://localhost:3000,https://localhost:3000",
        validation_alias=AliasChoices("WORKERBANK_CORS_ORIGINS", "cors_origins"),
    )

    @property
    def cors_origins(self) -> list[str]:
        """Parse CORS origins from string."""
        if not self.cors_origins_str.strip():
            return ["http://localhost:3000", "https://localhost:3000"]
        return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]

    # Dialogflow CX agent. Checked per turn, not at load time, so that a
    # misconfigured deployment still answers with a structured error.
    gcloud_project_id: str | None = None
    gcloud_subdomain_region: str | None = None
    gcloud_region_id: str | None = None
    gcloud_agent_id: str | None = None
    language_code: str = "en"
    time_zone: str = "Asia/Singapore"
    dialogflow_timeout_seconds: float = 30.0

    # Conversation context and rewriting
    canonical_language: str = "English"
    use_enhanced_query_for_intent_detection: bool = True
    recent_message_window: int = Field(default=3, ge=1)
    institution_name: str = "POSB"
    locale: str = "Singapore"
    prompt_policy_version: str = "v2"

    # OPENAI_API_KEY is read by langchain-openai directly
    openai_model: str = "gpt-4o-mini"
    llm_temperature: float = 0.2
    llm_max_tokens: int | None = None

    # Session cookies
    session_cookie_name: str = "dialogflow_session_id"
    session_expiry_cookie_name: str = "dialogflow_session_expiry"
    session_inactivity_minutes: int = Field(default=30, ge=1)
    session_cookie_secure: bool = True

    # Uploads
    max_upload_mb: int = 10

    # Speech
    stt_language_code: str = "en-US"
    stt_sample_rate_hertz: int = 16000
    tts_speaking_rate: float = 1.0

    @field_validator("language_code", "canonical_language")
    @classmethod
    def strip_language(cls, v: str) -> str:
        return v.strip()

    def missing_dialogflow_settings(self) -> list[str]:
        """Return the names of required agent identifiers that are unset."""
        required = {
            "gcloud_project_id": self.gcloud_project_id,
            "gcloud_subdomain_region": self.gcloud_subdomain_region,
            "gcloud_region_id": self.gcloud_region_id,
            "gcloud_agent_id": self.gcloud_agent_id,
            "language_code": self.language_code,
        }
        return [name for name, value in required.items() if not value]

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
