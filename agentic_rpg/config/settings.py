# ABOUTME: Configuration settings for the agentic RPG turn engine using Pydantic Settings.
# ABOUTME: Loads all environment variables and provides type-safe configuration access.

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from agentic_rpg.models.dice_models import CriticalDamageRule
from agentic_rpg.models.entities import AgeRating


class Settings(BaseSettings):
    """Application configuration loaded from environment variables"""

    # OpenAI API Configuration
    openai_api_key: str | None = Field(
        default=None,
        description="OpenAI API key; narration falls back to templates when unset"
    )
    openai_model: str = Field(
        default="gpt-4o",
        description="OpenAI model used for narration"
    )
    llm_narration_enabled: bool = Field(
        default=False,
        description="Use the OpenAI narrator instead of the template narrator"
    )
    llm_timeout_seconds: float = Field(
        default=20.0,
        description="Timeout for a single LLM call"
    )

    # Redis Configuration
    redis_url: str = Field(
        default="redis://localhost:6379",
        description="Redis connection URL for session storage"
    )
    session_store_backend: str = Field(
        default="memory",
        description="Session store backend: 'memory' or 'redis'"
    )
    session_ttl_seconds: int = Field(
        default=7 * 24 * 3600,
        description="How long saved sessions live in Redis"
    )

    # Application Settings
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )
    log_dir: str = Field(
        default="logs",
        description="Directory for rotating log files"
    )
    default_age_rating: AgeRating = Field(
        default=AgeRating.TEEN,
        description="Age rating for newly created sessions"
    )
    lorebook_path: str | None = Field(
        default=None,
        description="Optional JSON lorebook loaded into the content store"
    )

    # Turn Processing
    max_revision_attempts: int = Field(
        default=2,
        ge=0,
        description="Plan re-entries allowed after a rejected validation before recovering"
    )
    max_state_steps: int = Field(
        default=40,
        description="Hard cap on state handler executions in one turn"
    )
    critical_damage_rule: CriticalDamageRule = Field(
        default=CriticalDamageRule.DICE_ONLY,
        description="Whether a critical hit's extra draw adds the flat modifier again"
    )

    # Validation bounds
    max_narration_words: int = Field(default=500)
    min_narration_words: int = Field(default=10)
    min_choices: int = Field(default=2)
    max_choices: int = Field(default=6)
    min_choice_length: int = Field(default=5)
    max_choice_length: int = Field(default=100)
    choice_count: int = Field(
        default=3,
        description="Choices offered by the template narrator"
    )

    # Image pipeline
    image_max_attempts: int = Field(
        default=3,
        description="Generation attempts per image job before it fails"
    )
    image_retry_base_delay: float = Field(
        default=1.0,
        description="Linear backoff base: wait base * attempt seconds between attempts"
    )
    image_preview_timeout: float = Field(default=5.0)
    image_hq_timeout: float = Field(default=20.0)
    image_preview_duration: float = Field(
        default=4.0,
        description="Expected preview generation time, used for progress estimates"
    )
    image_hq_duration: float = Field(default=15.0)
    image_preview_size: str = Field(default="512x512")
    image_hq_size: str = Field(default="1024x1024")
    image_retention_seconds: float = Field(
        default=24 * 3600,
        description="How long completed jobs stay queryable"
    )
    image_sweep_interval_seconds: float = Field(default=30.0)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


# Singleton settings instance - lazy initialization to allow import without .env
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create the singleton settings instance"""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
