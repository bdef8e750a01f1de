"""Configuration management for the Juror Match Engine."""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# .env is optional; deployed environments set variables directly
try:
    load_dotenv()
except (PermissionError, OSError):
    pass


class Settings(BaseSettings):
    """Engine settings read from the environment (and .env when present)."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Supabase configuration (required)
    SUPABASE_URL: str = Field(..., description="Supabase project URL")
    SUPABASE_SERVICE_ROLE_KEY: str = Field(..., description="Supabase service role key")

    # OpenAI configuration (required, embeddings)
    OPENAI_API_KEY: str = Field(..., description="OpenAI API key")

    # Anthropic configuration (optional, rationale and question phrasing)
    ANTHROPIC_API_KEY: str = Field(
        default="", description="Anthropic API key; empty disables text generation"
    )

    # Environment
    MATCHING_ENV: str = Field(default="dev", description="Environment: dev, staging, prod, test")

    # Embedding configuration
    EMBEDDING_MODEL: str = Field(
        default="text-embedding-3-small", description="OpenAI embedding model"
    )
    EMBEDDING_DIM: int = Field(default=1536, description="Embedding vector dimension")

    # Text generation configuration
    MATCHING_LLM_MODEL: str = Field(
        default="claude-haiku-4-5-20251001", description="Model for rationales and questions"
    )
    RATIONALE_MAX_TOKENS: int = Field(default=500, description="Max tokens per rationale")
    RATIONALE_TEMPERATURE: float = Field(default=0.3, description="Rationale temperature")
    QUESTION_MAX_TOKENS: int = Field(default=2000, description="Max tokens per question batch")
    QUESTION_TEMPERATURE: float = Field(default=0.4, description="Question temperature")

    # Matching engine tunables
    NARRATIVE_CACHE_TTL_SECONDS: int = Field(
        default=3600, description="Lifetime of a cached juror narrative"
    )
    MAPPING_MIN_PROBABILITY: float = Field(
        default=0.3, description="Minimum top-match probability before persisting a mapping"
    )
    PERSONA_PRELOAD_BATCH_SIZE: int = Field(
        default=3, description="Personas embedded per request during cache preload"
    )


@lru_cache
def get_settings() -> Settings:
    """
    Return the process-wide settings, built on first call.

    Raises:
        ValidationError: If Supabase or OpenAI credentials are missing
    """
    return Settings()
