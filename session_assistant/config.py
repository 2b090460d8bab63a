"""Application Configuration — environment-driven settings via pydantic-settings.

Invariants:
    - All secrets come from environment variables (never hardcoded)
    - get_settings() is cached (lru_cache) — single instance per process
    - The placeholder API key is never sent anywhere: create_gateway rejects it at startup

Design Decisions:
    - pydantic-settings over raw os.environ: validation, type coercion, .env file support
    - Defaults provided for all non-secret settings: a local SQLite file works out-of-the-box
"""

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache

API_KEY_PLACEHOLDER = "sk-ant-placeholder"


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Database (single-slot session storage)
    database_url: str = "sqlite+aiosqlite:///./session_assistant.db"

    @field_validator("database_url", mode="before")
    @classmethod
    def convert_postgres_url(cls, v: str) -> str:
        """Hosted Postgres URLs come as postgresql:// but asyncpg needs postgresql+asyncpg://."""
        if isinstance(v, str) and v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    database_pool_size: int = 5
    database_max_overflow: int = 5
    storage_key: str = "usba-session"

    # Anthropic
    anthropic_api_key: str = API_KEY_PLACEHOLDER
    anthropic_max_retries: int = 3
    anthropic_timeout_seconds: int = 300
    anthropic_base_delay_ms: int = 1000
    anthropic_max_delay_ms: int = 60_000

    # Models: plan generation uses the stronger model, lookups use the fast one
    plan_model: str = "claude-sonnet-4-5"
    fast_model: str = "claude-haiku-4-5-20251001"
    plan_max_tokens: int = 8000
    fast_max_tokens: int = 2000
    web_search_max_uses: int = 5

    # Wizard
    default_jurisdiction: str = "Nevada"

    # API
    cors_origins: list[str] = ["http://localhost:5173"]

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"


@lru_cache
def get_settings() -> Settings:
    return Settings()
