"""Configuration loaded from environment (.env) and defaults."""

import time
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from mealworker.errors import ConfigurationError

# Locate the project root .env file regardless of CWD
_THIS_DIR = Path(__file__).resolve().parent          # mealworker/
_PROJECT_ROOT = _THIS_DIR.parent
_ENV_FILE = _PROJECT_ROOT / ".env"


def _default_worker_id() -> str:
    return f"meal-plan-worker-{int(time.time() * 1000)}"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE) if _ENV_FILE.exists() else ".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Worker identity and scheduling
    worker_id: str = Field(default_factory=_default_worker_id)
    poll_interval_ms: int = Field(default=1000, ge=1)
    max_concurrent_jobs: int = Field(default=3, ge=1)
    log_level: str = "info"

    # Liveness and shutdown
    heartbeat_interval_s: float = Field(default=30.0, gt=0)
    drain_timeout_s: float = Field(default=300.0, ge=0)
    drain_check_interval_s: float = Field(default=5.0, gt=0)
    # Claim failures back off for factor × poll interval
    claim_error_backoff_factor: float = Field(default=5.0, ge=1)

    # Job queue, profiles, meal plans and notifications live in one Postgres
    database_url: str | None = None

    # LLM provider: openai | anthropic
    mealworker_llm_provider: str = "openai"

    # OpenAI
    openai_api_key: str | None = None
    mealworker_openai_model: str = "gpt-4o-mini"

    # Anthropic
    anthropic_api_key: str | None = None
    mealworker_anthropic_model: str = "claude-3-5-sonnet-20241022"

    # Unsplash image search (optional; meals fall back to default images)
    unsplash_access_key: str | None = None
    image_search_timeout_s: float = 10.0

    @property
    def poll_interval_s(self) -> float:
        return self.poll_interval_ms / 1000

    @property
    def claim_error_backoff_s(self) -> float:
        return self.poll_interval_s * self.claim_error_backoff_factor

    @property
    def llm_provider(self) -> str:
        return self.mealworker_llm_provider.strip().lower()

    @property
    def llm_api_key(self) -> str | None:
        if self.llm_provider == "anthropic":
            return self.anthropic_api_key
        return self.openai_api_key

    @property
    def llm_model(self) -> str:
        if self.llm_provider == "anthropic":
            return self.mealworker_anthropic_model
        return self.mealworker_openai_model

    def missing_credentials(self) -> list[str]:
        """Names of required environment variables that are not set."""
        missing: list[str] = []
        if not self.database_url:
            missing.append("DATABASE_URL")
        if not self.llm_api_key:
            missing.append(
                "ANTHROPIC_API_KEY" if self.llm_provider == "anthropic" else "OPENAI_API_KEY"
            )
        return missing

    def require_credentials(self) -> None:
        missing = self.missing_credentials()
        if missing:
            raise ConfigurationError(
                f"missing required environment variables: {', '.join(missing)}"
            )


def get_settings() -> Settings:
    return Settings()
