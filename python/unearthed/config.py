"""Application settings loaded from environment variables.

Environment Configuration:
    UNEARTHED_ENV: Deployment environment (local | test | staging | prod)
    DATABASE_URL: PostgreSQL connection string (required)
    CRON_SECRET: Shared bearer token for scheduler-triggered endpoints (required in staging/prod)

Redis / Celery Configuration:
    REDIS_URL: Redis connection string (required for worker)
    CELERY_BROKER_URL: Celery broker URL (defaults to REDIS_URL)
    CELERY_RESULT_BACKEND: Celery result backend URL (defaults to REDIS_URL)

Identity Configuration:
    CLERK_SECRET_KEY: Clerk Backend API key (user metadata, emails)
    CLERK_API_URL: Clerk Backend API base URL
    CLERK_JWKS_URL: Clerk JWKS endpoint for session token verification
    CLERK_ISSUER: Expected session token issuer (trailing slash stripped)
    CLERK_AUDIENCES: Optional comma-separated list of allowed audiences

Delivery Configuration:
    RESEND_API_KEY, EMAIL_FROM: Daily reflection email
    CAPACITIES_API_URL, SUPERNOTES_API_URL, NOTION_API_URL: Delivery targets
    NOTION_CLIENT_ID, NOTION_CLIENT_SECRET, APP_DOMAIN: Notion OAuth exchange
"""

from enum import Enum
from functools import lru_cache
from typing import Annotated

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


class Environment(str, Enum):
    """Valid deployment environments."""

    LOCAL = "local"
    TEST = "test"
    STAGING = "staging"
    PROD = "prod"


class Settings(BaseSettings):
    """Application configuration.

    Settings are loaded from environment variables.
    Validation rules:
    - DATABASE_URL is always required
    - CLERK_JWKS_URL and CLERK_ISSUER are required outside the test environment
    - CRON_SECRET is required in staging and prod only
    """

    unearthed_env: Environment = Field(default=Environment.LOCAL, alias="UNEARTHED_ENV")
    database_url: Annotated[str, Field(alias="DATABASE_URL")]
    cron_secret: str | None = Field(default=None, alias="CRON_SECRET")

    # Redis / Celery settings
    redis_url: str | None = Field(default=None, alias="REDIS_URL")
    celery_broker_url: str | None = Field(default=None, alias="CELERY_BROKER_URL")
    celery_result_backend: str | None = Field(default=None, alias="CELERY_RESULT_BACKEND")

    # Clerk identity settings
    clerk_secret_key: str | None = Field(default=None, alias="CLERK_SECRET_KEY")
    clerk_api_url: str = Field(default="https://api.clerk.com/v1", alias="CLERK_API_URL")
    clerk_jwks_url: str | None = Field(default=None, alias="CLERK_JWKS_URL")
    clerk_issuer: str | None = Field(default=None, alias="CLERK_ISSUER")
    clerk_audiences: str | None = Field(default=None, alias="CLERK_AUDIENCES")

    # Email delivery
    resend_api_key: str | None = Field(default=None, alias="RESEND_API_KEY")
    resend_api_url: str = Field(default="https://api.resend.com", alias="RESEND_API_URL")
    email_from: str = Field(default="Unearthed <contact@unearthed.app>", alias="EMAIL_FROM")

    # Notes-app delivery targets
    capacities_api_url: str = Field(default="https://api.capacities.io", alias="CAPACITIES_API_URL")
    supernotes_api_url: str = Field(
        default="https://api.supernotes.app", alias="SUPERNOTES_API_URL"
    )

    # Notion
    notion_api_url: str = Field(default="https://api.notion.com", alias="NOTION_API_URL")
    notion_version: str = Field(default="2022-06-28", alias="NOTION_VERSION")
    notion_client_id: str | None = Field(default=None, alias="NOTION_CLIENT_ID")
    notion_client_secret: str | None = Field(default=None, alias="NOTION_CLIENT_SECRET")
    app_domain: str = Field(default="http://localhost:3000", alias="APP_DOMAIN")
    notion_shard_count: int = Field(default=4, alias="NOTION_SHARD_COUNT")
    notion_jobs_per_run: int = Field(default=2, alias="NOTION_JOBS_PER_RUN")
    notion_max_attempts: int = Field(default=3, alias="NOTION_MAX_ATTEMPTS")
    notion_request_delay_ms: int = Field(default=300, alias="NOTION_REQUEST_DELAY_MS")

    # AI chat (OpenAI-compatible endpoint)
    ai_api_url: str = Field(default="https://api.openai.com/v1", alias="AI_API_URL")
    ai_api_key: str | None = Field(default=None, alias="AI_API_KEY")
    ai_model: str = Field(default="gpt-4o-mini", alias="AI_MODEL")
    ai_token_quota: int = Field(default=1_000_000, alias="AI_TOKEN_QUOTA")
    ai_timeout_s: int = Field(default=60, alias="AI_TIMEOUT_S")

    # Outbound HTTP
    http_timeout_s: float = Field(default=30.0, alias="HTTP_TIMEOUT_S")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @model_validator(mode="after")
    def validate_required_settings(self) -> "Settings":
        """Ensure required settings are set for the current environment."""
        if self.unearthed_env != Environment.TEST:
            missing_auth = []
            if not self.clerk_jwks_url:
                missing_auth.append("CLERK_JWKS_URL")
            if not self.clerk_issuer:
                missing_auth.append("CLERK_ISSUER")

            if missing_auth:
                raise ValueError(
                    f"Missing required Clerk auth settings: {', '.join(missing_auth)}. "
                    "Set these environment variables or use UNEARTHED_ENV=test."
                )

        # CRON_SECRET is required only in staging/prod
        if self.unearthed_env in (Environment.STAGING, Environment.PROD):
            if not self.cron_secret:
                raise ValueError(
                    f"CRON_SECRET is required for UNEARTHED_ENV={self.unearthed_env.value}"
                )

        if self.notion_shard_count < 1:
            raise ValueError("NOTION_SHARD_COUNT must be at least 1")

        return self

    @property
    def audience_list(self) -> list[str]:
        """Parse comma-separated audiences into a list."""
        if self.clerk_audiences:
            return [a.strip() for a in self.clerk_audiences.split(",") if a.strip()]
        return []

    @property
    def normalized_issuer(self) -> str | None:
        """Return issuer with trailing slash stripped."""
        if self.clerk_issuer:
            return self.clerk_issuer.rstrip("/")
        return None

    @property
    def notion_redirect_uri(self) -> str:
        """OAuth redirect URI registered with Notion."""
        return f"{self.app_domain.rstrip('/')}/api/notion-redirect"

    @property
    def effective_celery_broker_url(self) -> str | None:
        """Return Celery broker URL, falling back to REDIS_URL if not set."""
        return self.celery_broker_url or self.redis_url

    @property
    def effective_celery_result_backend(self) -> str | None:
        """Return Celery result backend URL, falling back to REDIS_URL if not set."""
        return self.celery_result_backend or self.redis_url


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings instance loaded from environment.

    Raises:
        ValidationError: If required settings are missing or invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache. Useful for testing."""
    get_settings.cache_clear()
