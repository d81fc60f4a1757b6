"""Configuration for the deal sync HTTP service."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Service settings loaded from environment variables."""

    # Postgres
    DATABASE_URL: str
    DATABASE_REQUIRE_SSL: bool = True

    # Perplexity
    PERPLEXITY_API_KEY: str
    PERPLEXITY_BASE_URL: str = "https://api.perplexity.ai"
    PERPLEXITY_MODEL: str = "llama-3.1-sonar-small-128k-online"

    # SEC EDGAR
    SEC_USER_AGENT: str = "M&A Intelligence Pro (contact@example.com)"

    # Auth
    SYNC_API_KEY: str


@lru_cache
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()
