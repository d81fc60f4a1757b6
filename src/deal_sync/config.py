"""
Configuration management for the deal sync pipeline.

Loads settings from environment variables with sensible defaults.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

from .models.sync_run import SyncOptions

# Load .env file from project root
_project_root = Path(__file__).parent.parent.parent
_env_file = _project_root / '.env'
if _env_file.exists():
    load_dotenv(_env_file)


class Config:
    """Configuration settings loaded from environment."""

    # Postgres
    DATABASE_URL: str = os.getenv('DATABASE_URL', '')

    # Perplexity (OpenAI-compatible chat completions)
    PERPLEXITY_API_KEY: str = os.getenv('PERPLEXITY_API_KEY', '')
    PERPLEXITY_BASE_URL: str = os.getenv('PERPLEXITY_BASE_URL', 'https://api.perplexity.ai')
    PERPLEXITY_MODEL: str = os.getenv('PERPLEXITY_MODEL', 'llama-3.1-sonar-small-128k-online')

    # SEC EDGAR requires a User-Agent with contact info
    SEC_USER_AGENT: str = os.getenv(
        'SEC_USER_AGENT', 'M&A Intelligence Pro (contact@example.com)'
    )

    # Pipeline
    MATERIALITY_THRESHOLD_USD: int = int(os.getenv('MATERIALITY_THRESHOLD_USD', '500000000'))
    EXTERNAL_CALL_BUDGET: int = int(os.getenv('EXTERNAL_CALL_BUDGET', '5'))
    SYNC_DAYS_BACK: int = int(os.getenv('SYNC_DAYS_BACK', '90'))
    VERIFICATION_TIMEOUT_SECONDS: float = float(os.getenv('VERIFICATION_TIMEOUT_SECONDS', '30'))
    VERIFICATION_PACING_SECONDS: float = float(os.getenv('VERIFICATION_PACING_SECONDS', '0.2'))
    DISCOVERY_PACING_SECONDS: float = float(os.getenv('DISCOVERY_PACING_SECONDS', '0.5'))
    DISCOVERY_REGIONS: list[str] = [
        r.strip()
        for r in os.getenv('DISCOVERY_REGIONS', 'United States,Europe,Asia Pacific').split(',')
        if r.strip()
    ]

    LOG_LEVEL: str = os.getenv('LOG_LEVEL', 'INFO')

    @classmethod
    def validate(cls) -> list[str]:
        """
        Validate that required configuration is present.

        Returns:
            List of missing required configuration keys
        """
        missing = []
        if not cls.DATABASE_URL:
            missing.append('DATABASE_URL')
        if not cls.PERPLEXITY_API_KEY:
            missing.append('PERPLEXITY_API_KEY')
        return missing

    @classmethod
    def sync_options(cls) -> SyncOptions:
        """Default run options derived from the environment."""
        return SyncOptions(
            materiality_threshold_usd=cls.MATERIALITY_THRESHOLD_USD,
            external_call_budget=cls.EXTERNAL_CALL_BUDGET,
            days_back=cls.SYNC_DAYS_BACK,
        )


# Singleton config instance
config = Config()
