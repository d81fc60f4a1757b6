"""
Deal Sync Pipeline

Ingests M&A deal announcements from SEC EDGAR filings and Perplexity web
search, normalizes and deduplicates them, assigns a confidence score and
verification status, and upserts the result into Postgres.
"""

__version__ = '0.1.0'

from .config import Config, config
from .errors import (
    DealSyncError,
    PipelineError,
    RepositoryError,
    SourceFetchError,
    SyncRunError,
)
from .models import (
    CandidateDeal,
    DealStatus,
    MergedDeal,
    SourceRef,
    SyncOptions,
    SyncRunSummary,
    VerificationStatus,
    VerifiedDeal,
)

__all__ = [
    # Version
    '__version__',
    # Config
    'Config',
    'config',
    # Errors
    'DealSyncError',
    'PipelineError',
    'RepositoryError',
    'SourceFetchError',
    'SyncRunError',
    # Models
    'CandidateDeal',
    'MergedDeal',
    'VerifiedDeal',
    'DealStatus',
    'VerificationStatus',
    'SourceRef',
    'SyncOptions',
    'SyncRunSummary',
]
