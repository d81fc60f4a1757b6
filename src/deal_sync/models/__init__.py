"""
Pydantic models for the deal sync pipeline.
"""

from .deal import (
    STATUS_PRIORITY,
    CandidateDeal,
    DealStatus,
    DedupeKey,
    MergedDeal,
    SourceRef,
    SourceType,
    ValueBucket,
    VerificationStatus,
    VerifiedDeal,
)
from .listing import DealListQuery
from .raw import (
    DiscoveryResponse,
    RawDiscoveredDeal,
    RawFiling,
    RawSource,
    VerificationDetails,
    VerificationResponse,
)
from .sync_run import (
    SyncOptions,
    SyncRun,
    SyncRunStatus,
    SyncRunSummary,
    SyncType,
    VerificationSummary,
)

__all__ = [
    # Deal records
    'CandidateDeal',
    'MergedDeal',
    'VerifiedDeal',
    'DealStatus',
    'STATUS_PRIORITY',
    'VerificationStatus',
    'SourceType',
    'SourceRef',
    'DedupeKey',
    'ValueBucket',
    # Deal listing
    'DealListQuery',
    # Raw collaborator shapes
    'RawFiling',
    'RawDiscoveredDeal',
    'RawSource',
    'DiscoveryResponse',
    'VerificationDetails',
    'VerificationResponse',
    # Sync runs
    'SyncOptions',
    'SyncRun',
    'SyncRunStatus',
    'SyncRunSummary',
    'SyncType',
    'VerificationSummary',
]
