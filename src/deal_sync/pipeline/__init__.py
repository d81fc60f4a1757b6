"""
Deal sync pipeline components.

Stages:
- normalizer / similarity: canonical names and fuzzy comparison
- coercion / sources: raw collaborator records to CandidateDeal
- deduplicator: collapse duplicate reports into MergedDeal
- scorer / verifier: confidence scores and budgeted external checks
- pipeline: SyncPipeline orchestrating a full run
"""

from .deduplicator import Deduplicator, are_likely_duplicates, dedupe_key, deduplicate
from .normalizer import (
    detect_geography,
    detect_sector,
    generate_slug,
    generate_title,
    normalize_company_name,
    parse_status,
    parse_value,
)
from .pipeline import SyncPipeline, passes_materiality
from .rate_limiter import RateLimiter
from .scorer import calculate_confidence_score, status_from_score
from .similarity import levenshtein_distance, name_similarity
from .sources import DealSource, DiscoverySource, FilingSource
from .verifier import DealVerifier, VerificationOutcome, filter_by_verification_status, summarize

__all__ = [
    # Pipeline
    'SyncPipeline',
    'passes_materiality',
    # Normalizer
    'normalize_company_name',
    'parse_status',
    'parse_value',
    'detect_sector',
    'detect_geography',
    'generate_slug',
    'generate_title',
    # Similarity
    'levenshtein_distance',
    'name_similarity',
    # Deduplicator
    'Deduplicator',
    'deduplicate',
    'dedupe_key',
    'are_likely_duplicates',
    # Scoring / verification
    'calculate_confidence_score',
    'status_from_score',
    'DealVerifier',
    'VerificationOutcome',
    'summarize',
    'filter_by_verification_status',
    'RateLimiter',
    # Sources
    'DealSource',
    'FilingSource',
    'DiscoverySource',
]
