"""
Structural confidence scoring for deals.

Score (0-100) from signals already on the record, no external calls:
- +40  a regulatory filing among the sources (SEC EDGAR)
- +10  per distinct publication beyond the first, capped at +30
- +7.5 acquirer named (not "unknown"), +7.5 target named
- +10  positive deal value
- +5   announcement date present

Tiers: >= 70 verified, >= 40 pending, otherwise unverified.
"""

import math

from ..models.deal import DealFields, SourceType, VerificationStatus

SEC_FILING_POINTS = 40
PER_EXTRA_SOURCE_POINTS = 10
MAX_SOURCE_BONUS = 30
COMPANY_MATCH_POINTS = 15
VALUE_CONFIRMED_POINTS = 10
DATE_PRESENT_POINTS = 5

VERIFIED_THRESHOLD = 70
PENDING_THRESHOLD = 40

REGULATORY_URL_MARKER = 'sec.gov'


def has_regulatory_source(deal: DealFields) -> bool:
    return any(
        s.type == SourceType.SEC_EDGAR or REGULATORY_URL_MARKER in s.url
        for s in deal.sources
    )


def _named(name: str | None) -> bool:
    return bool(name) and 'unknown' not in name.lower()


def calculate_confidence_score(deal: DealFields) -> int:
    """Structural confidence score, clamped to [0, 100] and rounded half up."""
    score = 0.0

    if has_regulatory_source(deal):
        score += SEC_FILING_POINTS

    publications = {s.publication for s in deal.sources}
    source_bonus = (len(publications) - 1) * PER_EXTRA_SOURCE_POINTS
    score += max(0, min(source_bonus, MAX_SOURCE_BONUS))

    if _named(deal.acquirer):
        score += COMPANY_MATCH_POINTS / 2
    if _named(deal.target):
        score += COMPANY_MATCH_POINTS / 2

    if deal.value_usd and deal.value_usd > 0:
        score += VALUE_CONFIRMED_POINTS

    if deal.announced_date:
        score += DATE_PRESENT_POINTS

    return clamp_score(score)


def clamp_score(score: float) -> int:
    return max(0, min(100, math.floor(score + 0.5)))


def status_from_score(score: int) -> VerificationStatus:
    """Verification tier for a score. Thresholds are fixed."""
    if score >= VERIFIED_THRESHOLD:
        return VerificationStatus.VERIFIED
    if score >= PENDING_THRESHOLD:
        return VerificationStatus.PENDING
    return VerificationStatus.UNVERIFIED
