"""
Batch deduplication of candidate deals.

Two-tier strategy per incoming candidate:
1. Exact match on the DedupeKey (normalized acquirer, normalized target,
   announcement month, value bucket). A key hit merges immediately and skips
   the fuzzy check.
2. Linear scan of existing clusters with are_likely_duplicates(); the FIRST
   cluster that matches absorbs the candidate (first-match, not best-match).
3. Otherwise the candidate starts a new cluster at the end of the list.

Merge outcomes depend on arrival order (first non-empty value wins, first
fuzzy match wins), so callers must feed candidates in a stable order. The
fuzzy scan is O(n^2) in the number of clusters, which is fine for the tens to
low hundreds of deals a sync run sees.
"""

from dataclasses import dataclass, field

import structlog

from ..models.deal import (
    STATUS_PRIORITY,
    CandidateDeal,
    DealFields,
    DealStatus,
    DedupeKey,
    MergedDeal,
    ValueBucket,
)
from .normalizer import normalize_company_name
from .similarity import name_similarity

logger = structlog.get_logger(__name__)


NAME_SIMILARITY_THRESHOLD = 0.7
MAX_DATE_GAP_DAYS = 30
VALUE_RATIO_TOLERANCE = 0.2

# Text fields where the first non-empty value wins on merge
FIRST_NON_EMPTY_FIELDS = (
    'acquirer',
    'target',
    'sector',
    'geography',
    'synopsis',
    'rationale',
    'payment_structure',
    'breakup_fee',
    'acquirer_domain',
    'target_domain',
)


# =============================================================================
# Keys and pairwise comparison
# =============================================================================


def value_bucket(value_usd: int | None) -> ValueBucket:
    """Coarse size bucket; missing or zero values are 'unknown'."""
    if not value_usd:
        return ValueBucket.UNKNOWN
    if value_usd < 1e9:
        return ValueBucket.SMALL
    if value_usd < 10e9:
        return ValueBucket.MID
    if value_usd < 50e9:
        return ValueBucket.LARGE
    return ValueBucket.MEGA


def dedupe_key(deal: DealFields) -> DedupeKey:
    """Exact-match bucket for a deal."""
    return DedupeKey(
        acquirer=normalize_company_name(deal.acquirer),
        target=normalize_company_name(deal.target),
        month=deal.announced_date.isoformat()[:7],
        value_bucket=value_bucket(deal.value_usd),
    )


def are_likely_duplicates(
    deal1: DealFields,
    deal2: DealFields,
    name_threshold: float = NAME_SIMILARITY_THRESHOLD,
    max_date_gap_days: int = MAX_DATE_GAP_DAYS,
    value_tolerance: float = VALUE_RATIO_TOLERANCE,
) -> bool:
    """
    True when two deals probably describe the same transaction.

    Both parties must be similar, the announcements close in time, and the
    values within tolerance when both are known. A missing value never
    disqualifies a match.
    """
    if name_similarity(deal1.acquirer, deal2.acquirer) < name_threshold:
        return False
    if name_similarity(deal1.target, deal2.target) < name_threshold:
        return False

    days_apart = abs((deal1.announced_date - deal2.announced_date).days)
    if days_apart > max_date_gap_days:
        return False

    if deal1.value_usd and deal2.value_usd:
        ratio = deal1.value_usd / deal2.value_usd
        if ratio < 1 - value_tolerance or ratio > 1 + value_tolerance:
            return False

    return True


def more_advanced_status(s1: DealStatus, s2: DealStatus) -> DealStatus:
    """Completed > Withdrawn > Pending > Announced > Rumored; ties keep s1."""
    return s1 if STATUS_PRIORITY[s1] >= STATUS_PRIORITY[s2] else s2


def merge_into(existing: MergedDeal, incoming: DealFields) -> MergedDeal:
    """
    Fold a duplicate into an existing cluster, in place.

    - text fields: first non-empty value wins
    - value_usd: first non-null value wins
    - announced_date: the later date wins
    - status: the more advanced status wins
    - sources: union, deduplicated by URL, existing order first
    """
    for name in FIRST_NON_EMPTY_FIELDS:
        if not getattr(existing, name):
            incoming_value = getattr(incoming, name)
            if incoming_value:
                setattr(existing, name, incoming_value)

    if existing.value_usd is None:
        existing.value_usd = incoming.value_usd

    if incoming.announced_date > existing.announced_date:
        existing.announced_date = incoming.announced_date

    existing.status = more_advanced_status(existing.status, incoming.status)

    seen_urls = {s.url for s in existing.sources}
    for source in incoming.sources:
        if source.url not in seen_urls:
            existing.sources.append(source)
            seen_urls.add(source.url)

    return existing


# =============================================================================
# Deduplicator
# =============================================================================


@dataclass
class DedupStats:
    """Counters from one deduplicate() call."""

    input_count: int = 0
    exact_merges: int = 0
    fuzzy_merges: int = 0
    clusters: int = 0
    merged_keys: list[str] = field(default_factory=list)


class Deduplicator:
    """Groups a batch of candidates into unique merged deals."""

    def __init__(
        self,
        name_threshold: float = NAME_SIMILARITY_THRESHOLD,
        max_date_gap_days: int = MAX_DATE_GAP_DAYS,
        value_tolerance: float = VALUE_RATIO_TOLERANCE,
    ):
        self.name_threshold = name_threshold
        self.max_date_gap_days = max_date_gap_days
        self.value_tolerance = value_tolerance
        self.last_stats = DedupStats()

    def deduplicate(self, candidates: list[CandidateDeal]) -> list[MergedDeal]:
        """
        Collapse duplicates, preserving order of first appearance.

        Args:
            candidates: Candidates in stable source-declaration order

        Returns:
            One MergedDeal per unique transaction
        """
        stats = DedupStats(input_count=len(candidates))
        clusters: list[MergedDeal] = []
        key_index: dict[DedupeKey, int] = {}

        for candidate in candidates:
            key = dedupe_key(candidate)

            if key in key_index:
                merge_into(clusters[key_index[key]], candidate)
                stats.exact_merges += 1
                stats.merged_keys.append(str(key))
                continue

            match_index = self._find_fuzzy_match(clusters, candidate)
            if match_index is not None:
                merge_into(clusters[match_index], candidate)
                stats.fuzzy_merges += 1
                stats.merged_keys.append(str(key))
                continue

            key_index[key] = len(clusters)
            clusters.append(MergedDeal.from_candidate(candidate))

        stats.clusters = len(clusters)
        self.last_stats = stats

        logger.info(
            'deduplicator.complete',
            input_count=stats.input_count,
            unique_count=stats.clusters,
            exact_merges=stats.exact_merges,
            fuzzy_merges=stats.fuzzy_merges,
        )
        return clusters

    def _find_fuzzy_match(
        self,
        clusters: list[MergedDeal],
        candidate: CandidateDeal,
    ) -> int | None:
        for i, cluster in enumerate(clusters):
            if are_likely_duplicates(
                cluster,
                candidate,
                name_threshold=self.name_threshold,
                max_date_gap_days=self.max_date_gap_days,
                value_tolerance=self.value_tolerance,
            ):
                return i
        return None


def deduplicate(candidates: list[CandidateDeal]) -> list[MergedDeal]:
    """Deduplicate with the default thresholds."""
    return Deduplicator().deduplicate(candidates)
