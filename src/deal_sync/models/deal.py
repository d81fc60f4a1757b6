"""
Deal record models for the sync pipeline.

Three shapes flow through the pipeline:
- CandidateDeal: one source's report of a deal (immutable once coerced)
- MergedDeal: one or more candidates believed to describe the same transaction,
  mutated in place by the deduplicator while the batch is being processed
- VerifiedDeal: a MergedDeal with a confidence score and verification status,
  the shape persisted to Postgres

Statuses, verification tiers and source types are closed enums; free-text
values from the sources are coerced into them before a CandidateDeal exists.
"""

from datetime import date
from enum import Enum
from typing import NamedTuple

from pydantic import BaseModel, ConfigDict, Field


class DealStatus(str, Enum):
    """Lifecycle status of an M&A transaction."""

    ANNOUNCED = 'Announced'
    PENDING = 'Pending'
    COMPLETED = 'Completed'
    WITHDRAWN = 'Withdrawn'
    RUMORED = 'Rumored'


# Merge precedence: the more "advanced" status wins
STATUS_PRIORITY: dict[DealStatus, int] = {
    DealStatus.COMPLETED: 4,
    DealStatus.WITHDRAWN: 3,
    DealStatus.PENDING: 2,
    DealStatus.ANNOUNCED: 1,
    DealStatus.RUMORED: 0,
}


class VerificationStatus(str, Enum):
    """Confidence tier assigned to a deal record."""

    UNVERIFIED = 'unverified'
    PENDING = 'pending'
    VERIFIED = 'verified'


class SourceType(str, Enum):
    """Origin tag on a source citation."""

    SEC_EDGAR = 'sec_edgar'
    PERPLEXITY = 'perplexity'


class ValueBucket(str, Enum):
    """Coarse deal-size bucket used in the dedupe key."""

    SMALL = 'small'
    MID = 'mid'
    LARGE = 'large'
    MEGA = 'mega'
    UNKNOWN = 'unknown'


class SourceRef(BaseModel):
    """A citation supporting a deal record."""

    model_config = ConfigDict(frozen=True)

    url: str
    publication: str = ''
    type: SourceType = SourceType.PERPLEXITY


class DedupeKey(NamedTuple):
    """Exact-match bucket: (acquirer, target, 'YYYY-MM', value bucket)."""

    acquirer: str
    target: str
    month: str
    value_bucket: ValueBucket

    def __str__(self) -> str:
        return f'{self.acquirer}::{self.target}::{self.month}::{self.value_bucket.value}'


class DealFields(BaseModel):
    """Fields shared by every deal shape."""

    acquirer: str = Field(default='', description='Acquirer name as reported')
    target: str = Field(default='', description='Target name as reported')
    value_usd: int | None = Field(default=None, description='Transaction value in USD')
    status: DealStatus = Field(default=DealStatus.ANNOUNCED)
    announced_date: date = Field(..., description='Announcement date')
    sector: str | None = None
    geography: str | None = None
    synopsis: str | None = None
    rationale: str | None = None

    # Deal terms and company domains (discovery source only)
    payment_structure: str | None = None
    breakup_fee: str | None = None
    acquirer_domain: str | None = None
    target_domain: str | None = None

    sources: list[SourceRef] = Field(default_factory=list)

    @property
    def acquirer_normalized(self) -> str:
        from ..pipeline.normalizer import normalize_company_name

        return normalize_company_name(self.acquirer)

    @property
    def target_normalized(self) -> str:
        from ..pipeline.normalizer import normalize_company_name

        return normalize_company_name(self.target)

    @property
    def slug(self) -> str:
        """Natural key used by storage (acquirer, target, announcement month)."""
        from ..pipeline.normalizer import generate_slug

        return generate_slug(self.acquirer, self.target, self.announced_date)


class CandidateDeal(DealFields):
    """A single source's report of a deal. Immutable once produced."""

    model_config = ConfigDict(frozen=True)


class MergedDeal(DealFields):
    """
    One or more CandidateDeals combined into a single transaction record.

    Created from the first candidate of a cluster and mutated in place by the
    deduplicator as further duplicates are folded in.
    """

    @classmethod
    def from_candidate(cls, candidate: CandidateDeal) -> 'MergedDeal':
        return cls(**candidate.model_dump(exclude={'sources'}), sources=list(candidate.sources))


class VerifiedDeal(MergedDeal):
    """A merged deal with its confidence score and verification tier."""

    confidence_score: int = Field(default=0, ge=0, le=100)
    verification_status: VerificationStatus = VerificationStatus.UNVERIFIED
    external_checked: bool = Field(
        default=False, description='An external verification call was spent on this deal'
    )
