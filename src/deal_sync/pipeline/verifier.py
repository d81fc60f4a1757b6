"""
Deal verification: structural scoring plus budgeted external re-verification.

For each deal the structural score is computed first. Deals scoring below the
verified threshold may spend one call to the external verification service,
subject to a per-run budget, a per-call timeout and a minimum interval between
calls. A confirmed deal gets a fixed bonus and adopts the corrected facts the
service returns. External verification is best effort: failures, timeouts and
malformed answers leave the structural result untouched and never raise.
"""

import asyncio
import math
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Literal, Protocol

import structlog
from pydantic import ValidationError as PydanticValidationError

from ..models.deal import MergedDeal, SourceRef, SourceType, VerificationStatus, VerifiedDeal
from ..models.raw import VerificationDetails, VerificationResponse
from ..models.sync_run import VerificationSummary
from .normalizer import parse_status, parse_value
from .rate_limiter import RateLimiter
from .scorer import VERIFIED_THRESHOLD, calculate_confidence_score, clamp_score, status_from_score

logger = structlog.get_logger(__name__)


EXTERNAL_VERIFICATION_BONUS = 20
DEFAULT_CALL_TIMEOUT = 30.0
EXTERNAL_SOURCE_PUBLICATION = 'Perplexity'


class VerificationService(Protocol):
    """External collaborator that re-checks a deal."""

    async def verify_deal(
        self,
        acquirer: str,
        target: str,
        approx_date: str,
    ) -> VerificationResponse: ...


# =============================================================================
# Data Structures
# =============================================================================


@dataclass
class VerificationOutcome:
    """Result of verifying a single deal."""

    score: int
    status: VerificationStatus
    structural_score: int
    enrichment: dict[str, Any] = field(default_factory=dict)
    extra_sources: list[str] = field(default_factory=list)
    external_checked: bool = False
    externally_verified: bool = False


def enrichment_from_details(details: VerificationDetails | None) -> dict[str, Any]:
    """
    Coerce verification details into deal field overrides.

    Only non-null values that survive coercion are returned; anything the
    service got wrong (non-positive value, bad date) is dropped.
    """
    if details is None:
        return {}

    enrichment: dict[str, Any] = {}

    value = details.value_usd
    if isinstance(value, str):
        value = parse_value(value)
    if isinstance(value, (int, float)) and math.isfinite(value) and value > 0:
        enrichment['value_usd'] = int(value)

    if details.status:
        enrichment['status'] = parse_status(details.status)

    if details.announced_date:
        try:
            enrichment['announced_date'] = date.fromisoformat(details.announced_date[:10])
        except ValueError:
            logger.debug('verifier.bad_enrichment_date', value=details.announced_date)

    if details.synopsis:
        enrichment['synopsis'] = details.synopsis

    return enrichment


# =============================================================================
# DealVerifier
# =============================================================================


class DealVerifier:
    """
    Scores deals and spends a bounded number of external verification calls.

    Given the same input order and budget, the same deals receive external
    checks on every run: calls go to the earliest low-scoring deals first.
    """

    def __init__(
        self,
        service: VerificationService | None,
        rate_limiter: RateLimiter | None = None,
        call_timeout: float = DEFAULT_CALL_TIMEOUT,
    ):
        """
        Initialize the verifier.

        Args:
            service: External verification collaborator (None disables external checks)
            rate_limiter: Pacing between external calls (default: no pacing)
            call_timeout: Seconds before an external call counts as failed
        """
        self.service = service
        self.rate_limiter = rate_limiter or RateLimiter(0.0)
        self.call_timeout = call_timeout
        self.external_calls = 0

    async def verify(
        self,
        deal: MergedDeal,
        allow_external_check: bool = True,
    ) -> VerificationOutcome:
        """
        Score one deal, re-verifying externally when it scores low.

        Args:
            deal: The merged deal
            allow_external_check: Whether an external call may be spent

        Returns:
            VerificationOutcome with final score, status and enrichment
        """
        structural = calculate_confidence_score(deal)
        outcome = VerificationOutcome(
            score=structural,
            status=status_from_score(structural),
            structural_score=structural,
        )

        if structural >= VERIFIED_THRESHOLD or not allow_external_check or self.service is None:
            return outcome

        outcome.external_checked = True
        response = await self._call_service(deal)
        if response is None or not response.verified:
            return outcome

        outcome.externally_verified = True
        outcome.score = clamp_score(structural + EXTERNAL_VERIFICATION_BONUS)
        outcome.status = status_from_score(outcome.score)
        outcome.enrichment = enrichment_from_details(response.details)
        outcome.extra_sources = list(response.sources)
        return outcome

    async def verify_all(
        self,
        deals: list[MergedDeal],
        budget: int,
        allow_external_check: bool = True,
    ) -> list[VerifiedDeal]:
        """
        Verify a batch in input order under an external-call budget.

        A deal spends a call only while the counter is below budget and its
        structural score is below the verified threshold. Exhausting the
        budget is not an error; later deals get structural scoring only.

        Args:
            deals: Deduplicated, filtered deals in stable order
            budget: Maximum external calls for this batch
            allow_external_check: Master switch for external calls

        Returns:
            VerifiedDeal per input deal, same order
        """
        calls = 0
        results: list[VerifiedDeal] = []

        for deal in deals:
            initial_score = calculate_confidence_score(deal)
            spend_call = (
                allow_external_check
                and calls < budget
                and initial_score < VERIFIED_THRESHOLD
            )
            if spend_call:
                calls += 1

            outcome = await self.verify(deal, allow_external_check=spend_call)
            results.append(self._apply(deal, outcome))

        self.external_calls = calls
        logger.info(
            'verifier.batch_complete',
            deals=len(deals),
            external_calls=calls,
            budget=budget,
        )
        return results

    async def _call_service(self, deal: MergedDeal) -> VerificationResponse | None:
        log = logger.bind(acquirer=deal.acquirer, target=deal.target)
        try:
            await self.rate_limiter.acquire()
            raw = await asyncio.wait_for(
                self.service.verify_deal(
                    deal.acquirer,
                    deal.target,
                    deal.announced_date.isoformat(),
                ),
                timeout=self.call_timeout,
            )
        except asyncio.TimeoutError:
            log.warning('verifier.external_timeout', timeout=self.call_timeout)
            return None
        except Exception as exc:
            log.warning('verifier.external_failed', error=str(exc), error_type=type(exc).__name__)
            return None

        if isinstance(raw, VerificationResponse):
            return raw
        try:
            return VerificationResponse.model_validate(raw)
        except PydanticValidationError as exc:
            log.warning('verifier.malformed_response', error=str(exc))
            return None

    @staticmethod
    def _apply(deal: MergedDeal, outcome: VerificationOutcome) -> VerifiedDeal:
        data = deal.model_dump()
        data.update(outcome.enrichment)
        verified = VerifiedDeal(
            **data,
            confidence_score=outcome.score,
            verification_status=outcome.status,
            external_checked=outcome.external_checked,
        )

        seen_urls = {s.url for s in verified.sources}
        for url in outcome.extra_sources:
            if url not in seen_urls:
                verified.sources.append(
                    SourceRef(
                        url=url,
                        publication=EXTERNAL_SOURCE_PUBLICATION,
                        type=SourceType.PERPLEXITY,
                    )
                )
                seen_urls.add(url)
        return verified


# =============================================================================
# Reporting helpers
# =============================================================================


def summarize(deals: list[VerifiedDeal]) -> VerificationSummary:
    """Counts per verification tier and the rounded mean score."""
    summary = VerificationSummary()
    if not deals:
        return summary

    total = 0
    for deal in deals:
        total += deal.confidence_score
        if deal.external_checked:
            summary.external_checks += 1
        if deal.verification_status == VerificationStatus.VERIFIED:
            summary.verified += 1
        elif deal.verification_status == VerificationStatus.PENDING:
            summary.pending += 1
        else:
            summary.unverified += 1

    summary.avg_score = round(total / len(deals))
    return summary


def filter_by_verification_status(
    deals: list[VerifiedDeal],
    status: VerificationStatus | Literal['all'] = 'all',
) -> list[VerifiedDeal]:
    """Keep deals in the given tier ('all' keeps everything)."""
    if status == 'all':
        return list(deals)
    return [d for d in deals if d.verification_status == status]
