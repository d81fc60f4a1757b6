"""
Boundary conversion from raw collaborator records to CandidateDeal.

Free-text status, value and date fields are parsed into closed types here so
that nothing downstream ever sees an unparsed string. Records that cannot be
made into a deal (no acquirer, unusable date) are dropped with a debug log
rather than raising.
"""

import math
from datetime import date, datetime

import structlog

from ..models.deal import CandidateDeal, DealStatus, SourceRef, SourceType
from ..models.raw import RawDiscoveredDeal, RawFiling
from .normalizer import detect_sector, parse_status, parse_value

logger = structlog.get_logger(__name__)


SEC_PUBLICATION = 'SEC EDGAR'
FILING_GEOGRAPHY = 'North America'
UNKNOWN_TARGET = 'Unknown Target'


def parse_date(text: str | None) -> date | None:
    """ISO date (or datetime) prefix to a date; None when unusable."""
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        return None


def coerce_value(value: int | float | str | None) -> int | None:
    """Raw value field to whole USD. Non-positive or non-finite numbers become None."""
    if value is None:
        return None
    if isinstance(value, str):
        return parse_value(value)
    if not math.isfinite(value) or value <= 0:
        return None
    return int(value)


def candidate_from_filing(filing: RawFiling) -> CandidateDeal | None:
    """
    Build a candidate from a parsed EDGAR filing.

    Filings carry no lifecycle status beyond the announcement, so the status
    is always Announced and the geography North America.
    """
    announced = parse_date(filing.announced_date)
    if not filing.acquirer or announced is None:
        logger.debug(
            'coercion.filing_dropped',
            accession_number=filing.accession_number,
            has_acquirer=bool(filing.acquirer),
            announced_date=filing.announced_date,
        )
        return None

    sources = []
    if filing.source_url:
        sources.append(
            SourceRef(url=filing.source_url, publication=SEC_PUBLICATION, type=SourceType.SEC_EDGAR)
        )

    return CandidateDeal(
        acquirer=filing.acquirer,
        target=filing.target or UNKNOWN_TARGET,
        value_usd=coerce_value(filing.value_usd),
        status=DealStatus.ANNOUNCED,
        announced_date=announced,
        sector=detect_sector(filing.description),
        geography=FILING_GEOGRAPHY,
        synopsis=filing.description,
        sources=sources,
    )


def candidate_from_discovered(
    deal: RawDiscoveredDeal,
    region: str | None = None,
) -> CandidateDeal | None:
    """
    Build a candidate from a discovery-search record.

    Args:
        deal: Raw record as returned by the search
        region: Region the search covered; fallback geography

    Returns:
        CandidateDeal, or None if the record lacks an acquirer, target or date
    """
    announced = parse_date(deal.announced_date)
    if not deal.acquirer or not deal.target or announced is None:
        logger.debug(
            'coercion.discovered_dropped',
            acquirer=deal.acquirer,
            target=deal.target,
            announced_date=deal.announced_date,
        )
        return None

    sources: list[SourceRef] = []
    seen: set[str] = set()
    for raw in deal.sources:
        if raw.url and raw.url not in seen:
            sources.append(
                SourceRef(
                    url=raw.url,
                    publication=raw.publication or '',
                    type=SourceType.PERPLEXITY,
                )
            )
            seen.add(raw.url)

    return CandidateDeal(
        acquirer=deal.acquirer,
        target=deal.target,
        value_usd=coerce_value(deal.value_usd),
        status=parse_status(deal.status),
        announced_date=announced,
        sector=deal.sector,
        geography=deal.geography or region,
        synopsis=deal.synopsis,
        rationale=deal.rationale,
        payment_structure=deal.payment_structure,
        breakup_fee=deal.breakup_fee,
        acquirer_domain=deal.acquirer_domain,
        target_domain=deal.target_domain,
        sources=sources,
    )
