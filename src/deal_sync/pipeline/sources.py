"""
Source adapters: fetch raw records from a collaborator and coerce them.

Each adapter exposes a name (used in the summary's per-source counts) and an
async fetch(days_back) returning CandidateDeals in the collaborator's order.
"""

from typing import Protocol

import structlog

from ..errors import SourceFetchError
from ..models.deal import CandidateDeal
from ..models.raw import DiscoveryResponse, RawFiling
from .coercion import candidate_from_discovered, candidate_from_filing
from .rate_limiter import RateLimiter

logger = structlog.get_logger(__name__)


class DealSource(Protocol):
    name: str

    async def fetch(self, days_back: int) -> list[CandidateDeal]: ...


class FilingSearch(Protocol):
    async def search(self, days_back: int = 30) -> list[RawFiling]: ...


class DiscoverySearch(Protocol):
    async def search_region(self, region: str, days_back: int = 30) -> DiscoveryResponse: ...


class FilingSource:
    """Regulatory filings (SEC EDGAR)."""

    name = 'sec_edgar'

    def __init__(self, client: FilingSearch):
        self.client = client

    async def fetch(self, days_back: int) -> list[CandidateDeal]:
        filings = await self.client.search(days_back)
        candidates = [c for c in (candidate_from_filing(f) for f in filings) if c is not None]
        logger.info(
            'source.fetch_complete',
            source=self.name,
            raw=len(filings),
            candidates=len(candidates),
        )
        return candidates


class DiscoverySource:
    """
    LLM web-search discovery, one search per region.

    Regions are searched sequentially with pacing between calls. A failed
    region is logged and skipped; the source only fails when every region does.
    """

    name = 'perplexity'

    def __init__(
        self,
        client: DiscoverySearch,
        regions: list[str],
        rate_limiter: RateLimiter | None = None,
    ):
        self.client = client
        self.regions = list(regions)
        self.rate_limiter = rate_limiter or RateLimiter(0.0)

    async def fetch(self, days_back: int) -> list[CandidateDeal]:
        candidates: list[CandidateDeal] = []
        failures: list[str] = []

        for region in self.regions:
            await self.rate_limiter.acquire()
            try:
                response = await self.client.search_region(region, days_back)
            except Exception as exc:
                logger.warning('source.region_failed', source=self.name, region=region, error=str(exc))
                failures.append(f'{region}: {exc}')
                continue

            for raw in response.deals:
                candidate = candidate_from_discovered(raw, region)
                if candidate is not None:
                    candidates.append(candidate)

        if self.regions and len(failures) == len(self.regions):
            raise SourceFetchError(
                'All discovery regions failed',
                context={'failures': failures},
            )

        logger.info(
            'source.fetch_complete',
            source=self.name,
            regions=len(self.regions),
            failed_regions=len(failures),
            candidates=len(candidates),
        )
        return candidates
