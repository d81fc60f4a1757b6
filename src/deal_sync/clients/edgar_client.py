"""
SEC EDGAR full-text search client.

Searches recent 8-K, S-4 and DEFM14A filings for M&A language and turns the
hits into RawFiling records. The filing company is taken as the acquirer; the
target is not recoverable from search metadata and defaults to
"Unknown Target". Only filings whose description states a value of at least
$500M are kept.
"""

import os
import re
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any

import httpx
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..models.raw import RawFiling

logger = structlog.get_logger(__name__)


SEARCH_URL = 'https://efts.sec.gov/LATEST/search-index'
ARCHIVE_URL = 'https://www.sec.gov/Archives/edgar/data'
DEFAULT_USER_AGENT = 'M&A Intelligence Pro (contact@example.com)'

SEARCH_QUERIES = (
    'merger agreement',
    'acquisition agreement',
    'business combination',
    'tender offer',
)
FORM_TYPES = '8-K,S-4,DEFM14A'
PAGE_SIZE = 50

MA_KEYWORDS = ('merger', 'acquisition', 'acquire', 'tender offer', 'business combination')
MIN_FILING_VALUE_USD = 500_000_000
UNKNOWN_TARGET = 'Unknown Target'

_FILING_VALUE_RE = re.compile(r'\$([0-9,.]+)\s*(billion|million|b|m)', re.IGNORECASE)


@dataclass
class EdgarFiling:
    """One search hit."""

    accession_number: str
    cik: str
    company_name: str
    form_type: str
    filed_at: str
    document_url: str
    description: str

    @classmethod
    def from_hit(cls, hit: dict[str, Any]) -> 'EdgarFiling':
        source = hit.get('_source') or {}
        ciks = source.get('ciks') or []
        names = source.get('display_names') or []
        accession = source.get('adsh') or source.get('accession_number') or ''
        cik = ciks[0] if ciks else source.get('cik') or ''
        return cls(
            accession_number=accession,
            cik=cik,
            company_name=names[0] if names else source.get('company_name') or '',
            form_type=source.get('form') or source.get('file_type') or '',
            filed_at=source.get('file_date') or source.get('filed_at') or '',
            document_url=f"{ARCHIVE_URL}/{cik}/{accession.replace('-', '')}",
            description=source.get('file_description') or '',
        )


def parse_filing_value(description: str) -> int | None:
    """Dollar amount stated in a filing description ("$1.2 billion")."""
    match = _FILING_VALUE_RE.search(description)
    if not match:
        return None
    digits = match.group(1).replace(',', '')
    try:
        num = float(digits)
    except ValueError:
        return None
    multiplier = 1e9 if match.group(2).lower().startswith('b') else 1e6
    return round(num * multiplier)


def parse_filing_for_deal(filing: EdgarFiling) -> RawFiling | None:
    """
    Deal-shaped record for a filing, or None if it does not look like M&A.
    """
    description = filing.description.lower()
    if not any(kw in description for kw in MA_KEYWORDS):
        return None

    return RawFiling(
        acquirer=filing.company_name,
        target=UNKNOWN_TARGET,
        value_usd=parse_filing_value(filing.description),
        announced_date=filing.filed_at,
        source_url=filing.document_url,
        description=filing.description,
        accession_number=filing.accession_number,
        form_type=filing.form_type,
    )


class EdgarClient:
    """
    Async client for the EDGAR full-text search API.

    SEC requires a descriptive User-Agent with contact details; it is read
    from SEC_USER_AGENT when not given.
    """

    def __init__(
        self,
        user_agent: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ):
        self.user_agent = user_agent or os.getenv('SEC_USER_AGENT', DEFAULT_USER_AGENT)
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    @property
    def headers(self) -> dict[str, str]:
        return {'User-Agent': self.user_agent, 'Accept': 'application/json'}

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    async def _get(self, params: dict[str, str]) -> httpx.Response:
        return await self._client.get(SEARCH_URL, params=params, headers=self.headers)

    async def search_filings(self, days_back: int = 30) -> list[EdgarFiling]:
        """
        Run every M&A query and return the filings, unique by accession number.

        A failed query is logged and skipped; the others still contribute.
        """
        end = date.today()
        start = end - timedelta(days=days_back)

        filings: dict[str, EdgarFiling] = {}
        for query in SEARCH_QUERIES:
            params = {
                'q': f'"{query}"',
                'dateRange': 'custom',
                'startdt': start.isoformat(),
                'enddt': end.isoformat(),
                'forms': FORM_TYPES,
                'from': '0',
                'size': str(PAGE_SIZE),
            }
            try:
                response = await self._get(params)
            except httpx.HTTPError as exc:
                logger.warning('edgar.query_failed', query=query, error=str(exc))
                continue

            if response.status_code != 200:
                logger.warning('edgar.query_failed', query=query, status_code=response.status_code)
                continue

            try:
                data = response.json()
            except ValueError:
                logger.warning('edgar.invalid_json', query=query)
                continue

            hits = ((data or {}).get('hits') or {}).get('hits') or []
            for hit in hits:
                filing = EdgarFiling.from_hit(hit)
                # Later duplicates replace earlier ones
                filings[filing.accession_number] = filing

        return list(filings.values())

    async def search(self, days_back: int = 30) -> list[RawFiling]:
        """
        Material M&A filings from the last days_back days.

        Returns:
            RawFiling per filing with M&A language and a stated value >= $500M
        """
        filings = await self.search_filings(days_back)

        deals: list[RawFiling] = []
        for filing in filings:
            deal = parse_filing_for_deal(filing)
            if deal and isinstance(deal.value_usd, (int, float)) and deal.value_usd >= MIN_FILING_VALUE_USD:
                deals.append(deal)

        logger.info('edgar.search_complete', filings=len(filings), deals=len(deals))
        return deals

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
