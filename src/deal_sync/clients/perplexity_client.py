"""
Perplexity client for deal discovery and verification.

Perplexity exposes an OpenAI-compatible chat completions API, so this wraps
AsyncOpenAI pointed at the Perplexity base URL. Handles:
- Regional deal discovery (JSON deals + out-of-band citation URLs)
- Single-deal verification
- Retry logic with exponential backoff
"""

import json
import os
from typing import Any
from urllib.parse import urlparse

import structlog
from openai import AsyncOpenAI
from pydantic import ValidationError as PydanticValidationError
from tenacity import retry, stop_after_attempt, wait_exponential

from ..errors import wrap_http_error
from ..models.raw import DiscoveryResponse, RawDiscoveredDeal, VerificationResponse
from ..prompts import build_discovery_prompt, build_verification_prompt

logger = structlog.get_logger(__name__)


DEFAULT_BASE_URL = 'https://api.perplexity.ai'
DEFAULT_MODEL = 'llama-3.1-sonar-small-128k-online'

PUBLICATION_NAMES: dict[str, str] = {
    'reuters.com': 'Reuters',
    'bloomberg.com': 'Bloomberg',
    'ft.com': 'Financial Times',
    'wsj.com': 'Wall Street Journal',
    'sec.gov': 'SEC EDGAR',
    'cnbc.com': 'CNBC',
    'businesswire.com': 'Business Wire',
    'prnewswire.com': 'PR Newswire',
    'globenewswire.com': 'GlobeNewswire',
}
UNKNOWN_PUBLICATION = 'Unknown Source'


def strip_code_fences(content: str) -> str:
    """Remove a ```json ... ``` wrapper if the model added one."""
    text = content.strip()
    if not text.startswith('```'):
        return text
    first_newline = text.find('\n')
    text = text[first_newline + 1:] if first_newline != -1 else text.lstrip('`')
    if text.rstrip().endswith('```'):
        text = text.rstrip()[:-3]
    return text.strip()


def extract_publication_name(url: str) -> str:
    """Publication name for a citation URL, falling back to the bare hostname."""
    try:
        hostname = urlparse(url).hostname
    except ValueError:
        return UNKNOWN_PUBLICATION
    if not hostname:
        return UNKNOWN_PUBLICATION
    if hostname.startswith('www.'):
        hostname = hostname[4:]
    return PUBLICATION_NAMES.get(hostname, hostname)


def _parse_json_object(content: str) -> dict[str, Any] | None:
    try:
        parsed = json.loads(strip_code_fences(content))
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


class PerplexityClient:
    """
    Async Perplexity client for deal discovery and verification.

    Configuration via environment variables:
    - PERPLEXITY_API_KEY: Required API key
    - PERPLEXITY_BASE_URL: API base URL (default: https://api.perplexity.ai)
    - PERPLEXITY_MODEL: Online search model
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        client: AsyncOpenAI | None = None,
    ):
        """
        Initialize the Perplexity client.

        Args:
            api_key: API key (defaults to PERPLEXITY_API_KEY env var)
            base_url: API base URL (defaults to PERPLEXITY_BASE_URL)
            model: Chat model (defaults to PERPLEXITY_MODEL)
            client: Pre-built AsyncOpenAI client (tests)
        """
        self.api_key = api_key or os.getenv('PERPLEXITY_API_KEY')
        if not self.api_key and client is None:
            raise ValueError('PERPLEXITY_API_KEY environment variable is required')

        self.base_url = base_url or os.getenv('PERPLEXITY_BASE_URL', DEFAULT_BASE_URL)
        self.model = model or os.getenv('PERPLEXITY_MODEL', DEFAULT_MODEL)
        self._client = client or AsyncOpenAI(api_key=self.api_key, base_url=self.base_url)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    async def chat_completion(
        self,
        messages: list[dict[str, str]],
        temperature: float = 0.0,
        max_tokens: int | None = None,
    ) -> tuple[str, list[str]]:
        """
        Get a chat completion plus its citation URLs.

        Returns:
            (assistant text, citation URLs)
        """
        response = await self._client.chat.completions.create(
            model=self.model,
            messages=messages,  # type: ignore
            temperature=temperature,
            max_tokens=max_tokens,
        )
        content = response.choices[0].message.content or ''
        citations = getattr(response, 'citations', None) or []
        return content, [c for c in citations if isinstance(c, str) and c]

    async def search_region(self, region: str, days_back: int = 30) -> DiscoveryResponse:
        """
        Discover deals announced in one region.

        Every deal is tagged with the region when it has no geography and with
        sources built from the response citations when it lists none.

        Raises:
            SourceFetchError: transport failure after retries
        """
        try:
            content, citations = await self.chat_completion(
                build_discovery_prompt(region, days_back),
                temperature=0.1,
                max_tokens=4000,
            )
        except Exception as exc:
            raise wrap_http_error(exc, {'region': region}) from exc

        parsed = _parse_json_object(content)
        if parsed is None:
            logger.warning(
                'perplexity.discovery_parse_failed',
                region=region,
                content_preview=content[:200],
            )
            return DiscoveryResponse()

        try:
            result = DiscoveryResponse.model_validate({**parsed, 'citations': citations})
        except PydanticValidationError as exc:
            logger.warning('perplexity.discovery_invalid', region=region, error=str(exc))
            return DiscoveryResponse()

        citation_sources = [
            {'url': url, 'publication': extract_publication_name(url)} for url in citations
        ]
        deals: list[RawDiscoveredDeal] = []
        for deal in result.deals:
            updates: dict[str, Any] = {}
            if not deal.geography:
                updates['geography'] = region
            if not deal.sources and citation_sources:
                updates['sources'] = citation_sources
            deals.append(
                RawDiscoveredDeal.model_validate({**deal.model_dump(), **updates})
                if updates else deal
            )

        logger.info(
            'perplexity.discovery_complete',
            region=region,
            deals=len(deals),
            citations=len(citations),
        )
        return DiscoveryResponse(deals=deals, citations=citations)

    async def verify_deal(
        self,
        acquirer: str,
        target: str,
        approx_date: str,
    ) -> VerificationResponse:
        """
        Ask whether a deal is real and request corrected facts.

        Never raises: any failure returns verified=False.
        """
        try:
            content, citations = await self.chat_completion(
                build_verification_prompt(acquirer, target, approx_date),
                temperature=0.0,
                max_tokens=1000,
            )
        except Exception as exc:
            logger.warning(
                'perplexity.verification_failed',
                acquirer=acquirer,
                target=target,
                error=str(exc),
            )
            return VerificationResponse()

        parsed = _parse_json_object(content)
        if parsed is None:
            logger.warning('perplexity.verification_parse_failed', acquirer=acquirer, target=target)
            return VerificationResponse()

        return VerificationResponse.model_validate(
            {
                'verified': parsed.get('verified'),
                'details': {
                    'value_usd': parsed.get('value_usd'),
                    'status': parsed.get('status'),
                    'announced_date': parsed.get('announced_date'),
                    'synopsis': parsed.get('synopsis'),
                },
                'sources': citations,
            }
        )

    async def close(self) -> None:
        await self._client.close()
