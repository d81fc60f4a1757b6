"""
Company logo lookup by website domain.

Probes a fixed list of public logo/favicon services with HEAD requests and
returns the first URL that answers 2xx. Lookups are best effort; any failure
simply moves on to the next service.
"""

import httpx
import structlog

logger = structlog.get_logger(__name__)


LOGO_SERVICES = (
    'https://logo.clearbit.com/{domain}',
    'https://www.google.com/s2/favicons?domain={domain}&sz=128',
    'https://icon.horse/icon/{domain}',
)
LOGO_TIMEOUT_SECONDS = 3.0


class LogoClient:
    """Checks logo services for a domain with HEAD requests."""

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = LOGO_TIMEOUT_SECONDS,
    ):
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)
        self.timeout = timeout

    async def resolve(self, domain: str | None) -> str | None:
        """
        First logo URL that responds OK for the domain.

        Returns:
            Logo URL, or None if no service has one
        """
        if not domain:
            return None

        for template in LOGO_SERVICES:
            url = template.format(domain=domain)
            try:
                response = await self._client.head(url, timeout=self.timeout)
            except httpx.HTTPError as exc:
                logger.debug('logo.lookup_failed', url=url, error=str(exc))
                continue
            if response.is_success:
                return url

        logger.debug('logo.not_found', domain=domain)
        return None

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
