"""FastAPI application for the deal sync service."""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from deal_sync.clients.edgar_client import EdgarClient
from deal_sync.clients.logo_client import LogoClient
from deal_sync.clients.perplexity_client import PerplexityClient
from deal_sync.clients.postgres_client import PostgresClient
from deal_sync.logging import configure_logging

from .config import get_settings
from .routes.deals import router as deals_router
from .routes.health import router as health_router
from .routes.sync import router as sync_router

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize persistent clients at startup, clean up at shutdown."""
    settings = get_settings()
    configure_logging(json_output=True)

    logger.info("lifespan.startup")

    postgres = PostgresClient(settings.DATABASE_URL, require_ssl=settings.DATABASE_REQUIRE_SSL)
    await postgres.connect()
    if await postgres.verify_connectivity():
        await postgres.setup_schema()
        logger.info("lifespan.postgres_ready")
    else:
        logger.warning("lifespan.postgres_connectivity_failed")

    perplexity = PerplexityClient(
        api_key=settings.PERPLEXITY_API_KEY,
        base_url=settings.PERPLEXITY_BASE_URL,
        model=settings.PERPLEXITY_MODEL,
    )
    edgar = EdgarClient(user_agent=settings.SEC_USER_AGENT)
    logo = LogoClient()

    # Store on app.state for request handlers
    app.state.postgres = postgres
    app.state.perplexity = perplexity
    app.state.edgar = edgar
    app.state.logo = logo

    logger.info("lifespan.ready")
    yield

    # Shutdown
    logger.info("lifespan.shutdown")
    await perplexity.close()
    await edgar.close()
    await logo.close()
    await postgres.close()


app = FastAPI(
    title="deal-sync",
    description="M&A deal ingestion: SEC EDGAR + Perplexity discovery, dedup, scoring, Postgres sync",
    lifespan=lifespan,
)

app.include_router(health_router)
app.include_router(sync_router)
app.include_router(deals_router)
