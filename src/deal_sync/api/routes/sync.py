"""POST/GET /sync: run one deal sync and return its summary."""

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from deal_sync.config import config
from deal_sync.errors import SyncRunError
from deal_sync.models.sync_run import SyncOptions, SyncType
from deal_sync.pipeline.deduplicator import Deduplicator
from deal_sync.pipeline.pipeline import SyncPipeline
from deal_sync.pipeline.rate_limiter import RateLimiter
from deal_sync.pipeline.sources import DiscoverySource, FilingSource
from deal_sync.pipeline.verifier import DealVerifier
from deal_sync.repository import DealRepository

from ..auth import verify_sync_token

logger = structlog.get_logger(__name__)

router = APIRouter()


def build_pipeline(state) -> SyncPipeline:
    """Assemble a SyncPipeline from the clients held on app.state."""
    sources = [
        FilingSource(state.edgar),
        DiscoverySource(
            state.perplexity,
            regions=config.DISCOVERY_REGIONS,
            rate_limiter=RateLimiter(config.DISCOVERY_PACING_SECONDS),
        ),
    ]
    verifier = DealVerifier(
        state.perplexity,
        rate_limiter=RateLimiter(config.VERIFICATION_PACING_SECONDS),
        call_timeout=config.VERIFICATION_TIMEOUT_SECONDS,
    )
    repository = DealRepository(state.postgres, logo_client=state.logo)
    return SyncPipeline(sources, verifier, repository, deduplicator=Deduplicator())


async def _run(request: Request, scheduled: bool, options: SyncOptions | None):
    sync_type = SyncType.SCHEDULED if scheduled else SyncType.MANUAL
    log = logger.bind(sync_type=sync_type.value)
    log.info("sync.received")

    try:
        pipeline = build_pipeline(request.app.state)
        summary = await pipeline.run_sync(options or config.sync_options(), sync_type)
    except SyncRunError as e:
        log.error("sync.failed", error=e.message)
        return JSONResponse(status_code=500, content={"success": False, "error": e.message})
    except Exception as e:
        log.error("sync.failed", error=str(e), error_type=type(e).__name__)
        return JSONResponse(status_code=500, content={"success": False, "error": str(e)})

    log.info(
        "sync.complete",
        deals_added=summary.deals_added,
        deals_updated=summary.deals_updated,
        errors=len(summary.errors),
    )
    return {"success": True, **summary.to_dict()}


@router.post("/sync")
async def sync_post(
    request: Request,
    scheduled: bool = False,
    options: SyncOptions | None = None,
    _auth: None = Depends(verify_sync_token),
):
    """Manual or scheduled sync with optional option overrides in the body."""
    return await _run(request, scheduled, options)


@router.get("/sync")
async def sync_get(
    request: Request,
    scheduled: bool = False,
    _auth: None = Depends(verify_sync_token),
):
    """Same as POST with default options (cron schedulers issue GET)."""
    return await _run(request, scheduled, None)
