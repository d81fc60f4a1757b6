"""GET /deals: list public deals with their sources."""

import structlog
from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse

from deal_sync.models.listing import DEFAULT_PAGE_SIZE, DEFAULT_SORT, DealListQuery

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/deals")
async def list_deals(
    request: Request,
    status: str | None = None,
    sector: str | None = None,
    geography: str | None = None,
    min_value: int | None = Query(default=None, alias="minValue"),
    max_value: int | None = Query(default=None, alias="maxValue"),
    verification: str | None = None,
    sort: str = DEFAULT_SORT,
    order: str = "desc",
    limit: int = DEFAULT_PAGE_SIZE,
    offset: int = 0,
):
    """Filtered, sorted, paginated public deals."""
    query = DealListQuery(
        status=status,
        sector=sector,
        geography=geography,
        min_value=min_value,
        max_value=max_value,
        verification=verification,
        sort=sort,
        order=order,
        limit=limit,
        offset=offset,
    )

    try:
        deals, total = await request.app.state.postgres.list_deals(query)
    except Exception as e:
        logger.error("deals.query_failed", error=str(e), error_type=type(e).__name__)
        return JSONResponse(
            status_code=500,
            content={"error": "Database error", "message": str(e)},
        )

    return {
        "deals": deals,
        "pagination": {"limit": query.limit, "offset": query.offset, "total": total},
    }
