"""Health check endpoint."""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

router = APIRouter()


@router.get("/health")
async def health(request: Request):
    """Check Postgres connectivity."""
    try:
        healthy = await request.app.state.postgres.verify_connectivity()
    except Exception:
        healthy = False
    if healthy:
        return {"status": "ok"}
    return JSONResponse(status_code=503, content={"status": "unhealthy"})
