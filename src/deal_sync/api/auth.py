"""Bearer token authentication for the sync API."""

from fastapi import Header, HTTPException

from .config import get_settings


async def verify_sync_token(authorization: str = Header(...)) -> None:
    """Validate the bearer token sent by the scheduler or an operator."""
    expected = f"Bearer {get_settings().SYNC_API_KEY}"
    if authorization != expected:
        raise HTTPException(status_code=401, detail="Invalid or missing bearer token")
