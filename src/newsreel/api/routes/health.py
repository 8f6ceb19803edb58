"""Health check endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from newsreel.api.deps import get_persistence
from newsreel.core.exceptions import CacheError
from newsreel.persistence import Persistence

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "healthy"}


@router.get("/ready")
async def ready(persistence: Persistence = Depends(get_persistence)):
    try:
        persistence.cache.ping()
    except CacheError as exc:
        return JSONResponse(status_code=503, content={"status": "unavailable", "reason": str(exc)})
    return {"status": "ready"}
