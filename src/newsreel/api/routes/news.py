"""News acquisition endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ValidationError

from newsreel.api.deps import get_engine, get_persistence, get_settings
from newsreel.core.config import AppSettings
from newsreel.core.logging import get_logger
from newsreel.models.content import NewsPayload
from newsreel.orchestration.engine import WorkflowEngine
from newsreel.persistence import Persistence
from newsreel.pipelines.names import ProgramName

logger = get_logger("api.news")

router = APIRouter(tags=["news"])


class TriggerRequest(BaseModel):
    skip_cache: bool = False


@router.post("/trigger", status_code=202)
async def trigger(body: TriggerRequest | None = None,
                  engine: WorkflowEngine = Depends(get_engine)) -> dict[str, str]:
    """Start a news_scraper run. The caller polls ``/runs/{run_id}``."""
    skip_cache = body.skip_cache if body is not None else False
    run_id = await engine.create_run(ProgramName.NEWS_SCRAPER, {"skip_cache": skip_cache})
    return {"run_id": run_id}


@router.get("/latest")
async def latest(
    persistence: Persistence = Depends(get_persistence),
    settings: AppSettings = Depends(get_settings),
) -> NewsPayload:
    """Cached top picks if present, else the newest snapshot."""
    raw = persistence.cache.get(settings.pipeline.cache_key)
    if raw is not None:
        try:
            return NewsPayload.model_validate_json(raw).model_copy(update={"cached": True})
        except ValidationError:
            logger.warning("Ignoring malformed cache entry %s", settings.pipeline.cache_key)
    snapshot = persistence.content.latest_snapshot()
    if snapshot is None:
        raise HTTPException(status_code=404, detail="No news captured yet")
    return NewsPayload.model_validate(snapshot.payload).model_copy(update={"cached": False})
