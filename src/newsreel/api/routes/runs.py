"""Run lifecycle endpoints."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from newsreel.api.deps import get_engine
from newsreel.models.run import RunStatusView
from newsreel.orchestration.engine import WorkflowEngine

router = APIRouter(tags=["runs"])


class CreateRunRequest(BaseModel):
    program: str
    payload: dict[str, Any] = Field(default_factory=dict)
    run_id: Optional[str] = None


class CreateRunResponse(BaseModel):
    run_id: str


@router.post("", status_code=202)
async def create_run(body: CreateRunRequest, engine: WorkflowEngine = Depends(get_engine)) -> CreateRunResponse:
    run_id = await engine.create_run(body.program, body.payload, run_id=body.run_id)
    return CreateRunResponse(run_id=run_id)


@router.get("/{run_id}")
async def get_run(run_id: str, engine: WorkflowEngine = Depends(get_engine)) -> RunStatusView:
    return engine.get_run_status(run_id)


@router.post("/{run_id}/terminate")
async def terminate_run(run_id: str, engine: WorkflowEngine = Depends(get_engine)) -> RunStatusView:
    await engine.terminate_run(run_id)
    return engine.get_run_status(run_id)
