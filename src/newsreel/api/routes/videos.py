"""Video inspection, stage transition and policy check endpoints."""

from __future__ import annotations

from enum import StrEnum
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from newsreel.api.deps import get_gate, get_persistence, get_policy_checker
from newsreel.lifecycle.stages import StageGate
from newsreel.models.content import Stage, Video
from newsreel.models.policy import PolicyStage
from newsreel.persistence import Persistence
from newsreel.policy.checker import PolicyChecker, PolicyCheckResult
from newsreel.policy.severity import upload_privacy

router = APIRouter(tags=["videos"])


class StageAction(StrEnum):
    START = "start"
    COMPLETE = "complete"
    FAIL = "fail"
    RESET = "reset"


class StageActionRequest(BaseModel):
    error: Optional[str] = None


class PolicyCheckRequest(BaseModel):
    content: str
    image_labels: Optional[list[str]] = None


class VideoView(BaseModel):
    video: Video
    upload_privacy: Optional[str] = None


@router.get("/{video_id}")
async def get_video(video_id: str, persistence: Persistence = Depends(get_persistence)) -> VideoView:
    video = persistence.content.get_video(video_id)
    if video is None:
        raise HTTPException(status_code=404, detail=f"Video {video_id} not found")
    return VideoView(video=video, upload_privacy=upload_privacy(video.policy.overall))


@router.post("/{video_id}/stages/{stage}/{action}")
async def stage_action(
    video_id: str,
    stage: Stage,
    action: StageAction,
    body: StageActionRequest | None = None,
    gate: StageGate = Depends(get_gate),
) -> Video:
    """Apply a stage transition. Refusals and policy blocks return 409."""
    if action is StageAction.START:
        return gate.start(video_id, stage)
    if action is StageAction.COMPLETE:
        return gate.complete(video_id, stage)
    if action is StageAction.FAIL:
        return gate.fail(video_id, stage, (body.error if body else None) or "failed by operator")
    return gate.reset(video_id, stage)


@router.post("/{video_id}/policy/{policy_stage}")
async def run_policy_check(
    video_id: str,
    policy_stage: PolicyStage,
    body: PolicyCheckRequest,
    checker: PolicyChecker = Depends(get_policy_checker),
) -> PolicyCheckResult:
    return checker.check(video_id, policy_stage, body.content, body.image_labels)
