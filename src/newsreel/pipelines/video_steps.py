"""Steps shared by the programs that own one stage of a video."""

from __future__ import annotations

from typing import Any, Callable

from newsreel.core.exceptions import PayloadValidationError
from newsreel.core.protocols import IContentStore
from newsreel.lifecycle.stages import StageGate
from newsreel.models.content import Stage, Video
from newsreel.orchestration import retry
from newsreel.orchestration.context import RunContext


def require_video_id(payload: dict[str, Any]) -> str:
    video_id = payload.get("video_id")
    if not isinstance(video_id, str) or not video_id:
        raise PayloadValidationError("video_id is required")
    return video_id


def load_video(content: IContentStore, video_id: str) -> Video:
    video = content.get_video(video_id)
    if video is None:
        raise PayloadValidationError(f"Video {video_id} not found")
    return video


def update_video(content: IContentStore, video_id: str, change: Callable[[Video], None]) -> Video:
    """Read, change and write back. A lost race raises and the step retries."""
    video = load_video(content, video_id)
    change(video)
    video.total_cost = content.total_cost(video_id)
    return content.update_video(video)


async def claim_stage(ctx: RunContext, gate: StageGate, video_id: str, stage: Stage) -> None:
    """Move ``stage`` to in_progress. A refusal fails the run without touching the stage."""
    await ctx.do(
        f"claim-{stage.value}-stage",
        lambda: gate.start(video_id, stage).statuses.model_dump(mode="json"),
        retry=retry.DATABASE,
    )


async def complete_stage(ctx: RunContext, gate: StageGate, video_id: str, stage: Stage) -> None:
    await ctx.do(
        f"complete-{stage.value}-stage",
        lambda: gate.complete(video_id, stage).statuses.model_dump(mode="json"),
        retry=retry.DATABASE,
    )


async def fail_stage(ctx: RunContext, gate: StageGate, video_id: str, stage: Stage, message: str) -> None:
    ctx.log.error("%s stage of %s failed: %s", stage.value, video_id, message)
    await ctx.do(
        f"mark-{stage.value}-error",
        lambda: gate.fail(video_id, stage, message).statuses.model_dump(mode="json"),
        retry=retry.DATABASE,
    )
