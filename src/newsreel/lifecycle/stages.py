"""Per-video stage state machine and the policy gate in front of publish.

Stages form a dependency chain, not a single state machine: each stage has
its own small transition table, leaving ``pending`` is further guarded by the
state of an upstream stage, and entering ``in_progress`` on asset and publish
by the video's overall policy status.

Entering ``in_progress`` is refused while the stage is already in progress,
which serializes work per video and stage. ``blocked`` is never requested by
callers; the gate writes it when a publish attempt meets a BLOCK.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, NamedTuple, Optional

from newsreel.core.exceptions import EntityNotFoundError, PolicyBlocked, TransitionRefused
from newsreel.core.logging import get_logger
from newsreel.core.protocols import IContentStore
from newsreel.models.content import Stage, StageState, Video
from newsreel.models.policy import OverallStatus
from newsreel.policy.severity import upload_privacy

S = StageState

_COMMON: dict[StageState, frozenset[StageState]] = {
    S.PENDING: frozenset({S.IN_PROGRESS}),
    S.IN_PROGRESS: frozenset({S.DONE, S.PENDING, S.ERROR}),
    S.DONE: frozenset(),
    S.ERROR: frozenset({S.IN_PROGRESS, S.PENDING}),
}

_PUBLISH: dict[StageState, frozenset[StageState]] = {
    S.PENDING: frozenset({S.IN_PROGRESS}),
    S.IN_PROGRESS: frozenset({S.PROCESSING, S.DONE, S.PENDING, S.ERROR}),
    S.PROCESSING: frozenset({S.DONE, S.ERROR}),
    S.BLOCKED: frozenset({S.IN_PROGRESS, S.PENDING}),
    S.DONE: frozenset(),
    S.ERROR: frozenset({S.IN_PROGRESS, S.PENDING}),
}

# states a stage is "waiting" in; leaving them needs the upstream stage done
_WAITING = frozenset({S.PENDING, S.BLOCKED})


class StageRule(NamedTuple):
    requires: Optional[Stage]  # upstream stage that must be done
    policy_gated: bool


STAGE_RULES: dict[Stage, StageRule] = {
    Stage.SELECTION: StageRule(requires=None, policy_gated=False),
    Stage.SCRIPT: StageRule(requires=Stage.SELECTION, policy_gated=False),
    Stage.ASSET: StageRule(requires=Stage.SCRIPT, policy_gated=True),
    Stage.RENDER: StageRule(requires=Stage.ASSET, policy_gated=False),
    Stage.PUBLISH: StageRule(requires=Stage.RENDER, policy_gated=True),
}


class PublishDecision(NamedTuple):
    """How a rendered video may be published. ``privacy`` is None when held."""

    privacy: Optional[str]
    reasons: list[str]


def allowed_targets(stage: Stage, current: StageState) -> frozenset[StageState]:
    table = _PUBLISH if stage is Stage.PUBLISH else _COMMON
    return table.get(current, frozenset())


def _require_upstream(video: Video, stage: Stage) -> None:
    upstream = STAGE_RULES[stage].requires
    if upstream is not None and video.statuses.of(upstream) is not S.DONE:
        raise TransitionRefused(
            video.video_id, stage.value,
            f"{upstream.value} must be done first (is {video.statuses.of(upstream).value})",
        )


def check_transition(video: Video, stage: Stage, target: StageState) -> None:
    """Raise if ``stage`` of ``video`` may not move to ``target``.

    The upstream check runs before the policy check, and both run before the
    table lookup, so a repeated publish attempt under BLOCK keeps getting the
    block reasons even once publish already reads ``blocked``.

    Raises:
        PolicyBlocked: entering in_progress on a policy-gated stage while BLOCK.
        TransitionRefused: any other disallowed move.
    """
    current = video.statuses.of(stage)
    if target is S.IN_PROGRESS and current is S.IN_PROGRESS:
        raise TransitionRefused(video.video_id, stage.value, "already in progress")

    leaving_wait = current in _WAITING and target is not S.PENDING
    if leaving_wait or target is S.IN_PROGRESS:
        _require_upstream(video, stage)
    if target is S.IN_PROGRESS and STAGE_RULES[stage].policy_gated:
        if video.policy.overall is OverallStatus.BLOCK:
            raise PolicyBlocked(video.video_id, stage.value, video.policy.block_reasons)

    if target not in allowed_targets(stage, current):
        raise TransitionRefused(video.video_id, stage.value, f"cannot move from {current.value} to {target.value}")
    if stage is Stage.PUBLISH and current is S.BLOCKED and target is S.PENDING:
        if video.policy.overall is OverallStatus.BLOCK:
            raise PolicyBlocked(video.video_id, stage.value, video.policy.block_reasons)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StageGate:
    """Applies stage transitions to stored videos with optimistic writes.

    A lost race surfaces as ``ConcurrentUpdateError`` so that two callers can
    never both start the same stage.
    """

    def __init__(
        self,
        content: IContentStore,
        clock: Callable[[], datetime] = _utcnow,
        logger: logging.Logger | None = None,
    ) -> None:
        self._content = content
        self._clock = clock
        self._logger = logger or get_logger("lifecycle")

    def _load(self, video_id: str) -> Video:
        video = self._content.get_video(video_id)
        if video is None:
            raise EntityNotFoundError(f"Video {video_id} not found")
        return video

    def _write(self, video: Video, stage: Stage, target: StageState, error: str | None = None) -> Video:
        setattr(video.statuses, stage.value, target)
        if target is S.ERROR:
            video.errors[stage] = error or "unknown error"
        else:
            video.errors.pop(stage, None)
        video.updated_at = self._clock()
        updated = self._content.update_video(video)
        self._logger.info("%s %s -> %s", video.video_id, stage.value, target.value)
        return updated

    def _hold(self, video: Video, blocked: PolicyBlocked) -> Video:
        video.errors[Stage.PUBLISH] = blocked.reason
        return self._write(video, Stage.PUBLISH, S.BLOCKED)

    def transition(self, video_id: str, stage: Stage, target: StageState,
                   error: str | None = None) -> Video:
        video = self._load(video_id)
        try:
            check_transition(video, stage, target)
        except PolicyBlocked as exc:
            if stage is Stage.PUBLISH and video.statuses.publish is S.PENDING:
                self._hold(video, exc)
            self._logger.warning("%s %s refused by policy BLOCK", video_id, stage.value)
            raise
        return self._write(video, stage, target, error)

    def start(self, video_id: str, stage: Stage) -> Video:
        return self.transition(video_id, stage, S.IN_PROGRESS)

    def mark_processing(self, video_id: str) -> Video:
        return self.transition(video_id, Stage.PUBLISH, S.PROCESSING)

    def complete(self, video_id: str, stage: Stage) -> Video:
        return self.transition(video_id, stage, S.DONE)

    def fail(self, video_id: str, stage: Stage, error: str) -> Video:
        return self.transition(video_id, stage, S.ERROR, error)

    def reset(self, video_id: str, stage: Stage) -> Video:
        return self.transition(video_id, stage, S.PENDING)

    def resolve_publish(self, video_id: str) -> PublishDecision:
        """Publish visibility of a rendered video; a pending publish is held under BLOCK.

        Raises:
            TransitionRefused: render is not done yet.
        """
        video = self._load(video_id)
        _require_upstream(video, Stage.PUBLISH)
        privacy = upload_privacy(video.policy.overall)
        if privacy is not None:
            return PublishDecision(privacy, [])
        reasons = list(video.policy.block_reasons)
        if video.statuses.publish is S.PENDING:
            self._hold(video, PolicyBlocked(video_id, Stage.PUBLISH.value, reasons))
            self._logger.warning("%s publish held by policy BLOCK", video_id)
        return PublishDecision(None, reasons)
