"""Unit tests for the stage state machine and the publish policy gate."""

from __future__ import annotations

import pytest

from newsreel.core.exceptions import (
    EntityNotFoundError,
    NonRetryableError,
    PolicyBlocked,
    TransitionRefused,
)
from newsreel.lifecycle.stages import StageGate, allowed_targets, check_transition
from newsreel.models.content import Stage, StageState, StatusVector, Video, VideoPolicy
from newsreel.models.policy import OverallStatus

S = StageState


def video_with(overall=OverallStatus.CLEAN, reasons=(), **statuses):
    return Video(
        video_id="v1",
        statuses=StatusVector(**statuses),
        policy=VideoPolicy(overall=overall, block_reasons=list(reasons)),
    )


READY_TO_PUBLISH = dict(selection=S.DONE, script=S.DONE, asset=S.DONE, render=S.DONE)


@pytest.fixture
def gate(content, clock):
    return StageGate(content, clock=clock)


def store(content, video):
    content.create_video(video)
    return video.video_id


class TestTransitionTable:
    def test_pending_only_moves_to_in_progress(self):
        for stage in Stage:
            assert allowed_targets(stage, S.PENDING) == frozenset({S.IN_PROGRESS})

    def test_done_is_final(self):
        for stage in Stage:
            assert allowed_targets(stage, S.DONE) == frozenset()

    def test_processing_is_publish_only(self):
        assert S.PROCESSING in allowed_targets(Stage.PUBLISH, S.IN_PROGRESS)
        assert allowed_targets(Stage.SCRIPT, S.PROCESSING) == frozenset()

    def test_already_in_progress_is_refused(self):
        video = video_with(selection=S.IN_PROGRESS)
        with pytest.raises(TransitionRefused, match="already in progress"):
            check_transition(video, Stage.SELECTION, S.IN_PROGRESS)

    def test_upstream_stage_must_be_done(self):
        video = video_with(selection=S.DONE, script=S.DONE, asset=S.IN_PROGRESS)
        with pytest.raises(TransitionRefused, match="asset must be done first"):
            check_transition(video, Stage.RENDER, S.IN_PROGRESS)

    def test_error_can_be_retried(self):
        check_transition(video_with(selection=S.ERROR), Stage.SELECTION, S.IN_PROGRESS)

    @pytest.mark.parametrize("target", [S.ERROR, S.BLOCKED, S.DONE])
    def test_publish_cannot_leave_pending_before_render(self, target):
        video = video_with(OverallStatus.BLOCK, selection=S.DONE, script=S.DONE, asset=S.DONE)
        with pytest.raises(TransitionRefused, match="render must be done first"):
            check_transition(video, Stage.PUBLISH, target)

    def test_pending_cannot_fail_directly(self):
        video = video_with(selection=S.DONE)
        with pytest.raises(TransitionRefused, match="cannot move from pending to error"):
            check_transition(video, Stage.SCRIPT, S.ERROR)

    def test_refusals_are_not_retried(self):
        assert issubclass(TransitionRefused, NonRetryableError)


class TestPolicyGate:
    def test_publish_start_under_block_is_refused_with_reasons(self, gate, content):
        video_id = store(content, video_with(OverallStatus.BLOCK, ["MISINFO_SENSITIVE_CLAIMS: unverified"],
                                             **READY_TO_PUBLISH))
        with pytest.raises(PolicyBlocked) as excinfo:
            gate.start(video_id, Stage.PUBLISH)

        assert excinfo.value.reasons == ["MISINFO_SENSITIVE_CLAIMS: unverified"]
        assert content.get_video(video_id).statuses.publish is S.BLOCKED
        assert content.get_video(video_id).errors[Stage.PUBLISH].startswith("Policy BLOCK")

    def test_repeated_publish_start_under_block_keeps_reasons(self, gate, content):
        video_id = store(content, video_with(OverallStatus.BLOCK, ["GRAPHIC_VIOLENCE: gore"], **READY_TO_PUBLISH))
        with pytest.raises(PolicyBlocked):
            gate.start(video_id, Stage.PUBLISH)
        with pytest.raises(PolicyBlocked) as excinfo:
            gate.start(video_id, Stage.PUBLISH)

        assert excinfo.value.reasons == ["GRAPHIC_VIOLENCE: gore"]
        assert content.get_video(video_id).statuses.publish is S.BLOCKED

    def test_publish_without_render_is_not_marked_blocked(self, gate, content):
        video_id = store(content, video_with(OverallStatus.BLOCK, selection=S.DONE, script=S.DONE, asset=S.DONE))
        with pytest.raises(TransitionRefused, match="render must be done first"):
            gate.start(video_id, Stage.PUBLISH)
        assert content.get_video(video_id).statuses.publish is S.PENDING

    def test_blocked_publish_starts_once_policy_clears(self, gate, content):
        video_id = store(content, video_with(OverallStatus.WARN, **READY_TO_PUBLISH, publish=S.BLOCKED))
        video = gate.start(video_id, Stage.PUBLISH)
        assert video.statuses.publish is S.IN_PROGRESS
        assert Stage.PUBLISH not in video.errors

    def test_publish_start_when_clean_succeeds(self, gate, content):
        video_id = store(content, video_with(OverallStatus.CLEAN, **READY_TO_PUBLISH))
        video = gate.start(video_id, Stage.PUBLISH)
        assert video.statuses.publish is S.IN_PROGRESS

    @pytest.mark.parametrize("overall", [OverallStatus.WARN, OverallStatus.REVIEW, OverallStatus.PENDING])
    def test_non_block_statuses_do_not_gate(self, gate, content, overall):
        video_id = store(content, video_with(overall, **READY_TO_PUBLISH))
        assert gate.start(video_id, Stage.PUBLISH).statuses.publish is S.IN_PROGRESS

    def test_asset_stage_is_gated_too(self, gate, content):
        video_id = store(content, video_with(OverallStatus.BLOCK, selection=S.DONE, script=S.DONE))
        with pytest.raises(PolicyBlocked):
            gate.start(video_id, Stage.ASSET)
        assert content.get_video(video_id).statuses.asset is S.PENDING

    def test_blocked_publish_cannot_reset_while_still_blocked(self, gate, content):
        video_id = store(content, video_with(OverallStatus.BLOCK, **READY_TO_PUBLISH, publish=S.BLOCKED))
        with pytest.raises(PolicyBlocked):
            gate.reset(video_id, Stage.PUBLISH)

    def test_blocked_publish_resets_after_policy_clears(self, gate, content):
        video_id = store(content, video_with(OverallStatus.CLEAN, **READY_TO_PUBLISH, publish=S.BLOCKED))
        assert gate.reset(video_id, Stage.PUBLISH).statuses.publish is S.PENDING


class TestStageGate:
    def test_full_publish_path(self, gate, content):
        video_id = store(content, video_with(**READY_TO_PUBLISH))
        gate.start(video_id, Stage.PUBLISH)
        gate.mark_processing(video_id)
        video = gate.complete(video_id, Stage.PUBLISH)
        assert video.statuses.publish is S.DONE

    def test_failure_records_error_and_restart_clears_it(self, gate, content):
        video_id = store(content, video_with())
        gate.start(video_id, Stage.SELECTION)
        failed = gate.fail(video_id, Stage.SELECTION, "model timeout")
        assert failed.errors[Stage.SELECTION] == "model timeout"

        restarted = gate.start(video_id, Stage.SELECTION)
        assert restarted.statuses.selection is S.IN_PROGRESS
        assert Stage.SELECTION not in restarted.errors

    def test_each_write_bumps_the_version(self, gate, content):
        video_id = store(content, video_with())
        gate.start(video_id, Stage.SELECTION)
        assert gate.complete(video_id, Stage.SELECTION).version == 2

    def test_unknown_video(self, gate):
        with pytest.raises(EntityNotFoundError):
            gate.start("nope", Stage.SELECTION)


class TestResolvePublish:
    @pytest.mark.parametrize("overall, privacy", [
        (OverallStatus.CLEAN, "public"),
        (OverallStatus.WARN, "private"),
        (OverallStatus.REVIEW, "private"),
    ])
    def test_visibility_follows_overall_status(self, gate, content, overall, privacy):
        video_id = store(content, video_with(overall, **READY_TO_PUBLISH))
        assert gate.resolve_publish(video_id).privacy == privacy
        assert content.get_video(video_id).statuses.publish is S.PENDING

    def test_block_holds_publish(self, gate, content):
        video_id = store(content, video_with(OverallStatus.BLOCK, ["HATE_HARASSMENT: slur"], **READY_TO_PUBLISH))
        decision = gate.resolve_publish(video_id)

        assert decision.privacy is None
        assert decision.reasons == ["HATE_HARASSMENT: slur"]
        assert content.get_video(video_id).statuses.publish is S.BLOCKED

    def test_requires_render(self, gate, content):
        video_id = store(content, video_with(selection=S.DONE, script=S.DONE, asset=S.DONE))
        with pytest.raises(TransitionRefused):
            gate.resolve_publish(video_id)
