"""Unit tests for script_generation and its prompt helpers."""

from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from newsreel.core.config import AppSettings, PipelineConfig
from newsreel.core.exceptions import PayloadValidationError
from newsreel.models.content import Article, Stage, StageState
from newsreel.models.policy import OverallStatus
from newsreel.models.run import RunStatus
from newsreel.pipelines.names import ProgramName
from newsreel.pipelines.script_generation import build_script_prompt, parse_script, time_context
from tests.unit.pipelines.conftest import PICK_IDS, SCRIPT, seed_video

BLOCK_ANSWER = json.dumps({"summary": "unsafe", "findings": [
    {"checkCode": "MISINFO_SENSITIVE_CLAIMS", "status": "BLOCK", "reason": "unverified casualty count"},
]})


@pytest.fixture
def settings():
    return AppSettings(pipeline=PipelineConfig(auto_advance=False))


@pytest.fixture
def scripted(content, provider):
    content.save_article(Article(pick_id=PICK_IDS[0], title="Typhoon", content="台風10号が上陸"))
    provider.set_response("VIDEO TYPE:", json.dumps(SCRIPT))
    return seed_video(content, done=[Stage.SELECTION])


async def write_script(engine, video_id="v1", run_id="script-1"):
    await engine.create_run(ProgramName.SCRIPT_GENERATION, {"video_id": video_id}, run_id=run_id)
    return await engine.wait(run_id)


class TestHelpers:
    @pytest.mark.parametrize("utc_hour, slot", [(22, "morning"), (3, "lunch"), (10, "evening"), (1, None)])
    def test_time_context_uses_target_timezone(self, utc_hour, slot):
        assert time_context(datetime(2026, 3, 1, utc_hour, 30, tzinfo=timezone.utc), 9) == slot

    def test_prompt_sizes_slides_by_video_type(self):
        articles = [{"title": "Typhoon", "content": "body"}]
        assert "3 to 5 slides" in build_script_prompt("short", articles, None)
        long_prompt = build_script_prompt("long", articles, "evening")
        assert "8 to 12 slides" in long_prompt
        assert "TIME OF DAY: evening" in long_prompt

    def test_parse_strips_code_fences(self):
        script = parse_script(f"```json\n{json.dumps(SCRIPT)}\n```")
        assert script.title == SCRIPT["title"]
        assert len(script.slides) == 2

    @pytest.mark.parametrize("text", ["", "not json", json.dumps({"title": "x", "slides": []})])
    def test_parse_rejects_unusable_answers(self, text):
        with pytest.raises(PayloadValidationError):
            parse_script(text)


@pytest.mark.asyncio
class TestScriptGeneration:
    async def test_saves_script_and_runs_light_check(self, pipelines, content, scripted):
        run = await write_script(pipelines)

        assert run.status is RunStatus.COMPLETE
        assert run.output["slide_count"] == 2
        assert run.output["blocked"] is False
        assert run.output["next_run_id"] is None
        video = content.get_video("v1")
        assert video.statuses.script is StageState.DONE
        assert video.script.title == SCRIPT["title"]
        assert video.policy.overall is OverallStatus.CLEAN
        assert sorted(e.log_type for e in content.cost_logs("v1")) == ["policy-script-light", "script-generation"]
        assert video.total_cost > 0

    async def test_selection_must_be_done(self, pipelines, content, provider):
        seed_video(content)
        run = await write_script(pipelines)

        assert run.status is RunStatus.FAILED
        assert "selection must be done first" in run.error
        assert content.get_video("v1").statuses.script is StageState.PENDING
        assert provider.prompts == []

    async def test_invalid_answer_marks_error_without_retry(self, pipelines, content, provider, scripted):
        provider.set_response("VIDEO TYPE:", "no script today")
        run = await write_script(pipelines)

        assert run.status is RunStatus.FAILED
        video = content.get_video("v1")
        assert video.statuses.script is StageState.ERROR
        assert "Invalid script answer" in video.errors[Stage.SCRIPT]
        assert len(provider.prompts) == 1

    async def test_running_stage_is_not_claimed_twice(self, pipelines, content, scripted):
        video = content.get_video("v1")
        video.statuses.script = StageState.IN_PROGRESS
        content.update_video(video)

        run = await write_script(pipelines)

        assert run.status is RunStatus.FAILED
        assert "already in progress" in run.error
        assert content.get_video("v1").statuses.script is StageState.IN_PROGRESS

    async def test_block_holds_asset_generation(self, pipelines, content, provider, scripted):
        provider.set_response("STAGE: script_light", BLOCK_ANSWER)
        run = await write_script(pipelines)

        assert run.status is RunStatus.COMPLETE
        assert run.output["blocked"] is True
        assert run.output["policy"]["block_reasons"] == ["MISINFO_SENSITIVE_CLAIMS: unverified casualty count"]
        video = content.get_video("v1")
        assert video.statuses.script is StageState.DONE
        assert video.policy.overall is OverallStatus.BLOCK

    async def test_unknown_video_fails(self, pipelines):
        run = await write_script(pipelines, video_id="ghost")
        assert run.status is RunStatus.FAILED
        assert "not found" in run.error
