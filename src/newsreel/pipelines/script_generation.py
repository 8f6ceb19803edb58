"""script_generation: write the slide script for a selected video.

Owns the script stage. The script is checked against the light policy stage
right after it is saved; a BLOCK there keeps the asset stage from starting.
"""

from __future__ import annotations

import json
import re
from datetime import datetime, timedelta
from typing import Any, Optional

from pydantic import ValidationError

from newsreel.core.config import LLMConfig, PipelineConfig
from newsreel.core.exceptions import PayloadValidationError, StepFailedError
from newsreel.core.protocols import IContentStore, IModelProvider
from newsreel.lifecycle.stages import StageGate
from newsreel.model_providers.pricing import calculate_cost
from newsreel.models.content import CostLogEntry, Stage, VideoScript
from newsreel.models.policy import OverallStatus, PolicyStage
from newsreel.orchestration import retry
from newsreel.orchestration.context import RunContext
from newsreel.pipelines.names import ProgramName
from newsreel.pipelines.video_steps import (
    claim_stage,
    complete_stage,
    fail_stage,
    load_video,
    require_video_id,
    update_video,
)
from newsreel.policy.checker import PolicyChecker

_FENCE = re.compile(r"```(?:json)?\s*|```")

SCRIPT_PROMPT = """You write scripts for a Japanese news video channel.

VIDEO TYPE: {video_type}
{time_context}
ARTICLES:
{articles}

Write {slide_hint} slides. Narration stays in the articles' language; image
descriptions are always English. Each slide runs 10-20 seconds.

Answer with JSON only:
{{"title": "SEO title", "description": "SEO description",
  "thumbnail_description": "thumbnail image prompt",
  "slides": [{{"headline": "...", "image_description": "...",
              "narration": "...", "estimated_duration": 15}}]}}
"""


def time_context(now: datetime, utc_offset_hours: int) -> Optional[str]:
    """Broadcast slot of ``now`` in the target timezone, if it falls in one."""
    hour = (now + timedelta(hours=utc_offset_hours)).hour
    if 6 <= hour < 9:
        return "morning"
    if 12 <= hour < 14:
        return "lunch"
    if 18 <= hour < 21:
        return "evening"
    return None


def build_script_prompt(video_type: str, articles: list[dict[str, str]], slot: Optional[str]) -> str:
    blocks = [f"### {a['title']}\n{a['content']}" for a in articles]
    return SCRIPT_PROMPT.format(
        video_type=video_type,
        time_context=f"TIME OF DAY: {slot}\n" if slot else "",
        articles="\n\n".join(blocks),
        slide_hint="3 to 5" if video_type == "short" else "8 to 12",
    )


def parse_script(text: str) -> VideoScript:
    """Validate the model's answer as a script.

    Raises:
        PayloadValidationError: unparseable or structurally invalid answer.
    """
    cleaned = _FENCE.sub("", text or "").strip()
    if not cleaned:
        raise PayloadValidationError("Empty script answer")
    try:
        return VideoScript.model_validate_json(cleaned)
    except ValidationError as exc:
        raise PayloadValidationError(f"Invalid script answer: {exc.error_count()} error(s)") from exc


class ScriptGenerationPipeline:
    name = ProgramName.SCRIPT_GENERATION

    def __init__(
        self,
        content: IContentStore,
        provider: IModelProvider,
        gate: StageGate,
        checker: PolicyChecker,
        llm: LLMConfig,
        config: PipelineConfig,
    ) -> None:
        self._content = content
        self._provider = provider
        self._gate = gate
        self._checker = checker
        self._llm = llm
        self._config = config

    def _fetch_video(self, video_id: str) -> dict[str, Any]:
        video = load_video(self._content, video_id)
        if not video.articles:
            raise PayloadValidationError(f"No articles selected for video {video_id}")
        return {"video_type": video.video_type, "articles": video.articles}

    def _fetch_articles(self, pick_ids: list[str]) -> list[dict[str, str]]:
        found = []
        for pick_id in pick_ids:
            article = self._content.get_article(pick_id)
            if article is None or not article.content:
                continue
            found.append({"pick_id": pick_id, "title": article.title or "Untitled", "content": article.content})
        if not found:
            raise PayloadValidationError("No article content available")
        return found

    def _generate(self, prompt: str) -> dict[str, Any]:
        model = self._llm.script_model
        generation = self._provider.generate(prompt, model)
        script = parse_script(generation.content)
        return {
            "script": script.model_dump(mode="json"),
            "model": model,
            "input_tokens": generation.token_usage.input_tokens,
            "output_tokens": generation.token_usage.output_tokens,
            "cost": calculate_cost(generation.token_usage, model),
        }

    def _log_cost(self, ctx: RunContext, video_id: str, generated: dict[str, Any]) -> float:
        self._content.append_cost_log(CostLogEntry(
            entry_id=f"{ctx.run_id}:script-generation",
            video_id=video_id,
            log_type="script-generation",
            model_id=generated["model"],
            input_tokens=generated["input_tokens"],
            output_tokens=generated["output_tokens"],
            cost=generated["cost"],
            created_at=ctx.now(),
        ))
        return generated["cost"]

    def _save_script(self, video_id: str, script: VideoScript) -> None:
        def change(video):
            video.script = script
        update_video(self._content, video_id, change)

    def _policy_check(self, ctx: RunContext, video_id: str, script: VideoScript) -> dict[str, Any]:
        result = self._checker.check(
            video_id, PolicyStage.SCRIPT_LIGHT, script.as_text(),
            cost_entry_id=f"{ctx.run_id}:policy-script-light",
        )
        return {
            "stage_status": result.stage_status.value,
            "overall_status": result.overall_status.value,
            "block_reasons": result.block_reasons,
        }

    async def __call__(self, ctx: RunContext, payload: dict[str, Any]) -> dict[str, Any]:
        video_id = require_video_id(payload)
        video = await ctx.do("fetch-video", lambda: self._fetch_video(video_id), retry=retry.DATABASE)
        await claim_stage(ctx, self._gate, video_id, Stage.SCRIPT)

        try:
            articles = await ctx.do(
                "fetch-article-data", lambda: self._fetch_articles(video["articles"]), retry=retry.DATABASE,
            )
            prompt = build_script_prompt(
                video["video_type"], articles, time_context(ctx.now(), self._config.target_utc_offset_hours),
            )
            generated = await ctx.do("generate-script", lambda: self._generate(prompt), retry=retry.AI_CALL)
            script = VideoScript.model_validate(generated["script"])
            await ctx.do("log-cost", lambda: self._log_cost(ctx, video_id, generated), retry=retry.DATABASE)
            await ctx.do("save-script", lambda: self._save_script(video_id, script), retry=retry.DATABASE)
            policy = await ctx.do(
                "run-script-policy-check", lambda: self._policy_check(ctx, video_id, script), retry=retry.AI_CALL,
            )
            await complete_stage(ctx, self._gate, video_id, Stage.SCRIPT)
        except StepFailedError as exc:
            await fail_stage(ctx, self._gate, video_id, Stage.SCRIPT, exc.message)
            raise

        blocked = policy["overall_status"] == OverallStatus.BLOCK.value
        next_run = None
        if blocked:
            ctx.log.warning(
                "Asset generation held for %s by policy BLOCK", video_id,
                extra={"data": {"block_reasons": policy["block_reasons"]}},
            )
        elif self._config.auto_advance:
            next_run = await ctx.spawn("asset-generation", ProgramName.ASSET_GENERATION, {"video_id": video_id})

        ctx.log.info("Script for %s has %d slide(s)", video_id, len(script.slides))
        return {
            "success": True,
            "video_id": video_id,
            "slide_count": len(script.slides),
            "policy": policy,
            "blocked": blocked,
            "next_run_id": next_run,
        }
