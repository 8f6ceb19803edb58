"""video_selection: let the generative service pick the next video's articles.

The video entity is created before the model call, with its selection stage
``in_progress``, so a failing selection leaves a visible ``error`` record
rather than nothing.
"""

from __future__ import annotations

import json
import re
from datetime import timedelta
from typing import Any

from newsreel.core.config import LLMConfig, PipelineConfig
from newsreel.core.exceptions import PayloadValidationError, StepFailedError
from newsreel.core.protocols import IContentStore, IModelProvider
from newsreel.model_providers.pricing import calculate_cost
from newsreel.models.content import Article, CostLogEntry, Stage, StageState, Video
from newsreel.orchestration import retry
from newsreel.orchestration.context import RunContext
from newsreel.pipelines.names import ProgramName

VIDEO_TYPES = ("short", "long")
_FENCE = re.compile(r"```(?:json)?\s*|```")

SELECTION_PROMPT = """You are the editor of a Japanese news video channel.

ARTICLES:
{articles}

Pick the single most important story, or several articles that together tell
one bigger story. Use "short" for breaking or trending news and "long" for
in-depth explanations.

Answer with JSON only:
{{"notes": ["reason", ...], "short_title": "English title, max 50 chars",
  "articles": ["<4-digit index>", ...], "video_type": "short" | "long"}}
"""


def index_articles(articles: list[Article]) -> dict[str, Article]:
    """Assign each article a unique 4-digit index derived from its pick id.

    The first four digits are used, then the last four; when both are taken
    the index counts up from the last four, wrapping at 9999.
    """
    indexed: dict[str, Article] = {}
    for article in articles:
        head = article.pick_id[:4].zfill(4)
        tail = article.pick_id[-4:].zfill(4)
        index = head if head not in indexed else tail
        number = int(tail) if tail.isdigit() else 0
        while index in indexed:
            number = (number + 1) % 10_000
            index = f"{number:04d}"
        indexed[index] = article
    return indexed


def build_selection_prompt(indexed: dict[str, Article]) -> str:
    lines = [
        f"[{index}] {a.title or 'No title'}\n{a.source or 'Unknown source'}"
        for index, a in indexed.items()
    ]
    return SELECTION_PROMPT.format(articles="\n\n".join(lines))


def parse_selection(text: str, indexed: dict[str, Article]) -> dict[str, Any]:
    """Validate the model's answer and map indices back to pick ids.

    Raises:
        PayloadValidationError: unparseable or structurally invalid answer.
    """
    cleaned = _FENCE.sub("", text or "").strip()
    if not cleaned:
        raise PayloadValidationError("Empty selection answer")
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise PayloadValidationError(f"Selection answer is not JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise PayloadValidationError("Selection answer must be a JSON object")

    notes = parsed.get("notes")
    if not isinstance(notes, list) or not all(isinstance(n, str) for n in notes):
        raise PayloadValidationError("'notes' must be a list of strings")
    short_title = parsed.get("short_title")
    if not isinstance(short_title, str) or not short_title.strip():
        raise PayloadValidationError("'short_title' must be a non-empty string")
    video_type = parsed.get("video_type")
    if video_type not in VIDEO_TYPES:
        raise PayloadValidationError(f"'video_type' must be one of {VIDEO_TYPES}")
    indices = parsed.get("articles")
    if not isinstance(indices, list) or not indices:
        raise PayloadValidationError("'articles' must be a non-empty list")

    pick_ids = []
    for index in indices:
        article = indexed.get(str(index).zfill(4))
        if article is None:
            raise PayloadValidationError(f"Invalid article index from model: {index}")
        pick_ids.append(article.pick_id)

    return {
        "notes": notes,
        "short_title": short_title.strip(),
        "articles": pick_ids,
        "video_type": video_type,
    }


class VideoSelectionPipeline:
    name = ProgramName.VIDEO_SELECTION

    def __init__(
        self,
        content: IContentStore,
        provider: IModelProvider,
        llm: LLMConfig,
        config: PipelineConfig,
    ) -> None:
        self._content = content
        self._provider = provider
        self._llm = llm
        self._config = config

    # ---- step bodies ----

    def _fetch_eligible(self, ctx: RunContext) -> list[dict[str, Any]]:
        since = ctx.now() - timedelta(hours=self._config.selection_lookback_hours)
        return [a.model_dump(mode="json") for a in self._content.list_selectable_articles(since)]

    def _create_video(self, ctx: RunContext, video_id: str) -> str:
        video = Video(video_id=video_id, created_at=ctx.now())
        video.statuses.selection = StageState.IN_PROGRESS
        self._content.create_video(video)
        return video_id

    def _select(self, articles: list[Article]) -> dict[str, Any]:
        indexed = index_articles(articles)
        model = self._llm.selection_model
        generation = self._provider.generate(build_selection_prompt(indexed), model)
        selection = parse_selection(generation.content, indexed)
        selection.update(
            model=model,
            input_tokens=generation.token_usage.input_tokens,
            output_tokens=generation.token_usage.output_tokens,
            cost=calculate_cost(generation.token_usage, model),
        )
        return selection

    def _log_cost(self, ctx: RunContext, video_id: str, selection: dict[str, Any]) -> float:
        self._content.append_cost_log(CostLogEntry(
            entry_id=f"{ctx.run_id}:video-selection",
            video_id=video_id,
            log_type="video-selection",
            model_id=selection["model"],
            input_tokens=selection["input_tokens"],
            output_tokens=selection["output_tokens"],
            cost=selection["cost"],
            created_at=ctx.now(),
        ))
        return selection["cost"]

    def _store_selection(self, video_id: str, selection: dict[str, Any]) -> None:
        video = self._content.get_video(video_id)
        if video is None:
            raise PayloadValidationError(f"Video {video_id} vanished before selection was stored")
        video.notes = selection["notes"]
        video.short_title = selection["short_title"]
        video.articles = selection["articles"]
        video.video_type = selection["video_type"]
        video.total_cost = self._content.total_cost(video_id)
        video.statuses.selection = StageState.DONE
        video.errors.pop(Stage.SELECTION, None)
        self._content.update_video(video)

    def _mark_error(self, video_id: str, message: str) -> None:
        video = self._content.get_video(video_id)
        if video is None:
            return
        video.statuses.selection = StageState.ERROR
        video.errors[Stage.SELECTION] = message
        self._content.update_video(video)

    # ---- program ----

    async def __call__(self, ctx: RunContext, payload: dict[str, Any]) -> dict[str, Any]:
        eligible = await ctx.do("fetch-eligible-articles", lambda: self._fetch_eligible(ctx), retry=retry.DATABASE)
        if not eligible:
            ctx.log.info("No eligible articles")
            return {"success": True, "video_id": None, "articles_processed": 0}

        video_id = await ctx.do(
            "create-video-entry",
            lambda: self._create_video(ctx, f"video-{ctx.run_id}"),
            retry=retry.DATABASE,
        )
        articles = [Article.model_validate(a) for a in eligible]
        try:
            selection = await ctx.do("select-articles", lambda: self._select(articles), retry=retry.AI_CALL)
            cost = await ctx.do("log-cost", lambda: self._log_cost(ctx, video_id, selection), retry=retry.DATABASE)
            await ctx.do("update-video-entry", lambda: self._store_selection(video_id, selection), retry=retry.DATABASE)
        except StepFailedError as exc:
            await ctx.do("mark-selection-error", lambda: self._mark_error(video_id, exc.message), retry=retry.DATABASE)
            raise

        ctx.log.info(
            "Selected %d article(s) for %s",
            len(selection["articles"]), video_id,
            extra={"data": {"video_type": selection["video_type"], "cost": cost}},
        )
        return {
            "success": True,
            "video_id": video_id,
            "articles_processed": len(eligible),
            "selected": selection["articles"],
            "cost": cost,
        }
