"""article_rescrape: start the second capture of articles whose rescrape is due."""

from __future__ import annotations

from typing import Any

from newsreel.core.config import PipelineConfig
from newsreel.core.exceptions import StepFailedError
from newsreel.core.protocols import IContentStore
from newsreel.orchestration import retry
from newsreel.orchestration.context import RunContext
from newsreel.pipelines.names import ProgramName


class ArticleRescrapePipeline:
    name = ProgramName.ARTICLE_RESCRAPE

    def __init__(self, content: IContentStore, config: PipelineConfig) -> None:
        self._content = content
        self._config = config

    def _find_due(self, ctx: RunContext) -> list[str]:
        due = self._content.list_articles_due_for_rescrape(ctx.now(), self._config.rescrape_batch_limit)
        return [article.pick_id for article in due]

    async def __call__(self, ctx: RunContext, payload: dict[str, Any]) -> dict[str, Any]:
        due = await ctx.do("find-due-articles", lambda: self._find_due(ctx), retry=retry.DATABASE)
        if not due:
            ctx.log.info("No articles due for rescrape")
            return {"success": True, "triggered_count": 0, "pick_ids": [], "failures": []}

        triggered: list[str] = []
        failures: list[dict[str, str]] = []
        for pick_id in due:
            try:
                await ctx.spawn(
                    f"rescrape-{pick_id}",
                    ProgramName.ARTICLE_SCRAPER,
                    {"pick_id": pick_id, "is_rescrape": True},
                )
                triggered.append(pick_id)
            except StepFailedError as exc:
                ctx.log.warning("Could not start rescrape of %s: %s", pick_id, exc)
                failures.append({"pick_id": pick_id, "error": str(exc)})

        ctx.log.info("Triggered %d rescrape(s)", len(triggered))
        return {
            "success": True,
            "triggered_count": len(triggered),
            "pick_ids": triggered,
            "failures": failures,
        }
