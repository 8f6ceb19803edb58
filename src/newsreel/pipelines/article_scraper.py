"""article_scraper: capture one article, then schedule or record its rescrape.

First captures land as ``scraped_v1`` with a rescrape scheduled; the
rescrape (``is_rescrape``) lands as ``scraped_v2``. Articles whose pickup
page yields no content are marked ``not_available``.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any

from newsreel.core.config import BrowserConfig, PipelineConfig
from newsreel.core.exceptions import PayloadValidationError
from newsreel.core.protocols import IBrowserService, IContentStore
from newsreel.models.content import SCRAPED_ARTICLE_STATUSES, Article, ArticleStatus
from newsreel.orchestration import retry
from newsreel.orchestration.context import RunContext
from newsreel.pipelines.names import ProgramName

PICKUP_URL = "https://news.yahoo.co.jp/pickup/{pick_id}"


class ArticleScraperPipeline:
    name = ProgramName.ARTICLE_SCRAPER

    def __init__(
        self,
        content: IContentStore,
        browser: IBrowserService,
        browser_config: BrowserConfig,
        config: PipelineConfig,
    ) -> None:
        self._content = content
        self._browser = browser
        self._browser_config = browser_config
        self._config = config

    def _check_existing(self, pick_id: str) -> dict[str, Any] | None:
        article = self._content.get_article(pick_id)
        return article.model_dump(mode="json") if article else None

    def _register(self, ctx: RunContext, pick_id: str, title: str, url: str) -> bool:
        return self._content.insert_article_if_absent(Article(
            pick_id=pick_id, title=title, url=url, detected_at=ctx.now(),
        ))

    async def _scrape(self, url: str) -> dict[str, Any] | None:
        items = await self._browser.acquire(url, timeout=self._browser_config.timeout_seconds)
        if not isinstance(items, list):
            raise PayloadValidationError(f"Expected a list of items from {url}")
        for item in items:
            if isinstance(item, dict) and str(item.get("content") or "").strip():
                return {
                    "title": item.get("title") or "",
                    "content": item["content"],
                    "article_url": item.get("article_url"),
                    "source": item.get("source"),
                }
        return None

    def _mark_not_available(self, pick_id: str) -> None:
        article = self._content.get_article(pick_id) or Article(pick_id=pick_id)
        article.status = ArticleStatus.NOT_AVAILABLE
        article.scheduled_rescrape_at = None
        self._content.save_article(article)

    def _save(self, ctx: RunContext, pick_id: str, scraped: dict[str, Any], is_rescrape: bool) -> str:
        now = ctx.now()
        article = self._content.get_article(pick_id) or Article(pick_id=pick_id, detected_at=now)
        article.title = scraped["title"] or article.title
        article.content = scraped["content"]
        article.article_url = scraped.get("article_url") or article.article_url
        article.source = scraped.get("source") or article.source
        if is_rescrape:
            article.status = ArticleStatus.SCRAPED_V2
            article.second_scraped_at = now
            article.scheduled_rescrape_at = None
        else:
            article.status = ArticleStatus.SCRAPED_V1
            article.first_scraped_at = now
            article.scheduled_rescrape_at = now + timedelta(minutes=self._config.rescrape_after_minutes)
        self._content.save_article(article)
        return article.status.value

    async def __call__(self, ctx: RunContext, payload: dict[str, Any]) -> dict[str, Any]:
        pick_id = str(payload.get("pick_id") or "")
        if not pick_id:
            raise PayloadValidationError("article_scraper requires a pick_id")
        is_rescrape = bool(payload.get("is_rescrape", False))

        existing = await ctx.do("check-existing", lambda: self._check_existing(pick_id), retry=retry.CACHE)
        if existing is not None and not is_rescrape and existing["status"] in SCRAPED_ARTICLE_STATUSES:
            ctx.log.info("Article %s already %s, skipping", pick_id, existing["status"])
            return {"success": True, "pick_id": pick_id, "status": existing["status"], "skipped": True}

        url = payload.get("url") or (existing or {}).get("url") or PICKUP_URL.format(pick_id=pick_id)
        if existing is None:
            await ctx.do(
                "register-article",
                lambda: self._register(ctx, pick_id, payload.get("title") or "", url),
                retry=retry.DATABASE,
            )

        scraped = await ctx.do("scrape-article", lambda: self._scrape(url), retry=retry.BROWSER)
        if scraped is None:
            await ctx.do("save-not-available", lambda: self._mark_not_available(pick_id), retry=retry.DATABASE)
            ctx.log.info("Article %s has no capturable content", pick_id)
            return {"success": True, "pick_id": pick_id, "status": ArticleStatus.NOT_AVAILABLE.value}

        status = await ctx.do(
            "save-article",
            lambda: self._save(ctx, pick_id, scraped, is_rescrape),
            retry=retry.DATABASE,
        )
        ctx.log.info("Article %s saved as %s", pick_id, status)
        return {"success": True, "pick_id": pick_id, "status": status, "title": scraped["title"]}
