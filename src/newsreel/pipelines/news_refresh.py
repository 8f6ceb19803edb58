"""news_refresh: acquire a fresh top-picks list from the browser service."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from newsreel.core.config import BrowserConfig
from newsreel.core.exceptions import PayloadValidationError
from newsreel.core.protocols import IBrowserService
from newsreel.models.content import NewsPayload, TopPick, extract_pick_id
from newsreel.orchestration import retry
from newsreel.orchestration.context import RunContext
from newsreel.pipelines.names import ProgramName


def normalize_top_picks(raw: Any) -> list[TopPick]:
    """Validate raw browser items into top picks, first occurrence of a key wins.

    Items without a title or url are dropped. Raises PayloadValidationError
    when the payload is not a list at all.
    """
    if not isinstance(raw, list):
        raise PayloadValidationError(f"Expected a list of items, got {type(raw).__name__}")

    picks: list[TopPick] = []
    seen: set[str] = set()
    for item in raw:
        if not isinstance(item, dict):
            continue
        title = str(item.get("title") or "").strip()
        url = str(item.get("url") or "").strip()
        if not title or not url:
            continue
        pick_id = extract_pick_id(url)
        if pick_id is not None:
            if pick_id in seen:
                continue
            seen.add(pick_id)
        picks.append(TopPick(
            title=title,
            url=url,
            pick_id=pick_id,
            thumbnail_url=item.get("thumbnail_url") or None,
            published_at=item.get("published_at") or None,
        ))
    return picks


class NewsRefreshPipeline:
    """Always scrapes; caching and snapshots belong to the caller."""

    name = ProgramName.NEWS_REFRESH

    def __init__(self, browser: IBrowserService, config: BrowserConfig) -> None:
        self._browser = browser
        self._config = config

    async def _scrape(self, scraped_at: datetime) -> dict[str, Any]:
        raw = await self._browser.acquire(self._config.top_picks_url, timeout=self._config.timeout_seconds)
        payload = NewsPayload(top_picks=normalize_top_picks(raw), scraped_at=scraped_at)
        return payload.model_dump(mode="json")

    async def __call__(self, ctx: RunContext, payload: dict[str, Any]) -> dict[str, Any]:
        fresh = await ctx.do(
            "scrape-fresh-news",
            lambda: self._scrape(ctx.now()),
            retry=retry.BROWSER,
        )
        ctx.log.info("Scraped %d top pick(s)", len(fresh["top_picks"]))
        return fresh
