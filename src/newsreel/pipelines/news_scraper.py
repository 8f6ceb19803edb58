"""news_scraper: cache-first acquisition with snapshotting and article fan-out.

Steps, in order:
    check-cache           return the cached list (tagged cached=true) if valid
    refresh               sub-run of news_refresh on a miss
    update-cache          write the fresh list with the configured TTL
    save-snapshot         persist an immutable, timestamp-named snapshot
    cleanup-old-snapshots delete snapshots past the retention window
    find-new-entities     pick ids not yet in the content store
    article-{pick_id}     one article_scraper sub-run per new pick, serially,
                          with a durable pause between items

A failing per-article sub-run is recorded and the loop moves on.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any

from pydantic import ValidationError

from newsreel.core.config import PipelineConfig
from newsreel.core.exceptions import StepFailedError, SubRunFailedError
from newsreel.core.protocols import ICacheBackend, IContentStore
from newsreel.models.content import NewsPayload, Snapshot
from newsreel.orchestration import retry
from newsreel.orchestration.context import RunContext
from newsreel.orchestration.throttle import FanOutThrottle
from newsreel.pipelines.names import ProgramName


class NewsScraperPipeline:
    name = ProgramName.NEWS_SCRAPER

    def __init__(
        self,
        content: IContentStore,
        cache: ICacheBackend,
        config: PipelineConfig,
        throttle: FanOutThrottle | None = None,
    ) -> None:
        self._content = content
        self._cache = cache
        self._config = config
        self._throttle = throttle or FanOutThrottle(
            config.fan_out_delay_seconds, config.fan_out_max_items
        )

    # ---- step bodies ----

    def _read_cache(self, ctx: RunContext) -> dict[str, Any] | None:
        raw = self._cache.get(self._config.cache_key)
        if raw is None:
            return None
        try:
            cached = NewsPayload.model_validate_json(raw)
        except ValidationError:
            ctx.log.warning("Ignoring malformed cache entry %s", self._config.cache_key)
            return None
        return cached.model_dump(mode="json")

    def _write_cache(self, fresh: NewsPayload) -> None:
        self._cache.setex(self._config.cache_key, self._config.cache_ttl_seconds, fresh.model_dump_json())

    def _save_snapshot(self, fresh: NewsPayload) -> str:
        snapshot = Snapshot(
            name=Snapshot.name_for(fresh.scraped_at),
            captured_at=fresh.scraped_at,
            payload=fresh.model_dump(mode="json"),
        )
        self._content.save_snapshot(snapshot)
        return snapshot.name

    def _cleanup_snapshots(self, ctx: RunContext) -> int:
        cutoff = ctx.now() - timedelta(days=self._config.snapshot_retention_days)
        deleted = self._content.delete_snapshots_before(cutoff)
        if deleted:
            ctx.log.info("Deleted %d snapshot(s) older than %s", deleted, cutoff.isoformat())
        return deleted

    def _find_new(self, fresh: NewsPayload) -> list[str]:
        keys = [pick.pick_id for pick in fresh.top_picks if pick.pick_id]
        return self._content.find_missing_article_keys(keys)

    # ---- program ----

    async def __call__(self, ctx: RunContext, payload: dict[str, Any]) -> dict[str, Any]:
        if not payload.get("skip_cache"):
            cached = await ctx.do("check-cache", lambda: self._read_cache(ctx), retry=retry.CACHE)
            if cached is not None:
                ctx.log.info("Cache hit, %d top pick(s)", len(cached["top_picks"]))
                return {"success": True, "cached": True, "data": {**cached, "cached": True}}

        refreshed = await ctx.invoke("refresh", ProgramName.NEWS_REFRESH, {})
        fresh = NewsPayload.model_validate(refreshed)

        await ctx.do("update-cache", lambda: self._write_cache(fresh), retry=retry.CACHE)
        snapshot_name = await ctx.do("save-snapshot", lambda: self._save_snapshot(fresh), retry=retry.DATABASE)
        deleted = await ctx.do("cleanup-old-snapshots", lambda: self._cleanup_snapshots(ctx), retry=retry.DATABASE)
        new_keys = await ctx.do("find-new-entities", lambda: self._find_new(fresh), retry=retry.DATABASE)

        picks = {pick.pick_id: pick for pick in fresh.top_picks if pick.pick_id}
        batch = self._throttle.take(new_keys)
        if len(batch) < len(new_keys):
            ctx.log.info("Fan-out capped at %d of %d new article(s)", len(batch), len(new_keys))

        succeeded: list[str] = []
        failures: list[dict[str, str]] = []
        for index, pick_id in enumerate(batch):
            pick = picks[pick_id]
            try:
                await ctx.invoke(
                    f"article-{pick_id}",
                    ProgramName.ARTICLE_SCRAPER,
                    {"pick_id": pick_id, "title": pick.title, "url": pick.url, "is_rescrape": False},
                )
                succeeded.append(pick_id)
            except (SubRunFailedError, StepFailedError) as exc:
                ctx.log.warning("Article %s failed: %s", pick_id, exc)
                failures.append({"pick_id": pick_id, "error": str(exc)})
            await self._throttle.pause(ctx, index, len(batch), prefix="article-delay")

        ctx.log.info(
            "Fan-out finished",
            extra={"data": {"succeeded": len(succeeded), "failed": len(failures)}},
        )
        return {
            "success": True,
            "cached": False,
            "data": fresh.model_dump(mode="json"),
            "snapshot_name": snapshot_name,
            "deleted_snapshots": deleted,
            "new_articles": len(new_keys),
            "succeeded": len(succeeded),
            "failed": len(failures),
            "failures": failures,
        }
