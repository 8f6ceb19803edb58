"""Unit tests for the cache-first news_scraper pipeline and news_refresh."""

from __future__ import annotations

from datetime import timedelta

import pytest

from newsreel.core.config import AppSettings, PipelineConfig
from newsreel.core.exceptions import PayloadValidationError
from newsreel.models.content import Snapshot
from newsreel.models.run import RunStatus
from newsreel.pipelines.names import ProgramName
from newsreel.pipelines.news_refresh import normalize_top_picks
from newsreel.pipelines.registry import register_pipelines

from tests.unit.pipelines.conftest import PICK_IDS, PICKUP


async def scrape(engine, **payload):
    run_id = await engine.create_run(ProgramName.NEWS_SCRAPER, payload)
    return await engine.wait(run_id)


def refresh_runs(run_store):
    return [r for r in run_store.list_runs(list(RunStatus)) if r.program == ProgramName.NEWS_REFRESH]


class TestNormalizeTopPicks:
    def test_extracts_pick_id_and_drops_incomplete_items(self):
        picks = normalize_top_picks([
            {"title": "A", "url": PICKUP.format("123")},
            {"title": "", "url": PICKUP.format("456")},
            {"title": "C"},
            "junk",
        ])
        assert [p.pick_id for p in picks] == ["123"]

    def test_first_occurrence_of_a_key_wins(self):
        picks = normalize_top_picks([
            {"title": "first", "url": PICKUP.format("1")},
            {"title": "second", "url": PICKUP.format("1")},
        ])
        assert [p.title for p in picks] == ["first"]

    def test_non_list_payload_is_a_validation_error(self):
        with pytest.raises(PayloadValidationError):
            normalize_top_picks({"items": []})


class TestCacheFirst:
    @pytest.mark.asyncio
    async def test_second_acquisition_within_ttl_is_served_from_cache(self, pipelines, run_store, browser, settings):
        first = await scrape(pipelines)
        second = await scrape(pipelines)

        assert first.status is RunStatus.COMPLETE
        assert first.output["cached"] is False
        assert second.output["cached"] is True
        assert second.output["data"]["cached"] is True
        assert len(refresh_runs(run_store)) == 1
        assert browser.calls.count(settings.browser.top_picks_url) == 1

    @pytest.mark.asyncio
    async def test_expired_cache_triggers_refresh(self, pipelines, run_store, clock, settings):
        await scrape(pipelines)
        clock.advance(settings.pipeline.cache_ttl_seconds + 1)
        again = await scrape(pipelines)

        assert again.output["cached"] is False
        assert len(refresh_runs(run_store)) == 2

    @pytest.mark.asyncio
    async def test_skip_cache_always_refreshes(self, pipelines, run_store):
        await scrape(pipelines)
        forced = await scrape(pipelines, skip_cache=True)

        assert forced.output["cached"] is False
        assert forced.completed_step("check-cache") is None
        assert len(refresh_runs(run_store)) == 2

    @pytest.mark.asyncio
    async def test_malformed_cache_entry_is_a_miss(self, pipelines, cache, settings):
        cache.setex(settings.pipeline.cache_key, 600, '{"top_picks": "nope"}')
        run = await scrape(pipelines)
        assert run.output["cached"] is False


class TestSnapshots:
    @pytest.mark.asyncio
    async def test_fresh_acquisition_saves_named_snapshot(self, pipelines, content, clock):
        started = clock()
        run = await scrape(pipelines)

        snapshot = content.latest_snapshot()
        assert snapshot is not None
        assert run.output["snapshot_name"] == snapshot.name
        assert snapshot.name.startswith("article-snapshot-")
        assert snapshot.captured_at >= started

    @pytest.mark.asyncio
    async def test_snapshots_past_retention_are_deleted(self, pipelines, content, clock):
        old_at = clock() - timedelta(days=31)
        content.save_snapshot(Snapshot(name=Snapshot.name_for(old_at), captured_at=old_at, payload={}))

        run = await scrape(pipelines)

        assert run.output["deleted_snapshots"] == 1


class TestFanOut:
    @pytest.mark.asyncio
    async def test_new_articles_are_scraped_serially_with_delay(self, pipelines, content, clock, settings):
        run = await scrape(pipelines)

        assert run.output["new_articles"] == 3
        assert run.output["succeeded"] == 3
        assert run.output["failed"] == 0
        for pid in PICK_IDS:
            assert content.get_article(pid).status == "scraped_v1"
        delay = settings.pipeline.fan_out_delay_seconds
        assert clock.sleeps.count(delay) == 2

    @pytest.mark.asyncio
    async def test_known_articles_are_not_fanned_out_again(self, pipelines):
        await scrape(pipelines)
        again = await scrape(pipelines, skip_cache=True)
        assert again.output["new_articles"] == 0
        assert again.output["succeeded"] == 0

    @pytest.mark.asyncio
    async def test_one_failing_article_does_not_abort_the_batch(self, pipelines):
        seen = []

        async def flaky_article(ctx, payload):
            seen.append(payload["pick_id"])
            if payload["pick_id"] == PICK_IDS[1]:
                raise PayloadValidationError("layout changed")
            return {"status": "scraped_v1"}

        pipelines.register(ProgramName.ARTICLE_SCRAPER, flaky_article)
        run = await scrape(pipelines)

        assert run.status is RunStatus.COMPLETE
        assert run.output["succeeded"] == 2
        assert run.output["failed"] == 1
        assert run.output["failures"][0]["pick_id"] == PICK_IDS[1]
        assert "layout changed" in run.output["failures"][0]["error"]
        assert seen == PICK_IDS

    @pytest.mark.asyncio
    async def test_item_budget_caps_fan_out(self, engine, collaborators):
        capped = AppSettings(pipeline=PipelineConfig(fan_out_max_items=1))
        register_pipelines(engine, capped, **collaborators)
        run = await scrape(engine)

        assert run.output["new_articles"] == 3
        assert run.output["succeeded"] == 1


class TestRefreshFailure:
    @pytest.mark.asyncio
    async def test_refresh_failure_fails_the_run(self, pipelines, browser, settings):
        browser.fail_next(settings.browser.top_picks_url, times=5)
        run = await scrape(pipelines)

        assert run.status is RunStatus.FAILED
        assert "Timed out" in run.error
