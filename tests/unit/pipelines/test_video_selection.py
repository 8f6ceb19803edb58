"""Unit tests for video_selection and its answer parsing."""

from __future__ import annotations

import json
from datetime import timedelta

import pytest

from newsreel.core.exceptions import PayloadValidationError
from newsreel.models.content import Article, ArticleStatus, Stage, StageState
from newsreel.models.run import RunStatus
from newsreel.pipelines.names import ProgramName
from newsreel.pipelines.video_selection import build_selection_prompt, index_articles, parse_selection


def article(pick_id, **kwargs):
    return Article(pick_id=pick_id, title=f"Title {pick_id}", source="NHK", **kwargs)


def answer(**overrides):
    body = {"notes": ["breaking"], "short_title": "Typhoon hits Kyushu", "articles": ["6101"], "video_type": "short"}
    body.update(overrides)
    return json.dumps(body)


@pytest.fixture
def seeded(content, clock):
    for pick_id in ("6101234", "6105678"):
        content.save_article(article(
            pick_id, status=ArticleStatus.SCRAPED_V2, content="body",
            second_scraped_at=clock() - timedelta(hours=1),
        ))
    return content


async def select(engine, run_id="sel-1"):
    await engine.create_run(ProgramName.VIDEO_SELECTION, {}, run_id=run_id)
    return await engine.wait(run_id)


class TestIndexArticles:
    def test_uses_leading_digits_then_trailing_on_collision(self):
        indexed = index_articles([article("12345678"), article("12349999"), article("99995678")])
        assert {k: a.pick_id for k, a in indexed.items()} == {
            "1234": "12345678",
            "9999": "12349999",
            "5678": "99995678",
        }

    def test_indices_stay_unique_when_both_ends_collide(self):
        indexed = index_articles([article("12340000"), article("00001234"), article("12341234")])
        assert list(indexed) == ["1234", "0000", "1235"]

    def test_indices_are_always_four_digits(self):
        picks = [article("5550") for _ in range(12)] + [article("77"), article("9999"), article("99999")]
        indexed = index_articles(picks)
        assert len(indexed) == len(picks)
        assert all(len(index) == 4 and index.isdigit() for index in indexed)
        assert "0077" in indexed
        assert "0000" in indexed

    def test_prompt_lists_every_index(self):
        prompt = build_selection_prompt(index_articles([article("12345678")]))
        assert "[1234] Title 12345678" in prompt
        assert "ARTICLES:" in prompt


class TestParseSelection:
    indexed = {"6101": article("6101234")}

    def test_maps_indices_back_to_pick_ids(self):
        parsed = parse_selection(answer(), self.indexed)
        assert parsed["articles"] == ["6101234"]
        assert parsed["video_type"] == "short"

    def test_strips_code_fences(self):
        parsed = parse_selection(f"```json\n{answer()}\n```", self.indexed)
        assert parsed["short_title"] == "Typhoon hits Kyushu"

    @pytest.mark.parametrize("text", [
        "",
        "not json",
        "[1, 2]",
        answer(video_type="medium"),
        answer(articles=[]),
        answer(articles=["9999"]),
        answer(short_title=" "),
        answer(notes="one note"),
    ])
    def test_invalid_answers_are_rejected(self, text):
        with pytest.raises(PayloadValidationError):
            parse_selection(text, self.indexed)


class TestVideoSelection:
    @pytest.mark.asyncio
    async def test_selection_creates_video_and_logs_cost(self, pipelines, seeded, provider):
        provider.set_response("ARTICLES:", answer())
        run = await select(pipelines)

        assert run.status is RunStatus.COMPLETE
        video = seeded.get_video("video-sel-1")
        assert video.statuses.selection is StageState.DONE
        assert video.articles == ["6101234"]
        assert video.short_title == "Typhoon hits Kyushu"
        logs = seeded.cost_logs("video-sel-1")
        assert [entry.log_type for entry in logs] == ["video-selection"]
        assert video.total_cost == pytest.approx(logs[0].cost)
        assert video.total_cost > 0

    @pytest.mark.asyncio
    async def test_used_articles_are_not_offered_again(self, pipelines, seeded, provider):
        provider.set_response("ARTICLES:", answer())
        await select(pipelines, "sel-1")
        await select(pipelines, "sel-2")

        assert "6101234" not in provider.prompts[1]
        assert "[6105]" in provider.prompts[1]

    @pytest.mark.asyncio
    async def test_invalid_answer_marks_selection_error_without_retry(self, pipelines, seeded, provider):
        provider.set_response("ARTICLES:", "not json at all")
        run = await select(pipelines)

        assert run.status is RunStatus.FAILED
        assert len(provider.prompts) == 1
        video = seeded.get_video("video-sel-1")
        assert video.statuses.selection is StageState.ERROR
        assert "not JSON" in video.errors[Stage.SELECTION]
        assert seeded.cost_logs("video-sel-1") == []

    @pytest.mark.asyncio
    async def test_no_eligible_articles_creates_nothing(self, pipelines, content, provider):
        run = await select(pipelines)

        assert run.output == {"success": True, "video_id": None, "articles_processed": 0}
        assert content.get_video("video-sel-1") is None
        assert provider.prompts == []

    @pytest.mark.asyncio
    async def test_stale_articles_are_outside_the_lookback(self, pipelines, content, clock, provider):
        content.save_article(article(
            "6101234", status=ArticleStatus.SCRAPED_V2,
            second_scraped_at=clock() - timedelta(hours=25),
        ))
        run = await select(pipelines)
        assert run.output["video_id"] is None
