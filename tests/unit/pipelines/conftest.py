"""Fixtures wiring the real pipelines onto the fake-clock engine."""

from __future__ import annotations

import pytest

from newsreel.core.config import AppSettings
from newsreel.model_providers.mock_provider import MockModelProvider
from newsreel.models.content import AssetKind, StageState, StatusVector, Video, VideoAsset, VideoPolicy
from newsreel.models.policy import OverallStatus
from newsreel.pipelines.registry import register_pipelines
from newsreel.services.browser import MockBrowserService
from newsreel.services.media import MockMediaGenerator, MockVideoRenderer
from newsreel.services.publish_target import MockPublishTarget

PICKUP = "https://news.yahoo.co.jp/pickup/{}"
PICK_IDS = ["6100001", "6100002", "6100003"]


@pytest.fixture
def settings():
    return AppSettings()


@pytest.fixture
def browser(settings):
    browser = MockBrowserService()
    browser.set_items(settings.browser.top_picks_url, [
        {"title": f"Story {pid}", "url": PICKUP.format(pid), "thumbnail_url": f"https://img/{pid}.jpg"}
        for pid in PICK_IDS
    ])
    for pid in PICK_IDS:
        browser.set_items(PICKUP.format(pid), [
            {"title": f"Story {pid}", "content": f"Body of {pid}", "source": "Kyodo",
             "article_url": f"https://news.yahoo.co.jp/articles/{pid}"},
        ])
    return browser


@pytest.fixture
def provider():
    return MockModelProvider()


@pytest.fixture
def media():
    return MockMediaGenerator()


@pytest.fixture
def renderer():
    return MockVideoRenderer()


@pytest.fixture
def publisher():
    return MockPublishTarget()


@pytest.fixture
def collaborators(content, cache, objects, browser, provider, media, renderer, publisher):
    return dict(
        content=content, cache=cache, objects=objects, browser=browser,
        provider=provider, media=media, renderer=renderer, publisher=publisher,
    )


@pytest.fixture
def pipelines(engine, settings, collaborators):
    register_pipelines(engine, settings, **collaborators)
    return engine


SCRIPT = {
    "title": "Typhoon Shanshan makes landfall in Kyushu",
    "description": "Evacuation orders and transport disruption across southern Japan.",
    "thumbnail_description": "Storm clouds over the Kyushu coastline",
    "slides": [
        {"headline": "Landfall", "image_description": "Satellite view of a typhoon",
         "narration": "台風10号が鹿児島県に上陸しました。", "estimated_duration": 12},
        {"headline": "Evacuations", "image_description": "Evacuation shelter in a gym",
         "narration": "九州各地で避難指示が出ています。", "estimated_duration": 14},
    ],
}


def seed_video(content, video_id="v1", *, done=(), overall=OverallStatus.PENDING, reasons=(), **fields):
    """Store a video whose ``done`` stages are finished."""
    fields.setdefault("articles", [PICK_IDS[0]])
    content.create_video(Video(
        video_id=video_id,
        statuses=StatusVector(**{stage.value: StageState.DONE for stage in done}),
        policy=VideoPolicy(overall=overall, block_reasons=list(reasons)),
        **fields,
    ))
    return video_id


def slide_assets(objects, video_id, slides=2):
    """Store a thumbnail plus one image and one narration per slide."""
    assets = [VideoAsset(
        kind=AssetKind.THUMBNAIL_IMAGE, key=f"videos/{video_id}/thumbnail.png",
        url=objects.put(f"videos/{video_id}/thumbnail.png", b"\x89PNGthumb", "image/png"),
        content_type="image/png", size=9,
    )]
    for i in range(slides):
        for kind, ext, content_type in ((AssetKind.SLIDE_IMAGE, "png", "image/png"),
                                        (AssetKind.SLIDE_AUDIO, "wav", "audio/wav")):
            key = f"videos/{video_id}/{kind.value}-{i:02d}.{ext}"
            assets.append(VideoAsset(
                kind=kind, index=i, key=key, url=objects.put(key, b"data", content_type),
                content_type=content_type, size=4,
            ))
    return assets
