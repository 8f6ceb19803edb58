"""Article, snapshot, and video entity models."""

from __future__ import annotations

import re
from datetime import datetime
from enum import StrEnum
from typing import Any, Optional

from pydantic import BaseModel, Field

from newsreel.models.policy import OverallStatus, PolicyStage, StageStatus

PICKUP_ID_PATTERN = re.compile(r"/pickup/(\d+)")


def extract_pick_id(url: str) -> str | None:
    """Natural key of a top pick, taken from its pickup URL."""
    match = PICKUP_ID_PATTERN.search(url or "")
    return match.group(1) if match else None


class ArticleStatus(StrEnum):
    PENDING = "pending"
    NOT_AVAILABLE = "not_available"
    ERROR = "error"
    SCRAPED_V1 = "scraped_v1"
    SCRAPED_V2 = "scraped_v2"


SCRAPED_ARTICLE_STATUSES = frozenset({ArticleStatus.SCRAPED_V1, ArticleStatus.SCRAPED_V2})


class TopPick(BaseModel):
    """One entry of the acquired top-picks list."""

    title: str
    url: str
    pick_id: Optional[str] = None
    thumbnail_url: Optional[str] = None
    published_at: Optional[str] = None


class NewsPayload(BaseModel):
    """A captured top-picks data set, as cached and snapshotted."""

    top_picks: list[TopPick] = Field(default_factory=list)
    scraped_at: datetime
    cached: bool = False


class Snapshot(BaseModel):
    """Immutable capture of a fresh acquisition."""

    name: str
    captured_at: datetime
    payload: dict[str, Any]

    @staticmethod
    def name_for(captured_at: datetime) -> str:
        return captured_at.strftime("article-snapshot-%Y-%m-%d-%H-%M-%S")


class Article(BaseModel):
    """A news article keyed by its pick id."""

    pick_id: str
    status: ArticleStatus = ArticleStatus.PENDING
    title: str = ""
    url: str = ""
    article_url: Optional[str] = None
    source: Optional[str] = None
    content: Optional[str] = None
    detected_at: Optional[datetime] = None
    first_scraped_at: Optional[datetime] = None
    second_scraped_at: Optional[datetime] = None
    scheduled_rescrape_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Stage(StrEnum):
    SELECTION = "selection"
    SCRIPT = "script"
    ASSET = "asset"
    RENDER = "render"
    PUBLISH = "publish"


class StageState(StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    PROCESSING = "processing"  # publish only: provider-side processing
    BLOCKED = "blocked"  # publish only: held by policy
    DONE = "done"
    ERROR = "error"


class StatusVector(BaseModel):
    """One status per pipeline stage."""

    selection: StageState = StageState.PENDING
    script: StageState = StageState.PENDING
    asset: StageState = StageState.PENDING
    render: StageState = StageState.PENDING
    publish: StageState = StageState.PENDING

    def of(self, stage: Stage) -> StageState:
        return getattr(self, stage.value)


class ScriptSlide(BaseModel):
    headline: str
    narration: str
    image_description: str = ""
    estimated_duration: float = 15.0


class VideoScript(BaseModel):
    """Generated script: publish metadata plus one entry per slide."""

    title: str
    description: str = ""
    thumbnail_description: str = ""
    slides: list[ScriptSlide] = Field(min_length=1)

    def as_text(self) -> str:
        """Plain-text rendition handed to the script policy check."""
        lines = [f"TITLE: {self.title}", f"DESCRIPTION: {self.description}"]
        for i, slide in enumerate(self.slides, start=1):
            lines += ["", f"SLIDE {i}: {slide.headline}", slide.narration]
        return "\n".join(lines)


class AssetKind(StrEnum):
    THUMBNAIL_IMAGE = "thumbnail_image"
    SLIDE_IMAGE = "slide_image"
    SLIDE_AUDIO = "slide_audio"
    RENDERED_VIDEO = "rendered_video"


class VideoAsset(BaseModel):
    """A generated file in object storage."""

    kind: AssetKind
    index: int = 0
    key: str
    url: str
    content_type: str
    size: int = 0


class Publication(BaseModel):
    """Where and how a video was published."""

    external_id: str
    url: str
    privacy: str
    published_at: Optional[datetime] = None


class VideoPolicy(BaseModel):
    """Accumulated policy state of a video."""

    stages: dict[PolicyStage, StageStatus] = Field(default_factory=dict)
    overall: OverallStatus = OverallStatus.PENDING
    summary: str = ""
    block_reasons: list[str] = Field(default_factory=list)
    last_checked_at: Optional[datetime] = None


class Video(BaseModel):
    """A video entity moving through the stage pipeline."""

    video_id: str
    short_title: str = ""
    video_type: str = "short"
    notes: list[str] = Field(default_factory=list)
    articles: list[str] = Field(default_factory=list)
    statuses: StatusVector = Field(default_factory=StatusVector)
    errors: dict[Stage, str] = Field(default_factory=dict)
    policy: VideoPolicy = Field(default_factory=VideoPolicy)
    script: Optional[VideoScript] = None
    tts_voice: Optional[str] = None
    assets: list[VideoAsset] = Field(default_factory=list)
    publication: Optional[Publication] = None
    total_cost: float = 0.0
    version: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def assets_of(self, kind: AssetKind) -> list[VideoAsset]:
        return sorted((a for a in self.assets if a.kind is kind), key=lambda a: a.index)


class CostLogEntry(BaseModel):
    """Token usage and cost of one generative call."""

    entry_id: Optional[str] = None  # repeated writes with the same id replace each other
    video_id: str
    log_type: str
    model_id: str
    input_tokens: int = 0
    output_tokens: int = 0
    cost: float = 0.0
    created_at: Optional[datetime] = None
