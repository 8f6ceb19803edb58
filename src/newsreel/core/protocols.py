"""Protocol interfaces for all Newsreel abstractions.

All inter-layer communication uses these Protocols: structural typing,
no inheritance required, easy to test with isinstance().
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any, Iterable, Protocol, runtime_checkable

from pydantic import BaseModel

from newsreel.models.content import Article, CostLogEntry, Snapshot, Video
from newsreel.models.policy import PolicyRunRecord
from newsreel.models.run import Run, RunStatus, StepRecord


# ---------------------------------------------------------------------------
# Generative content service
# ---------------------------------------------------------------------------

class TokenUsage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class Generation(BaseModel):
    content: str = ""
    token_usage: TokenUsage = TokenUsage()
    model: str = ""


@runtime_checkable
class IModelProvider(Protocol):
    """Abstraction over generative content services."""

    def generate(self, prompt: str, model: str, **kwargs: Any) -> Generation: ...


# ---------------------------------------------------------------------------
# Media generation and rendering
# ---------------------------------------------------------------------------

class MediaResult(BaseModel):
    data: bytes
    content_type: str
    model: str = ""
    token_usage: TokenUsage = TokenUsage()


@runtime_checkable
class IMediaGenerator(Protocol):
    """Image and speech synthesis. Raises TransientError on retryable failures."""

    def image(self, prompt: str, model: str) -> MediaResult: ...

    def speech(self, text: str, voice: str, model: str) -> MediaResult: ...


class RenderSlide(BaseModel):
    headline: str
    image_url: str
    audio_url: str
    duration: float = 15.0


class RenderRequest(BaseModel):
    video_id: str
    video_type: str
    title: str
    slides: list[RenderSlide]


@runtime_checkable
class IVideoRenderer(Protocol):
    """Turns slide images and narration into one encoded video."""

    def render(self, request: RenderRequest) -> bytes: ...


# ---------------------------------------------------------------------------
# Publish target
# ---------------------------------------------------------------------------

class ProcessingState(StrEnum):
    PROCESSING = "processing"
    PROCESSED = "processed"
    REJECTED = "rejected"
    FAILED = "failed"

    @property
    def is_final(self) -> bool:
        return self is not ProcessingState.PROCESSING


class PublishReceipt(BaseModel):
    external_id: str
    url: str


@runtime_checkable
class IPublishTarget(Protocol):
    """Video hosting provider that processes uploads asynchronously."""

    def upload(self, data: bytes, *, title: str, description: str, privacy: str) -> PublishReceipt: ...

    def processing_state(self, external_id: str) -> ProcessingState: ...

    def set_thumbnail(self, external_id: str, data: bytes) -> None: ...


# ---------------------------------------------------------------------------
# Browser automation service
# ---------------------------------------------------------------------------

@runtime_checkable
class IBrowserService(Protocol):
    """Timeout-bounded page acquisition. Raises TransientError on timeout."""

    async def acquire(self, target: str, *, timeout: float) -> list[dict[str, Any]]: ...


# ---------------------------------------------------------------------------
# Persistence: Cache Backend
# ---------------------------------------------------------------------------

@runtime_checkable
class ICacheBackend(Protocol):
    """Redis-compatible cache interface."""

    def get(self, key: str) -> str | None: ...

    def setex(self, key: str, ttl: int, value: str) -> None: ...

    def delete(self, key: str) -> None: ...

    def ping(self) -> bool: ...


# ---------------------------------------------------------------------------
# Persistence: Object Storage
# ---------------------------------------------------------------------------

@runtime_checkable
class IObjectStore(Protocol):
    """S3-compatible object storage interface."""

    def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> str: ...

    def read(self, key: str) -> bytes: ...

    def delete(self, key: str) -> None: ...


# ---------------------------------------------------------------------------
# Persistence: Run Store
# ---------------------------------------------------------------------------

@runtime_checkable
class IRunStore(Protocol):
    """Durable run records and their append-only step logs."""

    def insert_run(self, run: Run) -> bool: ...

    def get_run(self, run_id: str) -> Run | None: ...

    def save_step(self, run_id: str, record: StepRecord) -> None: ...

    def set_status(self, run_id: str, status: RunStatus) -> None: ...

    def finish_run(
        self,
        run_id: str,
        status: RunStatus,
        output: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> bool: ...

    def list_runs(self, statuses: Iterable[RunStatus]) -> list[Run]: ...


# ---------------------------------------------------------------------------
# Persistence: Content Store
# ---------------------------------------------------------------------------

@runtime_checkable
class IContentStore(Protocol):
    """Durable store for articles, snapshots, videos, and their ledgers."""

    def get_article(self, pick_id: str) -> Article | None: ...

    def insert_article_if_absent(self, article: Article) -> bool: ...

    def save_article(self, article: Article) -> None: ...

    def find_missing_article_keys(self, pick_ids: list[str]) -> list[str]: ...

    def list_articles_due_for_rescrape(self, now: datetime, limit: int) -> list[Article]: ...

    def list_selectable_articles(self, since: datetime) -> list[Article]: ...

    def save_snapshot(self, snapshot: Snapshot) -> None: ...

    def latest_snapshot(self) -> Snapshot | None: ...

    def delete_snapshots_before(self, cutoff: datetime) -> int: ...

    def create_video(self, video: Video) -> bool: ...

    def get_video(self, video_id: str) -> Video | None: ...

    def update_video(self, video: Video) -> Video: ...

    def append_cost_log(self, entry: CostLogEntry) -> None: ...

    def total_cost(self, video_id: str) -> float: ...

    def save_policy_run(self, record: PolicyRunRecord) -> None: ...

    def cost_logs(self, video_id: str) -> list[CostLogEntry]: ...

    def policy_runs(self, video_id: str) -> list[PolicyRunRecord]: ...
