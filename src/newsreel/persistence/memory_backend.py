"""In-memory backends for unit tests and local development: dict-backed fakes."""

from __future__ import annotations

import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Iterable

from newsreel.core.exceptions import ConcurrentUpdateError, RunNotFoundError, StorageError
from newsreel.models.content import Article, ArticleStatus, CostLogEntry, Snapshot, Video
from newsreel.models.policy import PolicyRunRecord
from newsreel.models.run import Run, RunStatus, StepRecord


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MemoryCacheBackend:
    """Dict-backed ICacheBackend that honors TTLs against an injectable clock."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._store: dict[str, tuple[str, float]] = {}

    def get(self, key: str) -> str | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._store[key]
            return None
        return value

    def setex(self, key: str, ttl: int, value: str) -> None:
        self._store[key] = (value, self._clock() + ttl)

    def delete(self, key: str) -> None:
        self._store.pop(key, None)

    def ping(self) -> bool:
        return True


class MemoryObjectStore:
    """Dict-backed IObjectStore."""

    def __init__(self, public_base_url: str = "memory://assets") -> None:
        self._public_base_url = public_base_url.rstrip("/")
        self._objects: dict[str, tuple[bytes, str]] = {}

    def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        self._objects[key] = (data, content_type)
        return f"{self._public_base_url}/{key}"

    def read(self, key: str) -> bytes:
        try:
            return self._objects[key][0]
        except KeyError as exc:
            raise StorageError(f"Object {key!r} not found") from exc

    def delete(self, key: str) -> None:
        self._objects.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._objects)


class MemoryRunStore:
    """Dict-backed IRunStore.

    Runs are stored as JSON documents so every step result must survive the
    same round trip a durable backend would put it through.
    """

    def __init__(self) -> None:
        self._runs: dict[str, str] = {}
        self._lock = threading.Lock()

    def _load(self, run_id: str) -> Run:
        raw = self._runs.get(run_id)
        if raw is None:
            raise RunNotFoundError(f"Run {run_id!r} not found")
        return Run.model_validate_json(raw)

    def _dump(self, run: Run) -> None:
        run.updated_at = _utcnow()
        self._runs[run.run_id] = run.model_dump_json()

    def insert_run(self, run: Run) -> bool:
        with self._lock:
            if run.run_id in self._runs:
                return False
            run.created_at = run.created_at or _utcnow()
            self._dump(run)
            return True

    def get_run(self, run_id: str) -> Run | None:
        raw = self._runs.get(run_id)
        return Run.model_validate_json(raw) if raw is not None else None

    def save_step(self, run_id: str, record: StepRecord) -> None:
        with self._lock:
            run = self._load(run_id)
            for i, existing in enumerate(run.steps):
                if existing.name == record.name:
                    run.steps[i] = record
                    break
            else:
                run.steps.append(record)
            self._dump(run)

    def set_status(self, run_id: str, status: RunStatus) -> None:
        with self._lock:
            run = self._load(run_id)
            run.status = status
            self._dump(run)

    def finish_run(
        self,
        run_id: str,
        status: RunStatus,
        output: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> bool:
        with self._lock:
            run = self._load(run_id)
            if run.status is RunStatus.TERMINATED:
                return False
            run.status = status
            run.output = output
            run.error = error
            self._dump(run)
            return True

    def list_runs(self, statuses: Iterable[RunStatus]) -> list[Run]:
        wanted = set(statuses)
        runs = [Run.model_validate_json(raw) for raw in self._runs.values()]
        return [r for r in runs if r.status in wanted]


class MemoryContentStore:
    """Dict-backed IContentStore."""

    def __init__(self) -> None:
        self._articles: dict[str, Article] = {}
        self._snapshots: dict[str, Snapshot] = {}
        self._videos: dict[str, Video] = {}
        self._cost_logs: list[CostLogEntry] = []
        self._policy_runs: list[PolicyRunRecord] = []
        self._lock = threading.Lock()

    # ---- articles ----

    def get_article(self, pick_id: str) -> Article | None:
        article = self._articles.get(pick_id)
        return article.model_copy(deep=True) if article else None

    def insert_article_if_absent(self, article: Article) -> bool:
        with self._lock:
            if article.pick_id in self._articles:
                return False
            self._articles[article.pick_id] = article.model_copy(deep=True)
            return True

    def save_article(self, article: Article) -> None:
        article.updated_at = _utcnow()
        self._articles[article.pick_id] = article.model_copy(deep=True)

    def find_missing_article_keys(self, pick_ids: list[str]) -> list[str]:
        return [pid for pid in pick_ids if pid not in self._articles]

    def list_articles_due_for_rescrape(self, now: datetime, limit: int) -> list[Article]:
        due = [
            a for a in self._articles.values()
            if a.status is ArticleStatus.SCRAPED_V1
            and a.scheduled_rescrape_at is not None
            and a.scheduled_rescrape_at <= now
        ]
        due.sort(key=lambda a: a.scheduled_rescrape_at)
        return [a.model_copy(deep=True) for a in due[:limit]]

    def list_selectable_articles(self, since: datetime) -> list[Article]:
        used = {pid for v in self._videos.values() for pid in v.articles}
        eligible = [
            a for a in self._articles.values()
            if a.status is ArticleStatus.SCRAPED_V2
            and a.second_scraped_at is not None
            and a.second_scraped_at >= since
            and a.pick_id not in used
        ]
        eligible.sort(key=lambda a: a.second_scraped_at, reverse=True)
        return [a.model_copy(deep=True) for a in eligible]

    # ---- snapshots ----

    def save_snapshot(self, snapshot: Snapshot) -> None:
        self._snapshots.setdefault(snapshot.name, snapshot.model_copy(deep=True))

    def latest_snapshot(self) -> Snapshot | None:
        if not self._snapshots:
            return None
        return max(self._snapshots.values(), key=lambda s: s.captured_at).model_copy(deep=True)

    def delete_snapshots_before(self, cutoff: datetime) -> int:
        with self._lock:
            stale = [name for name, s in self._snapshots.items() if s.captured_at < cutoff]
            for name in stale:
                del self._snapshots[name]
            return len(stale)

    # ---- videos ----

    def create_video(self, video: Video) -> bool:
        with self._lock:
            if video.video_id in self._videos:
                return False
            now = _utcnow()
            video.created_at = video.created_at or now
            video.updated_at = now
            self._videos[video.video_id] = video.model_copy(deep=True)
            return True

    def get_video(self, video_id: str) -> Video | None:
        video = self._videos.get(video_id)
        return video.model_copy(deep=True) if video else None

    def update_video(self, video: Video) -> Video:
        with self._lock:
            current = self._videos.get(video.video_id)
            if current is None or current.version != video.version:
                raise ConcurrentUpdateError(
                    f"Video {video.video_id} changed since version {video.version}"
                )
            updated = video.model_copy(deep=True)
            updated.version += 1
            updated.updated_at = _utcnow()
            self._videos[video.video_id] = updated
            return updated.model_copy(deep=True)

    # ---- ledgers ----

    def append_cost_log(self, entry: CostLogEntry) -> None:
        entry.created_at = entry.created_at or _utcnow()
        with self._lock:
            if entry.entry_id is not None:
                self._cost_logs = [e for e in self._cost_logs if e.entry_id != entry.entry_id]
            self._cost_logs.append(entry.model_copy())

    def total_cost(self, video_id: str) -> float:
        return sum(e.cost for e in self._cost_logs if e.video_id == video_id)

    def cost_logs(self, video_id: str) -> list[CostLogEntry]:
        return [e for e in self._cost_logs if e.video_id == video_id]

    def save_policy_run(self, record: PolicyRunRecord) -> None:
        record.created_at = record.created_at or _utcnow()
        self._policy_runs.append(record.model_copy(deep=True))

    def policy_runs(self, video_id: str) -> list[PolicyRunRecord]:
        return [r for r in self._policy_runs if r.video_id == video_id]
