"""Unit tests for the in-memory backends."""

from __future__ import annotations

import pytest

from newsreel.core.exceptions import ConcurrentUpdateError, RunNotFoundError, StorageError
from newsreel.core.protocols import ICacheBackend, IContentStore, IObjectStore, IRunStore
from newsreel.models.content import Video
from newsreel.models.run import Run, RunStatus, StepRecord
from tests.fakes import FakeClock, MemoryCacheBackend, MemoryContentStore, MemoryObjectStore, MemoryRunStore


class TestProtocols:
    def test_memory_backends_satisfy_protocols(self):
        assert isinstance(MemoryCacheBackend(), ICacheBackend)
        assert isinstance(MemoryObjectStore(), IObjectStore)
        assert isinstance(MemoryRunStore(), IRunStore)
        assert isinstance(MemoryContentStore(), IContentStore)


class TestCache:
    def test_entries_expire_after_ttl(self):
        clock = FakeClock()
        cache = MemoryCacheBackend(clock=clock.monotonic)
        cache.setex("k", 60, "v")

        clock.advance(59)
        assert cache.get("k") == "v"
        clock.advance(1)
        assert cache.get("k") is None


class TestObjects:
    def test_put_returns_url_and_missing_read_raises(self):
        objects = MemoryObjectStore(public_base_url="memory://assets/")
        assert objects.put("a/b.txt", b"x") == "memory://assets/a/b.txt"
        with pytest.raises(StorageError):
            objects.read("missing")


class TestRuns:
    def test_results_survive_a_json_round_trip(self):
        store = MemoryRunStore()
        store.insert_run(Run(run_id="r1", program="p"))
        store.save_step("r1", StepRecord(name="s", result=(1, 2)))
        assert store.get_run("r1").steps[0].result == [1, 2]

    def test_unknown_run(self):
        with pytest.raises(RunNotFoundError):
            MemoryRunStore().set_status("ghost", RunStatus.RUNNING)


class TestVideos:
    def test_stale_version_loses(self):
        store = MemoryContentStore()
        store.create_video(Video(video_id="v1"))
        stale = store.get_video("v1")
        store.update_video(store.get_video("v1"))
        with pytest.raises(ConcurrentUpdateError):
            store.update_video(stale)
