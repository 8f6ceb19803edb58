"""Fixtures shared by unit tests: fake clock, memory backends, wired engine."""

from __future__ import annotations

import pytest

from newsreel.orchestration.engine import WorkflowEngine
from tests.fakes import FakeClock, MemoryCacheBackend, MemoryContentStore, MemoryObjectStore, MemoryRunStore


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def run_store():
    return MemoryRunStore()


@pytest.fixture
def content():
    return MemoryContentStore()


@pytest.fixture
def cache(clock):
    return MemoryCacheBackend(clock=clock.monotonic)


@pytest.fixture
def objects():
    return MemoryObjectStore()


@pytest.fixture
def engine(run_store, clock):
    return WorkflowEngine(run_store, clock=clock, sleep=clock.sleep, poll_interval_seconds=1.0)
