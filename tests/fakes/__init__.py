"""Shared test doubles: a controllable clock plus the in-memory backends."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

from newsreel.persistence.memory_backend import (
    MemoryCacheBackend,
    MemoryContentStore,
    MemoryObjectStore,
    MemoryRunStore,
)

__all__ = [
    "FakeClock",
    "MemoryCacheBackend",
    "MemoryContentStore",
    "MemoryObjectStore",
    "MemoryRunStore",
]


class FakeClock:
    """Wall clock that only moves when told to. ``sleep`` advances it instantly."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2026, 3, 1, 16, 0, tzinfo=timezone.utc)
        self.sleeps: list[float] = []

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)

    def monotonic(self) -> float:
        return self.current.timestamp()

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(seconds)
        await asyncio.sleep(0)
