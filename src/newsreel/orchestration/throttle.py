"""Serial fan-out pacing for calls into rate-limited external services."""

from __future__ import annotations

from typing import Sequence, TypeVar

from newsreel.orchestration.context import RunContext

T = TypeVar("T")


class FanOutThrottle:
    """Caps how many items a fan-out handles and spaces them out durably.

    Pauses are ``RunContext.sleep`` steps, so a resumed run waits only the
    time still owed and never re-waits for items it already finished.
    """

    def __init__(self, interval_seconds: float, max_items: int | None = None) -> None:
        if interval_seconds < 0:
            raise ValueError("interval_seconds must be >= 0")
        if max_items is not None and max_items < 0:
            raise ValueError("max_items must be >= 0")
        self.interval_seconds = interval_seconds
        self.max_items = max_items

    def take(self, items: Sequence[T]) -> list[T]:
        if self.max_items is None:
            return list(items)
        return list(items[: self.max_items])

    async def pause(self, ctx: RunContext, index: int, total: int, *,
                    prefix: str = "throttle") -> None:
        """Wait between item ``index`` and the next one. No wait after the last."""
        if index >= total - 1 or self.interval_seconds == 0:
            return
        await ctx.sleep(f"{prefix}-{index}", self.interval_seconds)
