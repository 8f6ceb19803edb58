"""Browser acquisition adapters.

Real page automation is an external collaborator; the mock serves canned
items per target so the pipelines run end to end in development.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any

from newsreel.core.exceptions import TransientError
from newsreel.core.logging import get_logger


class MockBrowserService:
    """IBrowserService returning canned items per target URL."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._items: dict[str, list[dict[str, Any]]] = {}
        self._failures: dict[str, int] = defaultdict(int)
        self._logger = logger or get_logger("browser")
        self.calls: list[str] = []

    def set_items(self, target: str, items: list[dict[str, Any]]) -> None:
        self._items[target] = [dict(item) for item in items]

    def fail_next(self, target: str, times: int = 1) -> None:
        """Make the next ``times`` acquisitions of ``target`` time out."""
        self._failures[target] += times

    async def acquire(self, target: str, *, timeout: float) -> list[dict[str, Any]]:
        self.calls.append(target)
        if self._failures[target] > 0:
            self._failures[target] -= 1
            self._logger.warning("Navigation to %s timed out after %.0fs", target, timeout)
            raise TransientError(f"Timed out acquiring {target}")
        await asyncio.sleep(0)
        items = self._items.get(target, [])
        self._logger.debug("Acquired %d item(s) from %s", len(items), target)
        return [dict(item) for item in items]
