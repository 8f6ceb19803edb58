"""Publish target adapters.

The mock accepts every upload and reports provider-side processing through
a scripted sequence of states, one per poll.
"""

from __future__ import annotations

import logging
from typing import Iterable

from newsreel.core.exceptions import TransientError
from newsreel.core.logging import get_logger
from newsreel.core.protocols import ProcessingState, PublishReceipt


class MockPublishTarget:
    """IPublishTarget with scripted processing outcomes."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._states: list[ProcessingState] = [ProcessingState.PROCESSED]
        self._upload_failures = 0
        self._logger = logger or get_logger("publish")
        self.uploads: list[dict[str, object]] = []
        self.thumbnails: dict[str, bytes] = {}
        self.polls: dict[str, int] = {}

    def script_states(self, states: Iterable[ProcessingState]) -> None:
        """States reported by successive polls; the last one repeats."""
        self._states = list(states) or [ProcessingState.PROCESSED]

    def fail_next_upload(self, times: int = 1) -> None:
        self._upload_failures += times

    def upload(self, data: bytes, *, title: str, description: str, privacy: str) -> PublishReceipt:
        if self._upload_failures > 0:
            self._upload_failures -= 1
            raise TransientError("Upload session interrupted")
        external_id = f"yt{len(self.uploads) + 1:04d}"
        self.uploads.append({
            "external_id": external_id, "title": title, "description": description,
            "privacy": privacy, "size": len(data),
        })
        self._logger.debug("Uploaded %d bytes as %s (%s)", len(data), external_id, privacy)
        return PublishReceipt(external_id=external_id, url=f"https://www.youtube.com/watch?v={external_id}")

    def processing_state(self, external_id: str) -> ProcessingState:
        poll = self.polls.get(external_id, 0)
        self.polls[external_id] = poll + 1
        return self._states[min(poll, len(self._states) - 1)]

    def set_thumbnail(self, external_id: str, data: bytes) -> None:
        self.thumbnails[external_id] = data
