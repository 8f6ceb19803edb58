"""Image, speech and render adapters.

Real synthesis and encoding are external collaborators; the mocks return
small deterministic payloads so the asset and render runs work end to end.
"""

from __future__ import annotations

import hashlib
import logging

from newsreel.core.exceptions import TransientError
from newsreel.core.logging import get_logger
from newsreel.core.protocols import MediaResult, RenderRequest, TokenUsage


def _digest(text: str) -> bytes:
    return hashlib.sha256(text.encode("utf-8")).digest()


class MockMediaGenerator:
    """IMediaGenerator returning hash-derived bytes."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._failures = 0
        self._logger = logger or get_logger("media")
        self.images: list[str] = []
        self.speeches: list[tuple[str, str]] = []

    def fail_next(self, times: int = 1) -> None:
        """Make the next ``times`` calls raise a transient error."""
        self._failures += times

    def _maybe_fail(self, what: str) -> None:
        if self._failures > 0:
            self._failures -= 1
            self._logger.warning("Mock %s generation rate limited", what)
            raise TransientError(f"{what} generation rate limited")

    def image(self, prompt: str, model: str) -> MediaResult:
        self._maybe_fail("image")
        self.images.append(prompt)
        return MediaResult(
            data=b"\x89PNG" + _digest(prompt),
            content_type="image/png",
            model=model,
            token_usage=TokenUsage(input_tokens=max(1, len(prompt) // 4), output_tokens=1290),
        )

    def speech(self, text: str, voice: str, model: str) -> MediaResult:
        self._maybe_fail("speech")
        self.speeches.append((voice, text))
        return MediaResult(
            data=b"RIFF" + _digest(f"{voice}:{text}"),
            content_type="audio/wav",
            model=model,
            token_usage=TokenUsage(input_tokens=max(1, len(text) // 4), output_tokens=25 * len(text)),
        )


class MockVideoRenderer:
    """IVideoRenderer concatenating slide references into a fake container."""

    def __init__(self) -> None:
        self.requests: list[RenderRequest] = []

    def render(self, request: RenderRequest) -> bytes:
        self.requests.append(request)
        body = "\n".join(f"{s.image_url}|{s.audio_url}|{s.duration}" for s in request.slides)
        return b"\x00\x00\x00\x18ftypmp42" + body.encode("utf-8")
