"""Mock model provider for local development and testing.

Returns canned responses. No real generative calls.
"""

from __future__ import annotations

from typing import Any

from newsreel.core.protocols import Generation, TokenUsage


def _estimate_tokens(text: str) -> int:
    return max(1, len(text) // 4) if text else 0


class MockModelProvider:
    """IModelProvider implementation that returns deterministic mock responses."""

    def __init__(self, default_response: str = "{}") -> None:
        self._default_response = default_response
        self._canned_responses: dict[str, str] = {}
        self.prompts: list[str] = []

    def set_response(self, prompt_contains: str, response: str) -> None:
        """Register a canned response for prompts containing a keyword."""
        self._canned_responses[prompt_contains] = response

    def generate(self, prompt: str, model: str, **kwargs: Any) -> Generation:
        self.prompts.append(prompt)
        content = self._default_response
        for keyword, response in self._canned_responses.items():
            if keyword in prompt:
                content = response
                break
        return Generation(
            content=content,
            model=model,
            token_usage=TokenUsage(
                input_tokens=_estimate_tokens(prompt),
                output_tokens=_estimate_tokens(content),
            ),
        )
