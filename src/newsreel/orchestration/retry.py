"""Named retry policies shared by all pipelines."""

from __future__ import annotations

from newsreel.models.run import Backoff, RetryPolicy

DEFAULT = RetryPolicy(max_attempts=3, base_delay_seconds=2.0, backoff=Backoff.CONSTANT)
DATABASE = DEFAULT
CACHE = RetryPolicy(max_attempts=3, base_delay_seconds=1.0, backoff=Backoff.CONSTANT)
AI_CALL = RetryPolicy(max_attempts=3, base_delay_seconds=5.0, backoff=Backoff.EXPONENTIAL)
STORAGE = RetryPolicy(max_attempts=3, base_delay_seconds=3.0, backoff=Backoff.EXPONENTIAL)
BROWSER = RetryPolicy(max_attempts=5, base_delay_seconds=5.0, backoff=Backoff.EXPONENTIAL)
SUB_RUN = RetryPolicy(max_attempts=3, base_delay_seconds=2.0, backoff=Backoff.CONSTANT)
RENDER = RetryPolicy(max_attempts=1, base_delay_seconds=30.0, backoff=Backoff.CONSTANT)
