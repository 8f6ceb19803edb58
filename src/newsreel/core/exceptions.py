"""Newsreel exception hierarchy."""

from __future__ import annotations


class NewsreelError(Exception):
    """Base exception for all Newsreel errors."""


class PipelineError(NewsreelError):
    """Error during run execution."""


class TransientError(NewsreelError):
    """Network, timeout or rate-limit failure. Retried per the step's policy."""


class NonRetryableError(NewsreelError):
    """Failure that no amount of retrying can fix. Fails the step at once."""


class PayloadValidationError(NonRetryableError):
    """Malformed upstream payload."""


class StepFailedError(PipelineError):
    """A step exhausted its retry policy."""

    def __init__(self, step_name: str, attempts: int, message: str) -> None:
        self.step_name = step_name
        self.attempts = attempts
        self.message = message
        super().__init__(f"Step {step_name!r} failed after {attempts} attempt(s): {message}")


class SubRunFailedError(NonRetryableError):
    """A nested run reached a terminal status other than complete."""

    def __init__(self, run_id: str, status: str, error: str | None = None) -> None:
        self.run_id = run_id
        self.status = status
        self.error = error
        detail = f": {error}" if error else ""
        super().__init__(f"Sub-run {run_id} {status}{detail}")


class RunTerminatedError(PipelineError):
    """The run was terminated externally while in flight."""

    def __init__(self, run_id: str) -> None:
        self.run_id = run_id
        super().__init__(f"Run {run_id} was terminated")


class RunNotFoundError(PipelineError):
    """No run with the given id."""


class UnknownProgramError(PipelineError):
    """No program registered under the given name."""


class PublishRejectedError(NonRetryableError):
    """The publish target rejected the upload or never finished processing it."""


class TransitionRefused(NonRetryableError):
    """A stage transition is not allowed in the entity's current state. Retrying cannot help."""

    def __init__(self, entity_id: str, stage: str, reason: str) -> None:
        self.entity_id = entity_id
        self.stage = stage
        self.reason = reason
        super().__init__(f"{stage} transition refused for {entity_id}: {reason}")


class PolicyBlocked(TransitionRefused):
    """Overall policy status is BLOCK. A conflict, not a failure."""

    def __init__(self, entity_id: str, stage: str, reasons: list[str]) -> None:
        self.reasons = list(reasons)
        summary = " | ".join(self.reasons) if self.reasons else "policy status BLOCK"
        super().__init__(entity_id, stage, f"Policy BLOCK: {summary}")


class ConcurrentUpdateError(NewsreelError):
    """An optimistic write lost against a concurrent writer."""


class EntityNotFoundError(NewsreelError):
    """Article or video not found in the content store."""


class CacheError(NewsreelError):
    """Redis cache operation failed."""


class StorageError(NewsreelError):
    """Object storage or durable store operation failed."""
