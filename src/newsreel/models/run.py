"""Run, step log, and retry policy models."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any, Optional

from pydantic import BaseModel, Field


class RunStatus(StrEnum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETE = "complete"
    FAILED = "failed"
    TERMINATED = "terminated"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_RUN_STATUSES


TERMINAL_RUN_STATUSES = frozenset({RunStatus.COMPLETE, RunStatus.FAILED, RunStatus.TERMINATED})


class Backoff(StrEnum):
    CONSTANT = "constant"
    EXPONENTIAL = "exponential"


class RetryPolicy(BaseModel):
    """How often and how patiently a step is re-attempted."""

    model_config = {"frozen": True}

    max_attempts: int = Field(default=3, ge=1)
    base_delay_seconds: float = Field(default=2.0, ge=0)
    backoff: Backoff = Backoff.CONSTANT

    def delay_for(self, attempt: int) -> float:
        """Wait after the failed attempt ``attempt`` (0-indexed)."""
        if self.backoff is Backoff.EXPONENTIAL:
            return self.base_delay_seconds * (2 ** attempt)
        return self.base_delay_seconds


class StepKind(StrEnum):
    DO = "do"
    SLEEP = "sleep"


class StepRecord(BaseModel):
    """One entry of a run's append-only step log."""

    name: str
    kind: StepKind = StepKind.DO
    attempts: int = 0
    result: Any = None
    wake_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def succeeded(self) -> bool:
        return self.completed_at is not None


class Run(BaseModel):
    """One execution instance of a registered program."""

    run_id: str
    program: str
    input: dict[str, Any] = Field(default_factory=dict)
    status: RunStatus = RunStatus.QUEUED
    steps: list[StepRecord] = Field(default_factory=list)
    output: Optional[dict[str, Any]] = None
    error: Optional[str] = None
    parent_run_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def step(self, name: str) -> StepRecord | None:
        for record in self.steps:
            if record.name == name:
                return record
        return None

    def completed_step(self, name: str) -> StepRecord | None:
        record = self.step(name)
        if record is not None and record.succeeded:
            return record
        return None


class RunStatusView(BaseModel):
    """What status endpoints return: structured status plus one error string."""

    run_id: str
    program: str
    status: RunStatus
    output: Optional[dict[str, Any]] = None
    error: Optional[str] = None
    completed_steps: list[str] = Field(default_factory=list)
    parent_run_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_run(cls, run: Run) -> "RunStatusView":
        return cls(
            run_id=run.run_id,
            program=run.program,
            status=run.status,
            output=run.output if run.status is RunStatus.COMPLETE else None,
            error=run.error if run.status is RunStatus.FAILED else None,
            completed_steps=[s.name for s in run.steps if s.succeeded],
            parent_run_id=run.parent_run_id,
            created_at=run.created_at,
            updated_at=run.updated_at,
        )
