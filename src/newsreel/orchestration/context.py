"""Step executor: the per-run context every program body runs against.

Contract for step bodies
------------------------
A step's result is committed to the run's log only after the body returns.
A crash between the body finishing and that commit re-executes the body once
on replay. Bodies therefore get at-least-once execution and at-most-once
successful commit: every side effect a body performs must be idempotent or
keyed so that a repeat is harmless (insert-if-absent by natural key, upsert,
deterministic object keys, deterministic child run ids).

Results must be JSON-serializable; they are normalized before commit so a
fresh execution and a replay return identical values.
"""

from __future__ import annotations

import inspect
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from pydantic_core import to_jsonable_python

from newsreel.core.exceptions import (
    NonRetryableError,
    RunTerminatedError,
    StepFailedError,
    SubRunFailedError,
)
from newsreel.core.logging import RunLoggerAdapter
from newsreel.models.run import RetryPolicy, Run, RunStatus, StepKind, StepRecord
from newsreel.orchestration import retry as retry_policies

if TYPE_CHECKING:
    from newsreel.orchestration.engine import WorkflowEngine

StepBody = Callable[[], Any | Awaitable[Any]]


class RunContext:
    """Runs named, memoized, retryable steps for one run."""

    def __init__(self, engine: "WorkflowEngine", run: Run, log: RunLoggerAdapter) -> None:
        self._engine = engine
        self._run = run
        self.log = log

    @property
    def run_id(self) -> str:
        return self._run.run_id

    @property
    def program(self) -> str:
        return self._run.program

    @property
    def input(self) -> dict[str, Any]:
        return dict(self._run.input)

    def now(self) -> datetime:
        return self._engine.now()

    # ---- log bookkeeping ----

    def _commit(self, record: StepRecord) -> None:
        self._engine.store.save_step(self.run_id, record)
        for i, existing in enumerate(self._run.steps):
            if existing.name == record.name:
                self._run.steps[i] = record
                return
        self._run.steps.append(record)

    def _guard(self) -> None:
        current = self._engine.store.get_run(self.run_id)
        if current is not None and current.status is RunStatus.TERMINATED:
            raise RunTerminatedError(self.run_id)

    # ---- steps ----

    async def do(self, name: str, body: StepBody, *,
                 retry: RetryPolicy = retry_policies.DEFAULT) -> Any:
        """Run ``body`` as step ``name`` unless the log already holds its result."""
        done = self._run.completed_step(name)
        if done is not None:
            self.log.debug("Step replayed from log", extra={"step": name})
            return done.result

        log = self.log.for_step(name)
        for attempt in range(retry.max_attempts):
            backoff_step = f"{name}#retry-{attempt}"
            backoff = self._run.step(backoff_step)
            if backoff is not None:
                # this attempt already failed; finish whatever is left of its backoff
                if not backoff.succeeded:
                    await self.sleep(backoff_step, 0)
                continue

            self._guard()
            try:
                result = body()
                if inspect.isawaitable(result):
                    result = await result
            except NonRetryableError as exc:
                log.error("Step failed without retry: %s", exc)
                raise StepFailedError(name, attempt + 1, str(exc)) from exc
            except Exception as exc:
                if attempt + 1 >= retry.max_attempts:
                    log.error("Step exhausted %d attempt(s): %s", attempt + 1, exc)
                    raise StepFailedError(name, attempt + 1, str(exc)) from exc
                delay = retry.delay_for(attempt)
                log.warning("Attempt %d failed, retrying in %.1fs: %s", attempt + 1, delay, exc)
                await self.sleep(backoff_step, delay)
                continue

            result = to_jsonable_python(result)
            self._commit(StepRecord(
                name=name,
                kind=StepKind.DO,
                attempts=attempt + 1,
                result=result,
                completed_at=self.now(),
            ))
            log.info("Step completed", extra={"data": {"attempts": attempt + 1}})
            return result

        # every attempt's backoff is already logged but no success was recorded
        raise StepFailedError(name, retry.max_attempts, "retry budget already spent")

    async def sleep(self, name: str, seconds: float) -> None:
        """Durable wait: the wake-up instant is logged before waiting."""
        record = self._run.step(name)
        if record is not None and record.succeeded:
            return
        if record is None or record.wake_at is None:
            self._guard()
            record = StepRecord(
                name=name,
                kind=StepKind.SLEEP,
                wake_at=self.now() + timedelta(seconds=max(0.0, seconds)),
            )
            self._commit(record)

        remaining = (record.wake_at - self.now()).total_seconds()
        if remaining > 0:
            await self._engine.sleep(remaining)
        self._commit(record.model_copy(update={"completed_at": self.now()}))

    # ---- sub-runs ----

    def child_run_id(self, name: str) -> str:
        return f"{self.run_id}.{name}"

    async def spawn(self, name: str, program: str, payload: dict[str, Any] | None = None, *,
                    retry: RetryPolicy = retry_policies.SUB_RUN) -> str:
        """Create a child run without waiting for it. Returns its id."""
        return await self.do(
            f"{name}:create",
            lambda: self._engine.create_run(
                program, payload,
                run_id=self.child_run_id(name),
                parent_run_id=self.run_id,
            ),
            retry=retry,
        )

    async def invoke(self, name: str, program: str, payload: dict[str, Any] | None = None, *,
                     retry: RetryPolicy = retry_policies.SUB_RUN) -> dict[str, Any]:
        """Create a child run and wait for its output.

        Two committed phases: creation records the child id (derived from this
        run's id, so a repeated creation finds the same child), then the wait
        polls that recorded id. A parent crash mid-poll only re-polls.

        Raises:
            SubRunFailedError: the child failed or was terminated.
        """
        child_id = await self.spawn(name, program, payload, retry=retry)
        try:
            return await self.do(
                f"{name}:await",
                lambda: self._engine.await_terminal(child_id),
                retry=retry,
            )
        except StepFailedError as exc:
            if isinstance(exc.__cause__, SubRunFailedError):
                raise exc.__cause__
            raise
