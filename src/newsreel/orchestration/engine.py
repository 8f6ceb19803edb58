"""Durable workflow engine: program registry, run lifecycle and replay.

A run's progress lives entirely in its step log (see ``RunContext``). If the
process dies mid-run, ``resume_pending`` starts the run again from the top;
completed steps are replayed from the log and only unfinished work executes.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from pydantic_core import to_jsonable_python

from newsreel.core.exceptions import (
    PipelineError,
    RunNotFoundError,
    RunTerminatedError,
    SubRunFailedError,
    UnknownProgramError,
)
from newsreel.core.logging import bind_run_logger, get_logger
from newsreel.core.protocols import IRunStore
from newsreel.core.types import Clock, Sleeper
from newsreel.models.run import Run, RunStatus, RunStatusView
from newsreel.orchestration.context import RunContext

Program = Callable[[RunContext, dict[str, Any]], Awaitable[Optional[dict[str, Any]]]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WorkflowEngine:
    """Creates, drives, terminates and resumes runs of registered programs."""

    def __init__(
        self,
        store: IRunStore,
        *,
        clock: Clock = _utcnow,
        sleep: Sleeper = asyncio.sleep,
        poll_interval_seconds: float = 1.0,
        logger: logging.Logger | None = None,
    ) -> None:
        self.store = store
        self._clock = clock
        self._sleep = sleep
        self._poll_interval = poll_interval_seconds
        self._logger = logger or get_logger("engine")
        self._programs: dict[str, Program] = {}
        self._tasks: dict[str, asyncio.Task[Run]] = {}

    # ---- registry ----

    def register(self, name: str, program: Program) -> None:
        self._programs[name] = program

    @property
    def programs(self) -> list[str]:
        return sorted(self._programs)

    # ---- time ----

    def now(self) -> datetime:
        return self._clock()

    async def sleep(self, seconds: float) -> None:
        await self._sleep(seconds)

    # ---- lifecycle ----

    def _require(self, run_id: str) -> Run:
        run = self.store.get_run(run_id)
        if run is None:
            raise RunNotFoundError(f"Run {run_id!r} not found")
        return run

    async def create_run(
        self,
        program: str,
        payload: dict[str, Any] | None = None,
        *,
        run_id: str | None = None,
        parent_run_id: str | None = None,
        start: bool = True,
    ) -> str:
        """Create a queued run and schedule it. Returns the run id.

        With an explicit ``run_id`` the call is idempotent: an existing run
        with that id is left untouched and its id returned.
        """
        if program not in self._programs:
            raise UnknownProgramError(f"No program registered as {program!r}")
        run = Run(
            run_id=run_id or uuid.uuid4().hex,
            program=program,
            input=payload or {},
            parent_run_id=parent_run_id,
            created_at=self.now(),
        )
        if not self.store.insert_run(run):
            existing = self._require(run.run_id)
            if existing.program != program:
                raise PipelineError(
                    f"Run {run.run_id!r} already exists for program {existing.program!r}"
                )
            self._logger.debug("Run %s already exists", run.run_id)
        else:
            self._logger.info("Created %s run %s", program, run.run_id)
        if start:
            self.start(run.run_id)
        return run.run_id

    def start(self, run_id: str) -> None:
        """Drive the run in a background task unless one is already driving it."""
        task = self._tasks.get(run_id)
        if task is not None and not task.done():
            return
        task = asyncio.create_task(self.execute(run_id), name=f"run:{run_id}")
        self._tasks[run_id] = task

        def _forget(done: asyncio.Task[Run]) -> None:
            if self._tasks.get(run_id) is done:
                del self._tasks[run_id]

        task.add_done_callback(_forget)

    async def execute(self, run_id: str) -> Run:
        """Run (or replay) the program body to a terminal status."""
        run = self._require(run_id)
        if run.status.is_terminal:
            return run

        log = bind_run_logger(self._logger, run_id, run.program)
        program = self._programs.get(run.program)
        if program is None:
            self.store.finish_run(run_id, RunStatus.FAILED, error=f"Unknown program {run.program!r}")
            return self._require(run_id)

        self.store.set_status(run_id, RunStatus.RUNNING)
        replayed = sum(1 for s in run.steps if s.succeeded)
        log.info("Run started", extra={"data": {"replayed_steps": replayed}})

        ctx = RunContext(self, run, log)
        try:
            output = await program(ctx, dict(run.input))
        except RunTerminatedError:
            log.info("Run stopped after termination")
            return self._require(run_id)
        except asyncio.CancelledError:
            current = self.store.get_run(run_id)
            if current is not None and current.status is RunStatus.TERMINATED:
                log.info("Run cancelled after termination")
                return current
            # process shutdown: leave the run running so resume_pending picks it up
            raise
        except Exception as exc:
            message = str(exc) or exc.__class__.__name__
            log.error("Run failed: %s", message)
            self.store.finish_run(run_id, RunStatus.FAILED, error=message)
            return self._require(run_id)

        result = to_jsonable_python(output) if output is not None else {}
        if not isinstance(result, dict):
            result = {"result": result}
        if self.store.finish_run(run_id, RunStatus.COMPLETE, output=result):
            log.info("Run complete")
        return self._require(run_id)

    async def wait(self, run_id: str) -> Run:
        """Wait for a run driven by this engine to stop. Returns its final state."""
        task = self._tasks.get(run_id)
        if task is not None:
            return await task
        run = self._require(run_id)
        if run.status.is_terminal:
            return run
        return await self.execute(run_id)

    async def await_terminal(self, run_id: str) -> dict[str, Any]:
        """Poll until ``run_id`` is terminal; return its output.

        Raises:
            SubRunFailedError: the run failed or was terminated.
        """
        while True:
            run = self._require(run_id)
            if run.status.is_terminal:
                break
            if run_id not in self._tasks:
                # nobody in this process is driving it (e.g. after a restart)
                self.start(run_id)
            await self._sleep(self._poll_interval)

        if run.status is not RunStatus.COMPLETE:
            raise SubRunFailedError(run_id, run.status.value, run.error)
        return run.output or {}

    async def terminate_run(self, run_id: str) -> Run:
        """Stop a run. No further steps of it execute; terminal runs are left alone."""
        run = self._require(run_id)
        if run.status.is_terminal:
            return run
        self.store.set_status(run_id, RunStatus.TERMINATED)
        bind_run_logger(self._logger, run_id, run.program).info("Run terminated")
        task = self._tasks.get(run_id)
        if task is not None and not task.done():
            task.cancel()
        return self._require(run_id)

    def get_run_status(self, run_id: str) -> RunStatusView:
        return RunStatusView.from_run(self._require(run_id))

    def resume_pending(self) -> list[str]:
        """Start every queued or running run not already driven here."""
        resumed = []
        for run in self.store.list_runs([RunStatus.QUEUED, RunStatus.RUNNING]):
            if run.run_id in self._tasks:
                continue
            self.start(run.run_id)
            resumed.append(run.run_id)
        if resumed:
            self._logger.info("Resumed %d pending run(s)", len(resumed))
        return resumed

    async def shutdown(self) -> None:
        """Cancel in-flight tasks. Their runs stay resumable."""
        tasks = [t for t in self._tasks.values() if not t.done()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
