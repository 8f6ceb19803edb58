"""Fixed-tick scheduler: light stages every tick, selection on the trigger."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from pydantic import BaseModel, Field

from newsreel.core.config import PipelineConfig
from newsreel.core.logging import get_logger
from newsreel.orchestration.engine import WorkflowEngine
from newsreel.orchestration.trigger import TriggerDecision, evaluate_trigger
from newsreel.pipelines.names import ProgramName


class TickResult(BaseModel):
    decision: TriggerDecision
    runs: dict[str, str] = Field(default_factory=dict)


class Scheduler:
    """Creates runs on each tick. Run ids are derived from the tick minute,
    so a repeated tick within the same minute creates nothing new."""

    def __init__(
        self,
        engine: WorkflowEngine,
        config: PipelineConfig,
        logger: logging.Logger | None = None,
    ) -> None:
        self._engine = engine
        self._config = config
        self._logger = logger or get_logger("scheduler")

    async def tick(self, now: datetime | None = None) -> TickResult:
        now = now or self._engine.now()
        decision = evaluate_trigger(now, self._config.target_utc_offset_hours)
        stamp = now.strftime("%Y%m%dT%H%M")

        plan: list[tuple[ProgramName, dict]] = [
            (ProgramName.NEWS_SCRAPER, {"skip_cache": True}),
            (ProgramName.ARTICLE_RESCRAPE, {}),
        ]
        if decision.should_trigger:
            plan.append((ProgramName.VIDEO_SELECTION, {}))

        runs = {}
        for program, payload in plan:
            runs[program.value] = await self._engine.create_run(
                program, payload, run_id=f"{program.value}-{stamp}"
            )
        self._logger.info(
            "Tick at %s created %d run(s)", now.isoformat(), len(runs),
            extra={"data": {"should_trigger": decision.should_trigger}},
        )
        return TickResult(decision=decision, runs=runs)

    async def run(self, stop: asyncio.Event, tick_seconds: float) -> None:
        """Tick until ``stop`` is set. A failing tick is logged and the loop continues."""
        while not stop.is_set():
            try:
                await self.tick()
            except Exception:
                self._logger.exception("Scheduler tick failed")
            try:
                await asyncio.wait_for(stop.wait(), timeout=tick_seconds)
            except asyncio.TimeoutError:
                pass
