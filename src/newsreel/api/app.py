"""FastAPI application with lifespan, service wiring and router mounting."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager, suppress
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from newsreel.api.routes import health, news, runs, videos
from newsreel.core.config import AppSettings
from newsreel.core.exceptions import (
    ConcurrentUpdateError,
    EntityNotFoundError,
    PolicyBlocked,
    RunNotFoundError,
    TransitionRefused,
    UnknownProgramError,
)
from newsreel.core.logging import get_logger, setup_logging
from newsreel.core.protocols import (
    IBrowserService,
    IMediaGenerator,
    IModelProvider,
    IPublishTarget,
    IVideoRenderer,
)
from newsreel.core.types import Sleeper
from newsreel.lifecycle.stages import StageGate
from newsreel.model_providers.mock_provider import MockModelProvider
from newsreel.orchestration.engine import WorkflowEngine
from newsreel.orchestration.scheduler import Scheduler
from newsreel.persistence import Persistence, create_persistence
from newsreel.pipelines.registry import register_pipelines
from newsreel.policy.checker import PolicyChecker
from newsreel.services.browser import MockBrowserService
from newsreel.services.media import MockMediaGenerator, MockVideoRenderer
from newsreel.services.publish_target import MockPublishTarget

logger = get_logger("api")


def create_app(
    settings: AppSettings | None = None,
    persistence: Persistence | None = None,
    browser: IBrowserService | None = None,
    provider: IModelProvider | None = None,
    media: IMediaGenerator | None = None,
    renderer: IVideoRenderer | None = None,
    publisher: IPublishTarget | None = None,
    sleep: Sleeper | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Collaborators default to the production backends and the mock browser,
    model, media and publish providers; tests pass in-memory replacements.
    """
    settings = settings or AppSettings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Initialize and tear down application resources."""
        setup_logging(settings.log_level, settings.log_format)
        backends = persistence or create_persistence(settings)
        engine_kwargs = {"sleep": sleep} if sleep is not None else {}
        engine = WorkflowEngine(
            backends.runs,
            poll_interval_seconds=settings.pipeline.poll_interval_seconds,
            **engine_kwargs,
        )
        model_provider = provider or MockModelProvider()
        gate = StageGate(backends.content)
        checker = PolicyChecker(model_provider, backends.content, backends.objects, settings.llm)
        register_pipelines(
            engine,
            settings,
            content=backends.content,
            cache=backends.cache,
            objects=backends.objects,
            browser=browser or MockBrowserService(),
            provider=model_provider,
            media=media or MockMediaGenerator(),
            renderer=renderer or MockVideoRenderer(),
            publisher=publisher or MockPublishTarget(),
            gate=gate,
            checker=checker,
        )

        app.state.settings = settings
        app.state.persistence = backends
        app.state.engine = engine
        app.state.gate = gate
        app.state.policy = checker
        engine.resume_pending()

        stop = asyncio.Event()
        scheduler_task = None
        if settings.scheduler.enabled:
            scheduler = Scheduler(engine, settings.pipeline)
            scheduler_task = asyncio.create_task(scheduler.run(stop, settings.scheduler.tick_seconds))
            logger.info("Scheduler started, ticking every %.0fs", settings.scheduler.tick_seconds)
        try:
            yield
        finally:
            stop.set()
            if scheduler_task is not None:
                with suppress(asyncio.CancelledError):
                    await scheduler_task
            await engine.shutdown()

    app = FastAPI(
        title="Newsreel Pipeline Orchestrator",
        version="0.1.0",
        lifespan=lifespan,
    )
    _install_error_handlers(app)
    app.include_router(health.router)
    app.include_router(runs.router, prefix="/runs")
    app.include_router(news.router, prefix="/news")
    app.include_router(videos.router, prefix="/videos")
    return app


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(PolicyBlocked)
    async def policy_blocked(request: Request, exc: PolicyBlocked) -> JSONResponse:
        return JSONResponse(status_code=409, content={
            "error": "policy_blocked",
            "stage": exc.stage,
            "reason": exc.reason,
            "block_reasons": exc.reasons,
        })

    @app.exception_handler(TransitionRefused)
    async def transition_refused(request: Request, exc: TransitionRefused) -> JSONResponse:
        return JSONResponse(status_code=409, content={
            "error": "transition_refused", "stage": exc.stage, "reason": exc.reason,
        })

    @app.exception_handler(ConcurrentUpdateError)
    async def concurrent_update(request: Request, exc: ConcurrentUpdateError) -> JSONResponse:
        return JSONResponse(status_code=409, content={"error": "concurrent_update", "reason": str(exc)})

    @app.exception_handler(RunNotFoundError)
    @app.exception_handler(EntityNotFoundError)
    async def not_found(request: Request, exc: Exception) -> JSONResponse:
        return JSONResponse(status_code=404, content={"error": "not_found", "reason": str(exc)})

    @app.exception_handler(UnknownProgramError)
    async def unknown_program(request: Request, exc: UnknownProgramError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": "unknown_program", "reason": str(exc)})
