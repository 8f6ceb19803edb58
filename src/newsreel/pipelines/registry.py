"""Wire every pipeline program into an engine."""

from __future__ import annotations

from newsreel.core.config import AppSettings
from newsreel.core.protocols import (
    IBrowserService,
    ICacheBackend,
    IContentStore,
    IMediaGenerator,
    IModelProvider,
    IObjectStore,
    IPublishTarget,
    IVideoRenderer,
)
from newsreel.lifecycle.stages import StageGate
from newsreel.orchestration.engine import WorkflowEngine
from newsreel.pipelines.article_rescrape import ArticleRescrapePipeline
from newsreel.pipelines.article_scraper import ArticleScraperPipeline
from newsreel.pipelines.asset_generation import AssetGenerationPipeline
from newsreel.pipelines.news_refresh import NewsRefreshPipeline
from newsreel.pipelines.news_scraper import NewsScraperPipeline
from newsreel.pipelines.script_generation import ScriptGenerationPipeline
from newsreel.pipelines.video_publish import VideoPublishPipeline
from newsreel.pipelines.video_render import VideoRenderPipeline
from newsreel.pipelines.video_selection import VideoSelectionPipeline
from newsreel.policy.checker import PolicyChecker


def register_pipelines(
    engine: WorkflowEngine,
    settings: AppSettings,
    *,
    content: IContentStore,
    cache: ICacheBackend,
    objects: IObjectStore,
    browser: IBrowserService,
    provider: IModelProvider,
    media: IMediaGenerator,
    renderer: IVideoRenderer,
    publisher: IPublishTarget,
    gate: StageGate | None = None,
    checker: PolicyChecker | None = None,
) -> None:
    gate = gate or StageGate(content, clock=engine.now)
    checker = checker or PolicyChecker(provider, content, objects, settings.llm, clock=engine.now)
    programs = [
        NewsRefreshPipeline(browser, settings.browser),
        NewsScraperPipeline(content, cache, settings.pipeline),
        ArticleScraperPipeline(content, browser, settings.browser, settings.pipeline),
        ArticleRescrapePipeline(content, settings.pipeline),
        VideoSelectionPipeline(content, provider, settings.llm, settings.pipeline),
        ScriptGenerationPipeline(content, provider, gate, checker, settings.llm, settings.pipeline),
        AssetGenerationPipeline(content, objects, media, gate, checker, settings.llm, settings.pipeline),
        VideoRenderPipeline(content, objects, renderer, gate, settings.pipeline),
        VideoPublishPipeline(content, objects, publisher, gate, settings.publish),
    ]
    for program in programs:
        engine.register(program.name, program)
