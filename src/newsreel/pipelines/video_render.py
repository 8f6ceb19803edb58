"""video_render: encode slides and narration, then decide how to publish.

Owns the render stage. Rendering is expensive and never retried. Once the
render is stored, the overall policy status decides the upload visibility:
CLEAN publishes publicly, WARN and REVIEW privately, and BLOCK holds the
publish stage as ``blocked``.
"""

from __future__ import annotations

from typing import Any

from newsreel.core.config import PipelineConfig
from newsreel.core.exceptions import PayloadValidationError, StepFailedError
from newsreel.core.protocols import IContentStore, IObjectStore, IVideoRenderer, RenderRequest, RenderSlide
from newsreel.lifecycle.stages import StageGate
from newsreel.models.content import AssetKind, Stage, VideoAsset
from newsreel.orchestration import retry
from newsreel.orchestration.context import RunContext
from newsreel.pipelines.names import ProgramName
from newsreel.pipelines.video_steps import (
    claim_stage,
    complete_stage,
    fail_stage,
    load_video,
    require_video_id,
    update_video,
)


class VideoRenderPipeline:
    name = ProgramName.VIDEO_RENDER

    def __init__(
        self,
        content: IContentStore,
        objects: IObjectStore,
        renderer: IVideoRenderer,
        gate: StageGate,
        config: PipelineConfig,
    ) -> None:
        self._content = content
        self._objects = objects
        self._renderer = renderer
        self._gate = gate
        self._config = config

    def _prepare(self, video_id: str) -> dict[str, Any]:
        """Pair each slide with its image and narration.

        Raises:
            PayloadValidationError: the script or an asset is missing.
        """
        video = load_video(self._content, video_id)
        if video.script is None:
            raise PayloadValidationError(f"Video {video_id} has no script")
        images = {a.index: a for a in video.assets_of(AssetKind.SLIDE_IMAGE)}
        audio = {a.index: a for a in video.assets_of(AssetKind.SLIDE_AUDIO)}
        slides = []
        for i, slide in enumerate(video.script.slides):
            if i not in images or i not in audio:
                raise PayloadValidationError(f"Slide {i} of {video_id} is missing its image or narration")
            slides.append(RenderSlide(
                headline=slide.headline,
                image_url=images[i].url,
                audio_url=audio[i].url,
                duration=slide.estimated_duration,
            ))
        return RenderRequest(
            video_id=video_id, video_type=video.video_type, title=video.script.title, slides=slides,
        ).model_dump(mode="json")

    def _render(self, request: RenderRequest) -> dict[str, Any]:
        data = self._renderer.render(request)
        if not data:
            raise PayloadValidationError("Renderer returned an empty video")
        key = f"videos/{request.video_id}/render.mp4"
        url = self._objects.put(key, data, "video/mp4")
        return VideoAsset(
            kind=AssetKind.RENDERED_VIDEO, key=key, url=url, content_type="video/mp4", size=len(data),
        ).model_dump(mode="json")

    def _save_render(self, video_id: str, rendered: VideoAsset) -> None:
        def change(video):
            video.assets = [a for a in video.assets if a.kind is not AssetKind.RENDERED_VIDEO] + [rendered]
        update_video(self._content, video_id, change)

    def _resolve_upload(self, video_id: str) -> dict[str, Any]:
        decision = self._gate.resolve_publish(video_id)
        return {"privacy": decision.privacy, "block_reasons": decision.reasons}

    async def __call__(self, ctx: RunContext, payload: dict[str, Any]) -> dict[str, Any]:
        video_id = require_video_id(payload)
        prepared = await ctx.do("prepare-render-inputs", lambda: self._prepare(video_id), retry=retry.DATABASE)
        request = RenderRequest.model_validate(prepared)
        await claim_stage(ctx, self._gate, video_id, Stage.RENDER)

        try:
            rendered = await ctx.do("render-video", lambda: self._render(request), retry=retry.RENDER)
            asset = VideoAsset.model_validate(rendered)
            await ctx.do("save-render", lambda: self._save_render(video_id, asset), retry=retry.DATABASE)
            await complete_stage(ctx, self._gate, video_id, Stage.RENDER)
        except StepFailedError as exc:
            await fail_stage(ctx, self._gate, video_id, Stage.RENDER, exc.message)
            raise

        upload = await ctx.do("resolve-upload-policy", lambda: self._resolve_upload(video_id), retry=retry.DATABASE)
        next_run = None
        if upload["privacy"] is None:
            ctx.log.warning(
                "Publish of %s held by policy BLOCK", video_id,
                extra={"data": {"block_reasons": upload["block_reasons"]}},
            )
        elif self._config.auto_advance:
            next_run = await ctx.spawn(
                "video-publish", ProgramName.VIDEO_PUBLISH, {"video_id": video_id, "privacy": upload["privacy"]},
            )

        ctx.log.info("Rendered %s (%d bytes)", video_id, asset.size)
        return {
            "success": True,
            "video_id": video_id,
            "render_key": asset.key,
            "privacy": upload["privacy"],
            "blocked": upload["privacy"] is None,
            "block_reasons": upload["block_reasons"],
            "next_run_id": next_run,
        }
