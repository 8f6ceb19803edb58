"""video_publish: upload a rendered video and wait out provider processing.

Owns the publish stage, so starting it goes through the policy gate: under
BLOCK the run fails with the block reasons and publish reads ``blocked``.
The visibility is re-derived from the current policy status at claim time;
a requested ``private`` is never widened to ``public``.
"""

from __future__ import annotations

from typing import Any, Optional

from newsreel.core.config import PublishConfig
from newsreel.core.exceptions import PayloadValidationError, PublishRejectedError, StepFailedError
from newsreel.core.protocols import IContentStore, IObjectStore, IPublishTarget, ProcessingState
from newsreel.lifecycle.stages import StageGate
from newsreel.models.content import AssetKind, Publication, Stage
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
from newsreel.policy.severity import upload_privacy

PRIVACIES = ("public", "private")


def effective_privacy(requested: Optional[str], resolved: Optional[str]) -> Optional[str]:
    """The stricter of the requested and the policy-derived visibility."""
    if resolved is None:
        return None
    return "private" if "private" in (requested, resolved) else "public"


class VideoPublishPipeline:
    name = ProgramName.VIDEO_PUBLISH

    def __init__(
        self,
        content: IContentStore,
        objects: IObjectStore,
        publisher: IPublishTarget,
        gate: StageGate,
        config: PublishConfig,
    ) -> None:
        self._content = content
        self._objects = objects
        self._publisher = publisher
        self._gate = gate
        self._config = config

    def _fetch_video(self, video_id: str) -> dict[str, Any]:
        video = load_video(self._content, video_id)
        rendered = video.assets_of(AssetKind.RENDERED_VIDEO)
        if not rendered or video.script is None:
            raise PayloadValidationError(f"Video {video_id} has no rendered video")
        thumbnails = video.assets_of(AssetKind.THUMBNAIL_IMAGE)
        return {
            "render_key": rendered[-1].key,
            "thumbnail_key": thumbnails[0].key if thumbnails else None,
            "title": video.script.title,
            "description": video.script.description,
        }

    def _claim_privacy(self, video_id: str, requested: Optional[str]) -> str:
        video = load_video(self._content, video_id)
        privacy = effective_privacy(requested, upload_privacy(video.policy.overall))
        if privacy is None:
            raise PayloadValidationError(f"Video {video_id} may not be published")
        return privacy

    def _upload(self, video: dict[str, Any], privacy: str) -> dict[str, Any]:
        data = self._objects.read(video["render_key"])
        receipt = self._publisher.upload(
            data, title=video["title"], description=video["description"], privacy=privacy,
        )
        return receipt.model_dump(mode="json")

    def _set_thumbnail(self, external_id: str, key: Optional[str]) -> bool:
        if key is None:
            return False
        self._publisher.set_thumbnail(external_id, self._objects.read(key))
        return True

    def _save_publication(self, ctx: RunContext, video_id: str, receipt: dict[str, Any], privacy: str) -> None:
        publication = Publication(
            external_id=receipt["external_id"], url=receipt["url"], privacy=privacy, published_at=ctx.now(),
        )

        def change(video):
            video.publication = publication
        update_video(self._content, video_id, change)

    async def _await_processing(self, ctx: RunContext, external_id: str) -> ProcessingState:
        """Poll the provider, sleeping durably between polls.

        Raises:
            PublishRejectedError: rejected, failed, or still processing after the last poll.
        """
        for poll in range(self._config.max_polls):
            state = ProcessingState(await ctx.do(
                f"poll-processing-{poll}",
                lambda: self._publisher.processing_state(external_id).value,
                retry=retry.DEFAULT,
            ))
            if state is ProcessingState.PROCESSED:
                return state
            if state.is_final:
                raise PublishRejectedError(f"Publish target {state.value} video {external_id}")
            await ctx.sleep(f"poll-wait-{poll}", self._config.poll_interval_seconds)
        raise PublishRejectedError(
            f"Video {external_id} still processing after {self._config.max_polls} poll(s)"
        )

    async def __call__(self, ctx: RunContext, payload: dict[str, Any]) -> dict[str, Any]:
        video_id = require_video_id(payload)
        requested = payload.get("privacy")
        if requested is not None and requested not in PRIVACIES:
            raise PayloadValidationError(f"privacy must be one of {PRIVACIES}")

        video = await ctx.do("fetch-video", lambda: self._fetch_video(video_id), retry=retry.DATABASE)
        await claim_stage(ctx, self._gate, video_id, Stage.PUBLISH)

        try:
            privacy = await ctx.do(
                "resolve-privacy", lambda: self._claim_privacy(video_id, requested), retry=retry.DATABASE,
            )
            receipt = await ctx.do("upload-video", lambda: self._upload(video, privacy), retry=retry.STORAGE)
            external_id = receipt["external_id"]
            await ctx.do(
                "mark-processing",
                lambda: self._gate.mark_processing(video_id).statuses.model_dump(mode="json"),
                retry=retry.DATABASE,
            )
            await self._await_processing(ctx, external_id)
            thumbnail = await ctx.do(
                "upload-thumbnail",
                lambda: self._set_thumbnail(external_id, video["thumbnail_key"]),
                retry=retry.STORAGE,
            )
            await ctx.do(
                "save-publication", lambda: self._save_publication(ctx, video_id, receipt, privacy),
                retry=retry.DATABASE,
            )
            await complete_stage(ctx, self._gate, video_id, Stage.PUBLISH)
        except (StepFailedError, PublishRejectedError) as exc:
            message = exc.message if isinstance(exc, StepFailedError) else str(exc)
            await fail_stage(ctx, self._gate, video_id, Stage.PUBLISH, message)
            raise

        ctx.log.info("Published %s as %s (%s)", video_id, external_id, privacy)
        return {
            "success": True,
            "video_id": video_id,
            "external_id": external_id,
            "url": receipt["url"],
            "privacy": privacy,
            "thumbnail": thumbnail,
        }
