"""asset_generation: thumbnail, slide images and narration for a scripted video.

Owns the asset stage, which the policy gate refuses to start under BLOCK.
Object keys are derived from the video id and slide index, so a repeated
upload overwrites instead of duplicating. The strong policy check reviews the
script together with the generated image labels before the stage completes.
"""

from __future__ import annotations

import random
from typing import Any

from newsreel.core.config import LLMConfig, PipelineConfig
from newsreel.core.exceptions import PayloadValidationError, StepFailedError
from newsreel.core.protocols import IContentStore, IMediaGenerator, IObjectStore, MediaResult, TokenUsage
from newsreel.lifecycle.stages import StageGate
from newsreel.model_providers.pricing import calculate_cost, calculate_image_cost
from newsreel.models.content import AssetKind, CostLogEntry, Stage, VideoAsset, VideoScript
from newsreel.models.policy import OverallStatus, PolicyStage
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
from newsreel.policy.checker import PolicyChecker

TTS_VOICES = (
    "Zephyr", "Puck", "Charon", "Kore", "Fenrir", "Leda", "Enceladus", "Aoede",
    "Autonoe", "Laomedeia", "Iapetus", "Erinome", "Alnilam", "Algieba", "Despina",
    "Umbriel", "Callirrhoe", "Achernar", "Sulafat", "Vindemiatrix", "Achird",
    "Orus", "Algenib", "Rasalgethi", "Gacrux", "Pulcherrima", "Zubenelgenubi",
    "Sadachbia", "Sadaltager",
)
_EXTENSIONS = {"image/png": "png", "image/jpeg": "jpg", "audio/wav": "wav", "audio/mpeg": "mp3"}


def asset_label(asset: VideoAsset) -> str:
    if asset.kind is AssetKind.THUMBNAIL_IMAGE:
        return "thumbnail"
    return f"slide-{asset.index:02d}"


class AssetGenerationPipeline:
    name = ProgramName.ASSET_GENERATION

    def __init__(
        self,
        content: IContentStore,
        objects: IObjectStore,
        media: IMediaGenerator,
        gate: StageGate,
        checker: PolicyChecker,
        llm: LLMConfig,
        config: PipelineConfig,
    ) -> None:
        self._content = content
        self._objects = objects
        self._media = media
        self._gate = gate
        self._checker = checker
        self._llm = llm
        self._config = config

    def _fetch_video(self, video_id: str) -> dict[str, Any]:
        video = load_video(self._content, video_id)
        if video.script is None:
            raise PayloadValidationError(f"Video {video_id} has no script yet")
        return {"script": video.script.model_dump(mode="json"), "tts_voice": video.tts_voice}

    def _select_voice(self, video_id: str, current: str | None) -> str:
        voice = current or random.choice(TTS_VOICES)

        def change(video):
            video.tts_voice = voice
        update_video(self._content, video_id, change)
        return voice

    def _store(self, video_id: str, kind: AssetKind, index: int, result: MediaResult) -> dict[str, Any]:
        extension = _EXTENSIONS.get(result.content_type, "bin")
        name = "thumbnail" if kind is AssetKind.THUMBNAIL_IMAGE else f"{kind.value}-{index:02d}"
        key = f"videos/{video_id}/{name}.{extension}"
        url = self._objects.put(key, result.data, result.content_type)
        return VideoAsset(
            kind=kind, index=index, key=key, url=url,
            content_type=result.content_type, size=len(result.data),
        ).model_dump(mode="json")

    def _generate_images(self, video_id: str, script: VideoScript) -> list[dict[str, Any]]:
        model = self._llm.image_model
        prompts = [(AssetKind.THUMBNAIL_IMAGE, 0, script.thumbnail_description or script.title)]
        prompts += [
            (AssetKind.SLIDE_IMAGE, i, slide.image_description or slide.headline)
            for i, slide in enumerate(script.slides)
        ]
        return [self._store(video_id, kind, i, self._media.image(prompt, model)) for kind, i, prompt in prompts]

    def _generate_audio(self, video_id: str, script: VideoScript, voice: str) -> dict[str, Any]:
        model = self._llm.tts_model
        assets, input_tokens, output_tokens = [], 0, 0
        for i, slide in enumerate(script.slides):
            result = self._media.speech(slide.narration, voice, model)
            assets.append(self._store(video_id, AssetKind.SLIDE_AUDIO, i, result))
            input_tokens += result.token_usage.input_tokens
            output_tokens += result.token_usage.output_tokens
        return {"assets": assets, "input_tokens": input_tokens, "output_tokens": output_tokens}

    def _log_costs(self, ctx: RunContext, video_id: str, images: int, audio: dict[str, Any]) -> float:
        usage = TokenUsage(input_tokens=audio["input_tokens"], output_tokens=audio["output_tokens"])
        entries = [
            CostLogEntry(
                entry_id=f"{ctx.run_id}:asset-images", video_id=video_id, log_type="asset-images",
                model_id=self._llm.image_model, cost=calculate_image_cost(self._llm.image_model, images),
                created_at=ctx.now(),
            ),
            CostLogEntry(
                entry_id=f"{ctx.run_id}:asset-audio", video_id=video_id, log_type="asset-audio",
                model_id=self._llm.tts_model, input_tokens=usage.input_tokens, output_tokens=usage.output_tokens,
                cost=calculate_cost(usage, self._llm.tts_model), created_at=ctx.now(),
            ),
        ]
        for entry in entries:
            self._content.append_cost_log(entry)
        return sum(entry.cost for entry in entries)

    def _save_assets(self, video_id: str, assets: list[VideoAsset]) -> None:
        def change(video):
            replaced = {(a.kind, a.index) for a in assets}
            video.assets = [a for a in video.assets if (a.kind, a.index) not in replaced] + assets
        update_video(self._content, video_id, change)

    def _policy_check(self, ctx: RunContext, video_id: str, script: VideoScript,
                      images: list[VideoAsset]) -> dict[str, Any]:
        result = self._checker.check(
            video_id, PolicyStage.ASSET_STRONG, script.as_text(),
            image_labels=[f"{asset_label(a)}: {a.url}" for a in images],
            cost_entry_id=f"{ctx.run_id}:policy-asset-strong",
        )
        return {
            "stage_status": result.stage_status.value,
            "overall_status": result.overall_status.value,
            "block_reasons": result.block_reasons,
        }

    async def __call__(self, ctx: RunContext, payload: dict[str, Any]) -> dict[str, Any]:
        video_id = require_video_id(payload)
        video = await ctx.do("fetch-video", lambda: self._fetch_video(video_id), retry=retry.DATABASE)
        script = VideoScript.model_validate(video["script"])
        await claim_stage(ctx, self._gate, video_id, Stage.ASSET)

        try:
            voice = await ctx.do(
                "select-tts-voice", lambda: self._select_voice(video_id, video["tts_voice"]), retry=retry.DATABASE,
            )
            images = await ctx.do(
                "generate-images", lambda: self._generate_images(video_id, script), retry=retry.AI_CALL,
            )
            audio = await ctx.do(
                "generate-audio", lambda: self._generate_audio(video_id, script, voice), retry=retry.AI_CALL,
            )
            assets = [VideoAsset.model_validate(a) for a in images + audio["assets"]]
            cost = await ctx.do(
                "log-costs", lambda: self._log_costs(ctx, video_id, len(images), audio), retry=retry.DATABASE,
            )
            await ctx.do("save-assets", lambda: self._save_assets(video_id, assets), retry=retry.DATABASE)
            policy = await ctx.do(
                "run-asset-policy-check",
                lambda: self._policy_check(ctx, video_id, script, assets[:len(images)]),
                retry=retry.AI_CALL,
            )
            await complete_stage(ctx, self._gate, video_id, Stage.ASSET)
        except StepFailedError as exc:
            await fail_stage(ctx, self._gate, video_id, Stage.ASSET, exc.message)
            raise

        blocked = policy["overall_status"] == OverallStatus.BLOCK.value
        next_run = None
        if blocked:
            ctx.log.warning(
                "Render held for %s by policy BLOCK", video_id,
                extra={"data": {"block_reasons": policy["block_reasons"]}},
            )
        elif self._config.auto_advance:
            next_run = await ctx.spawn("video-render", ProgramName.VIDEO_RENDER, {"video_id": video_id})

        ctx.log.info(
            "Generated %d image(s) and %d narration(s) for %s", len(images), len(audio["assets"]), video_id,
            extra={"data": {"voice": voice, "cost": cost}},
        )
        return {
            "success": True,
            "video_id": video_id,
            "image_count": len(images),
            "audio_count": len(audio["assets"]),
            "tts_voice": voice,
            "policy": policy,
            "blocked": blocked,
            "next_run_id": next_run,
        }
