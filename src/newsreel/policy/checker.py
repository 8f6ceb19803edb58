"""Policy checker: audit generated content against the rule catalog.

A check asks the generative service to score every rule of one policy stage,
normalizes the answer into one finding per rule, archives prompt and answer
to object storage, records the run and its cost, and folds the stage result
into the video's accumulated policy state.
"""

from __future__ import annotations

import json
import logging
import re
import uuid
from datetime import datetime, timezone
from typing import Any, Callable

from pydantic import BaseModel, Field

from newsreel.core.config import LLMConfig
from newsreel.core.exceptions import ConcurrentUpdateError, EntityNotFoundError
from newsreel.core.logging import get_logger
from newsreel.core.protocols import IContentStore, IModelProvider, IObjectStore
from newsreel.model_providers.pricing import calculate_cost
from newsreel.models.content import CostLogEntry, Video
from newsreel.models.policy import (
    FindingSeverity,
    OverallStatus,
    PolicyFinding,
    PolicyRule,
    PolicyRunRecord,
    PolicyStage,
    StageStatus,
)
from newsreel.policy.rules import format_rules_for_prompt, rules_for
from newsreel.policy.severity import (
    derive_overall_status,
    derive_stage_status,
    extract_block_reasons,
    normalize_finding_severity,
)

UNPARSEABLE_SUMMARY = "Policy model response could not be parsed. Marked for review."
UNREPORTED_REASON = "Model did not report an issue for this rule."
EMPTY_RESPONSE_CODE = "MODEL_RESPONSE_EMPTY"
MAX_EVIDENCE = 10
MAX_UPDATE_ATTEMPTS = 3

COST_LOG_TYPES = {
    PolicyStage.SCRIPT_LIGHT: "policy-script-light",
    PolicyStage.ASSET_STRONG: "policy-asset-strong",
}
STAGE_LABELS = {
    PolicyStage.SCRIPT_LIGHT: "Script light check",
    PolicyStage.ASSET_STRONG: "Asset strong check",
}

_FENCE = re.compile(r"```(?:json)?\s*|```")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PolicyCheckResult(BaseModel):
    """Outcome of one stage check, after it has been folded into the video."""

    video_id: str
    stage: PolicyStage
    model_id: str
    stage_status: StageStatus
    overall_status: OverallStatus
    summary: str
    findings: list[PolicyFinding] = Field(default_factory=list)
    block_reasons: list[str] = Field(default_factory=list)
    prompt_key: str
    response_key: str
    cost: float = 0.0


def safe_parse_response(text: str) -> dict[str, Any]:
    """Parse the model's JSON answer; anything unusable becomes an empty review."""
    try:
        parsed = json.loads(_FENCE.sub("", text or "").strip())
    except json.JSONDecodeError:
        return {"summary": UNPARSEABLE_SUMMARY, "findings": []}
    if not isinstance(parsed, dict):
        return {"summary": UNPARSEABLE_SUMMARY, "findings": []}
    return parsed


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def normalize_findings(parsed: dict[str, Any], rules: list[PolicyRule]) -> list[PolicyFinding]:
    """One finding per rule: reported ones first (first occurrence wins), then PASS fillers."""
    by_code = {rule.code: rule for rule in rules}
    raw = parsed.get("findings")
    findings: list[PolicyFinding] = []
    seen: set[str] = set()

    for item in raw if isinstance(raw, list) else []:
        if not isinstance(item, dict):
            continue
        code = _text(item.get("checkCode") or item.get("check_code"))
        if code not in by_code or code in seen:
            continue
        evidence = item.get("evidence")
        findings.append(PolicyFinding(
            check_code=code,
            check_label=_text(item.get("checkLabel") or item.get("check_label")) or by_code[code].label,
            severity=normalize_finding_severity(item.get("status")),
            reason=_text(item.get("reason")) or "No reason provided by policy model.",
            evidence=[e.strip() for e in evidence if _text(e)][:MAX_EVIDENCE] if isinstance(evidence, list) else [],
        ))
        seen.add(code)

    for rule in rules:
        if rule.code not in seen:
            findings.append(PolicyFinding(
                check_code=rule.code,
                check_label=rule.label,
                severity=FindingSeverity.PASS,
                reason=UNREPORTED_REASON,
            ))
    return findings


def build_policy_prompt(stage: PolicyStage, video_id: str, content: str,
                        image_labels: list[str] | None = None) -> str:
    lines = [
        "You are a policy auditor for generated news videos.",
        "",
        f"STAGE: {stage.value}",
        f"VIDEO ID: {video_id}",
        "",
        "Score every rule below with one status: PASS | WARN | REVIEW | BLOCK.",
        "Use BLOCK only for clear severe risk, REVIEW for uncertainty a human",
        "should look at, WARN for low-risk issues, PASS when nothing is wrong.",
        "",
        "RULESET:",
        format_rules_for_prompt(stage),
        "",
        "CONTENT:",
        content,
    ]
    if image_labels is not None:
        lines += ["", "IMAGE LABELS:"] + ([f"- {label}" for label in image_labels] or ["- none"])
    lines += [
        "",
        'Answer with JSON only: {"summary": "...", "findings": [{"checkCode": "RULE_CODE",',
        '"checkLabel": "...", "status": "PASS|WARN|REVIEW|BLOCK", "reason": "...", "evidence": ["..."]}]}',
    ]
    return "\n".join(lines)


class PolicyChecker:
    """Runs stage checks and maintains each video's policy state."""

    def __init__(
        self,
        provider: IModelProvider,
        content: IContentStore,
        objects: IObjectStore,
        llm: LLMConfig,
        clock: Callable[[], datetime] = _utcnow,
        logger: logging.Logger | None = None,
    ) -> None:
        self._provider = provider
        self._content = content
        self._objects = objects
        self._models = {
            PolicyStage.SCRIPT_LIGHT: llm.script_policy_model,
            PolicyStage.ASSET_STRONG: llm.asset_policy_model,
        }
        self._clock = clock
        self._logger = logger or get_logger("policy")

    def _archive(self, video_id: str, stage: PolicyStage, kind: str, text: str) -> str:
        key = f"policy/{video_id}/{stage.value}/{uuid.uuid4().hex}-{kind}.txt"
        self._objects.put(key, text.encode("utf-8"), "text/plain; charset=utf-8")
        return key

    def check(self, video_id: str, stage: PolicyStage, content: str,
              image_labels: list[str] | None = None,
              cost_entry_id: str | None = None) -> PolicyCheckResult:
        """Audit ``content`` for one policy stage and record the outcome.

        ``cost_entry_id`` keys the cost log so a repeated check from the same
        run step replaces its entry instead of adding one.

        Raises:
            EntityNotFoundError: the video does not exist.
        """
        if self._content.get_video(video_id) is None:
            raise EntityNotFoundError(f"Video {video_id} not found")

        model_id = self._models[stage]
        prompt = build_policy_prompt(stage, video_id, content, image_labels)
        generation = self._provider.generate(prompt, model_id)
        response = generation.content or ""

        parsed = safe_parse_response(response)
        findings = normalize_findings(parsed, rules_for(stage))
        if not response.strip():
            findings.append(PolicyFinding(
                check_code=EMPTY_RESPONSE_CODE,
                check_label="Policy model response validity",
                severity=FindingSeverity.REVIEW,
                reason="Policy model returned no usable response.",
            ))
        stage_status = derive_stage_status(findings)
        summary = _text(parsed.get("summary")) or f"{STAGE_LABELS[stage]} completed."

        prompt_key = self._archive(video_id, stage, "prompt", prompt)
        response_key = self._archive(video_id, stage, "response", response or "{}")
        cost = calculate_cost(generation.token_usage, model_id)
        now = self._clock()

        self._content.save_policy_run(PolicyRunRecord(
            video_id=video_id,
            stage=stage,
            model_id=model_id,
            status=stage_status,
            summary=summary,
            findings=findings,
            prompt_key=prompt_key,
            response_key=response_key,
            input_tokens=generation.token_usage.input_tokens,
            output_tokens=generation.token_usage.output_tokens,
            cost=cost,
            created_at=now,
        ))
        self._content.append_cost_log(CostLogEntry(
            entry_id=cost_entry_id,
            video_id=video_id,
            log_type=COST_LOG_TYPES[stage],
            model_id=model_id,
            input_tokens=generation.token_usage.input_tokens,
            output_tokens=generation.token_usage.output_tokens,
            cost=cost,
            created_at=now,
        ))

        video = self._apply(video_id, stage, stage_status, summary, findings, now)
        self._logger.info(
            "%s for %s: %s (overall %s)", STAGE_LABELS[stage], video_id,
            stage_status.value, video.policy.overall.value,
            extra={"data": {"findings": len(findings), "cost": round(cost, 6)}},
        )
        return PolicyCheckResult(
            video_id=video_id,
            stage=stage,
            model_id=model_id,
            stage_status=stage_status,
            overall_status=video.policy.overall,
            summary=summary,
            findings=findings,
            block_reasons=video.policy.block_reasons,
            prompt_key=prompt_key,
            response_key=response_key,
            cost=cost,
        )

    def _apply(self, video_id: str, stage: PolicyStage, stage_status: StageStatus,
               summary: str, findings: list[PolicyFinding], now: datetime) -> Video:
        """Fold a stage result into the video, retrying lost optimistic writes."""
        attempt = 0
        while True:
            attempt += 1
            video = self._content.get_video(video_id)
            if video is None:
                raise EntityNotFoundError(f"Video {video_id} not found")
            fold_stage_result(video, stage, stage_status, summary, findings, now)
            video.total_cost = self._content.total_cost(video_id)
            try:
                return self._content.update_video(video)
            except ConcurrentUpdateError:
                if attempt >= MAX_UPDATE_ATTEMPTS:
                    raise
                self._logger.debug("Policy update for %s lost a race, retrying", video_id)


def fold_stage_result(video: Video, stage: PolicyStage, stage_status: StageStatus,
                      summary: str, findings: list[PolicyFinding], now: datetime) -> None:
    """Update ``video.policy`` in place with one stage's result."""
    policy = video.policy
    policy.stages[stage] = stage_status
    policy.overall = derive_overall_status(policy.stages.values())
    if policy.overall is OverallStatus.BLOCK:
        reasons = list(dict.fromkeys(policy.block_reasons + extract_block_reasons(findings)))
        policy.block_reasons = reasons or ([summary] if summary else [])
    else:
        policy.block_reasons = []
    policy.summary = f"{STAGE_LABELS[stage]}: {summary}"
    policy.last_checked_at = now
