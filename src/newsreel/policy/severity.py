"""Pure severity aggregation. Every function here is total and monotonic."""

from __future__ import annotations

from typing import Iterable, Literal

from newsreel.models.policy import FindingSeverity, OverallStatus, PolicyFinding, StageStatus

_STAGE_FOR_FINDING = {
    FindingSeverity.PASS: StageStatus.CLEAN,
    FindingSeverity.WARN: StageStatus.WARN,
    FindingSeverity.REVIEW: StageStatus.REVIEW,
    FindingSeverity.BLOCK: StageStatus.BLOCK,
}

_OVERALL_FOR_STAGE = {
    StageStatus.CLEAN: OverallStatus.CLEAN,
    StageStatus.WARN: OverallStatus.WARN,
    StageStatus.REVIEW: OverallStatus.REVIEW,
    StageStatus.BLOCK: OverallStatus.BLOCK,
}


def _severity_of(item: PolicyFinding | FindingSeverity) -> FindingSeverity:
    return item.severity if isinstance(item, PolicyFinding) else item


def derive_stage_status(findings: Iterable[PolicyFinding | FindingSeverity]) -> StageStatus:
    """Most severe finding, PASS collapsing to CLEAN. No findings is CLEAN."""
    severities = [_severity_of(f) for f in findings]
    if not severities:
        return StageStatus.CLEAN
    return _STAGE_FOR_FINDING[max(severities)]


def derive_overall_status(stages: Iterable[StageStatus]) -> OverallStatus:
    """Most severe stage. PENDING until some stage has reported."""
    reported = list(stages)
    if not reported:
        return OverallStatus.PENDING
    return _OVERALL_FOR_STAGE[max(reported)]


def extract_block_reasons(findings: Iterable[PolicyFinding]) -> list[str]:
    """``"CODE: reason"`` for every BLOCK finding, duplicates removed, order kept."""
    reasons = (f"{f.check_code}: {f.reason}" for f in findings if f.severity is FindingSeverity.BLOCK)
    return list(dict.fromkeys(reasons))


def upload_privacy(overall: OverallStatus) -> Literal["public", "private"] | None:
    """Publish visibility for an overall status. BLOCK means no upload at all."""
    if overall is OverallStatus.BLOCK:
        return None
    if overall is OverallStatus.CLEAN:
        return "public"
    return "private"


def normalize_overall_status(value: str | None) -> OverallStatus:
    """Lenient parse of stored or user-supplied status text. Unknown is PENDING."""
    if not value:
        return OverallStatus.PENDING
    try:
        return OverallStatus(value.strip().upper())
    except ValueError:
        return OverallStatus.PENDING


def normalize_finding_severity(value: object) -> FindingSeverity:
    """Lenient parse of a model-reported severity. Unknown text is PASS."""
    if isinstance(value, str):
        try:
            return FindingSeverity(value.strip().upper())
        except ValueError:
            pass
    return FindingSeverity.PASS
