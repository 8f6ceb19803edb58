"""Policy finding, stage, and overall severity models.

Each severity enum carries an explicit ``ordinal``; comparisons between
members of the same enum use it instead of the string value.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, Field


class _Severity(StrEnum):
    """Base for string enums ordered by an explicit ordinal."""

    def __new__(cls, value: str, ordinal: int):
        member = str.__new__(cls, value)
        member._value_ = value
        member.ordinal = ordinal
        return member

    def _check(self, other: object) -> bool:
        return type(other) is type(self)

    def __lt__(self, other):
        if not self._check(other):
            return NotImplemented
        return self.ordinal < other.ordinal

    def __le__(self, other):
        if not self._check(other):
            return NotImplemented
        return self.ordinal <= other.ordinal

    def __gt__(self, other):
        if not self._check(other):
            return NotImplemented
        return self.ordinal > other.ordinal

    def __ge__(self, other):
        if not self._check(other):
            return NotImplemented
        return self.ordinal >= other.ordinal


class FindingSeverity(_Severity):
    PASS = ("PASS", 0)
    WARN = ("WARN", 1)
    REVIEW = ("REVIEW", 2)
    BLOCK = ("BLOCK", 3)


class StageStatus(_Severity):
    CLEAN = ("CLEAN", 0)
    WARN = ("WARN", 1)
    REVIEW = ("REVIEW", 2)
    BLOCK = ("BLOCK", 3)


class OverallStatus(_Severity):
    PENDING = ("PENDING", 0)
    CLEAN = ("CLEAN", 1)
    WARN = ("WARN", 2)
    REVIEW = ("REVIEW", 3)
    BLOCK = ("BLOCK", 4)


class PolicyStage(StrEnum):
    SCRIPT_LIGHT = "script_light"
    ASSET_STRONG = "asset_strong"


class PolicyFinding(BaseModel):
    """A single compliance-check result."""

    check_code: str
    severity: FindingSeverity = FindingSeverity.PASS
    check_label: str = ""
    reason: str = ""
    evidence: list[str] = Field(default_factory=list)


class PolicyRule(BaseModel):
    """One auditable rule of a policy stage."""

    code: str
    label: str
    stage: PolicyStage
    description: str
    block_criteria: str
    review_criteria: str
    warn_criteria: str


class PolicyRunRecord(BaseModel):
    """Persisted outcome of one policy check."""

    video_id: str
    stage: PolicyStage
    model_id: str
    status: StageStatus
    summary: str = ""
    findings: list[PolicyFinding] = Field(default_factory=list)
    prompt_key: Optional[str] = None
    response_key: Optional[str] = None
    input_tokens: int = 0
    output_tokens: int = 0
    cost: float = 0.0
    created_at: Optional[datetime] = None
