"""Request-scoped accessors for services wired in the app lifespan."""

from __future__ import annotations

from fastapi import Request

from newsreel.core.config import AppSettings
from newsreel.lifecycle.stages import StageGate
from newsreel.orchestration.engine import WorkflowEngine
from newsreel.persistence import Persistence
from newsreel.policy.checker import PolicyChecker


def get_settings(request: Request) -> AppSettings:
    return request.app.state.settings


def get_persistence(request: Request) -> Persistence:
    return request.app.state.persistence


def get_engine(request: Request) -> WorkflowEngine:
    return request.app.state.engine


def get_gate(request: Request) -> StageGate:
    return request.app.state.gate


def get_policy_checker(request: Request) -> PolicyChecker:
    return request.app.state.policy
