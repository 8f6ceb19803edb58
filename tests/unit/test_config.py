"""Tests for configuration defaults and env overrides."""

from __future__ import annotations

from newsreel.core.config import AppSettings, PipelineConfig, RedisConfig


def test_default_settings():
    settings = AppSettings()
    assert settings.environment == "dev"
    assert settings.llm.provider == "mock"
    assert settings.scheduler.enabled is False


def test_pipeline_defaults():
    config = PipelineConfig()
    assert config.cache_ttl_seconds == 2100
    assert config.snapshot_retention_days == 30
    assert config.fan_out_delay_seconds == 10.0
    assert config.fan_out_max_items is None
    assert config.target_utc_offset_hours == 9


def test_env_prefix_overrides(monkeypatch):
    monkeypatch.setenv("NEWSREEL_PIPELINE_FAN_OUT_MAX_ITEMS", "5")
    monkeypatch.setenv("NEWSREEL_REDIS_PORT", "6380")
    assert PipelineConfig().fan_out_max_items == 5
    assert RedisConfig().port == 6380
