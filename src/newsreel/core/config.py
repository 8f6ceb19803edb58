"""Application configuration using pydantic-settings with grouped env prefixes."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic_settings import BaseSettings


class LLMConfig(BaseSettings):
    """Generative content service configuration."""

    model_config = {"env_prefix": "NEWSREEL_LLM_"}

    provider: Literal["mock"] = "mock"
    selection_model: str = "gemini-3-flash-preview"
    script_policy_model: str = "gemini-3-flash-preview"
    asset_policy_model: str = "gemini-3-pro-preview"
    script_model: str = "gemini-3-pro-preview"
    image_model: str = "gemini-3-pro-image-preview"
    tts_model: str = "gemini-2.5-flash-preview-tts"


class BrowserConfig(BaseSettings):
    """Browser automation service configuration."""

    model_config = {"env_prefix": "NEWSREEL_BROWSER_"}

    provider: Literal["mock"] = "mock"
    timeout_seconds: float = 20.0
    top_picks_url: str = "https://news.yahoo.co.jp/topics/top-picks"


class MediaConfig(BaseSettings):
    """Image, speech and render services configuration."""

    model_config = {"env_prefix": "NEWSREEL_MEDIA_"}

    provider: Literal["mock"] = "mock"
    renderer: Literal["mock"] = "mock"


class PublishConfig(BaseSettings):
    """Publish target configuration."""

    model_config = {"env_prefix": "NEWSREEL_PUBLISH_"}

    provider: Literal["mock"] = "mock"
    poll_interval_seconds: float = 30.0
    max_polls: int = 120  # one hour at the default interval


class DynamoDBConfig(BaseSettings):
    """DynamoDB configuration."""

    model_config = {"env_prefix": "NEWSREEL_DYNAMO_"}

    table_suffix: str = ""  # "-dev", "-uat", or "" for prod
    region: str = "us-east-1"
    endpoint_url: str | None = None  # LocalStack override


class RedisConfig(BaseSettings):
    """Redis cache configuration."""

    model_config = {"env_prefix": "NEWSREEL_REDIS_"}

    host: str = "localhost"
    port: int = 6379
    db: int = 0


class S3Config(BaseSettings):
    """S3 object storage configuration."""

    model_config = {"env_prefix": "NEWSREEL_S3_"}

    bucket: str = "newsreel-assets"
    region: str = "us-east-1"
    endpoint_url: str | None = None  # LocalStack override
    public_base_url: str = ""


class PipelineConfig(BaseSettings):
    """Acquisition and orchestration tunables."""

    model_config = {"env_prefix": "NEWSREEL_PIPELINE_"}

    cache_key: str = "news:top-picks"
    cache_ttl_seconds: int = 2100  # one missed 15-minute refresh plus slack
    snapshot_retention_days: int = 30
    poll_interval_seconds: float = 1.0
    fan_out_delay_seconds: float = 10.0
    fan_out_max_items: Optional[int] = None
    rescrape_after_minutes: int = 15
    rescrape_batch_limit: int = 50
    selection_lookback_hours: int = 24
    target_utc_offset_hours: int = 9
    auto_advance: bool = True  # script, asset and render runs start the next stage


class SchedulerConfig(BaseSettings):
    """Background tick configuration."""

    model_config = {"env_prefix": "NEWSREEL_SCHEDULER_"}

    enabled: bool = False
    tick_seconds: float = 900.0


class AppSettings(BaseSettings):
    """Root application settings aggregating all sub-configs."""

    model_config = {"env_prefix": "NEWSREEL_"}

    environment: Literal["dev", "uat", "prod"] = "dev"
    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "text"

    llm: LLMConfig = LLMConfig()
    browser: BrowserConfig = BrowserConfig()
    media: MediaConfig = MediaConfig()
    publish: PublishConfig = PublishConfig()
    dynamodb: DynamoDBConfig = DynamoDBConfig()
    redis: RedisConfig = RedisConfig()
    s3: S3Config = S3Config()
    pipeline: PipelineConfig = PipelineConfig()
    scheduler: SchedulerConfig = SchedulerConfig()
