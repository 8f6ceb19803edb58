"""Pluggable persistence backends behind Protocol interfaces."""

from __future__ import annotations

from typing import NamedTuple

from newsreel.core.config import AppSettings
from newsreel.core.protocols import ICacheBackend, IContentStore, IObjectStore, IRunStore
from newsreel.persistence.dynamodb_backend import DynamoDBContentStore, DynamoDBRunStore
from newsreel.persistence.redis_backend import RedisCacheBackend
from newsreel.persistence.s3_backend import S3ObjectStore


class Persistence(NamedTuple):
    runs: IRunStore
    content: IContentStore
    cache: ICacheBackend
    objects: IObjectStore


def create_persistence(settings: AppSettings | None = None) -> Persistence:
    """Create wired-up persistence backends from application settings."""
    if settings is None:
        settings = AppSettings()

    cache = RedisCacheBackend(
        host=settings.redis.host,
        port=settings.redis.port,
        db=settings.redis.db,
    )

    runs = DynamoDBRunStore(
        table_suffix=settings.dynamodb.table_suffix,
        region=settings.dynamodb.region,
        endpoint_url=settings.dynamodb.endpoint_url,
    )

    content = DynamoDBContentStore(
        table_suffix=settings.dynamodb.table_suffix,
        region=settings.dynamodb.region,
        endpoint_url=settings.dynamodb.endpoint_url,
    )

    objects = S3ObjectStore(
        bucket=settings.s3.bucket,
        region=settings.s3.region,
        endpoint_url=settings.s3.endpoint_url,
        public_base_url=settings.s3.public_base_url,
    )

    return Persistence(runs=runs, content=content, cache=cache, objects=objects)
