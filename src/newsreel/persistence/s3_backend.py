"""S3 object storage backend implementing IObjectStore."""

from __future__ import annotations

import boto3
from botocore.exceptions import ClientError

from newsreel.core.exceptions import StorageError


class S3ObjectStore:
    """Production IObjectStore backed by S3.

    ``put`` returns a public URL: ``public_base_url/key`` when a CDN or public
    bucket domain is configured, otherwise the virtual-hosted S3 URL.
    """

    def __init__(self, bucket: str, region: str = "us-east-1",
                 endpoint_url: str | None = None, public_base_url: str = "") -> None:
        self._bucket = bucket
        self._region = region
        self._public_base_url = public_base_url.rstrip("/")
        kwargs: dict = {"region_name": region}
        if endpoint_url:
            kwargs["endpoint_url"] = endpoint_url
        self._client = boto3.client("s3", **kwargs)

    def public_url(self, key: str) -> str:
        if self._public_base_url:
            return f"{self._public_base_url}/{key}"
        return f"https://{self._bucket}.s3.{self._region}.amazonaws.com/{key}"

    def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        try:
            self._client.put_object(
                Bucket=self._bucket, Key=key, Body=data, ContentType=content_type,
            )
        except ClientError as exc:
            raise StorageError(f"S3 put failed for {key!r}: {exc}") from exc
        return self.public_url(key)

    def read(self, key: str) -> bytes:
        try:
            resp = self._client.get_object(Bucket=self._bucket, Key=key)
            return resp["Body"].read()
        except ClientError as exc:
            raise StorageError(f"S3 read failed for {key!r}: {exc}") from exc

    def delete(self, key: str) -> None:
        try:
            self._client.delete_object(Bucket=self._bucket, Key=key)
        except ClientError as exc:
            raise StorageError(f"S3 delete failed for {key!r}: {exc}") from exc

    def content_type(self, key: str) -> str:
        try:
            resp = self._client.head_object(Bucket=self._bucket, Key=key)
            return resp.get("ContentType", "")
        except ClientError as exc:
            raise StorageError(f"S3 head failed for {key!r}: {exc}") from exc
