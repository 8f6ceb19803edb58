"""Unit tests for S3ObjectStore using moto."""

from __future__ import annotations

import boto3
import pytest
from moto import mock_aws

from newsreel.core.exceptions import StorageError
from newsreel.persistence.s3_backend import S3ObjectStore

BUCKET = "test-newsreel-assets"


@pytest.fixture
def s3_backend():
    with mock_aws():
        client = boto3.client("s3", region_name="us-east-1")
        client.create_bucket(Bucket=BUCKET)
        yield S3ObjectStore(bucket=BUCKET, region="us-east-1")


class TestPut:
    def test_put_returns_public_url(self, s3_backend):
        url = s3_backend.put("policy/v1/prompt.txt", b"hello", "text/plain")
        assert url == f"https://{BUCKET}.s3.us-east-1.amazonaws.com/policy/v1/prompt.txt"

    def test_put_uses_configured_public_base(self):
        with mock_aws():
            boto3.client("s3", region_name="us-east-1").create_bucket(Bucket=BUCKET)
            store = S3ObjectStore(bucket=BUCKET, public_base_url="https://cdn.example.com/")
            assert store.put("a/b.png", b"x") == "https://cdn.example.com/a/b.png"

    def test_put_stores_bytes_and_content_type(self, s3_backend):
        s3_backend.put("assets/thumb.png", b"\x89PNG", "image/png")
        assert s3_backend.read("assets/thumb.png") == b"\x89PNG"
        assert s3_backend.content_type("assets/thumb.png") == "image/png"


class TestRead:
    def test_read_missing_key_raises_storage_error(self, s3_backend):
        with pytest.raises(StorageError):
            s3_backend.read("does/not/exist.txt")


class TestDelete:
    def test_delete_removes_object(self, s3_backend):
        s3_backend.put("tmp/file.txt", b"data")
        s3_backend.delete("tmp/file.txt")
        with pytest.raises(StorageError):
            s3_backend.read("tmp/file.txt")

    def test_delete_missing_key_is_a_noop(self, s3_backend):
        s3_backend.delete("never/existed.txt")


class TestMissingBucket:
    def test_put_into_missing_bucket_raises_storage_error(self):
        with mock_aws():
            store = S3ObjectStore(bucket="no-such-bucket")
            with pytest.raises(StorageError):
                store.put("k", b"v")
