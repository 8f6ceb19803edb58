"""Unit tests for RedisCacheBackend using fakeredis."""

from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

import fakeredis
import pytest
import redis

from newsreel.core.exceptions import CacheError
from newsreel.persistence.redis_backend import RedisCacheBackend


@pytest.fixture
def fake_server():
    return fakeredis.FakeServer()


@pytest.fixture
def backend(fake_server):
    with patch("redis.Redis", return_value=fakeredis.FakeRedis(server=fake_server, decode_responses=True)):
        return RedisCacheBackend(host="localhost", port=6379, db=0)


class TestGet:
    def test_returns_none_on_miss(self, backend):
        assert backend.get("news:top-picks") is None

    def test_returns_stored_text(self, backend):
        data = {"top_picks": [], "scraped_at": "2026-03-01T16:00:00+00:00"}
        backend.setex("news:top-picks", 300, json.dumps(data))
        assert backend.get("news:top-picks") == json.dumps(data)


class TestSetex:
    def test_sets_ttl(self, backend, fake_server):
        backend.setex("k", 2100, "v")
        client = fakeredis.FakeRedis(server=fake_server)
        assert 0 < client.ttl("k") <= 2100

    def test_overwrites_existing_value(self, backend):
        backend.setex("k", 60, "old")
        backend.setex("k", 60, "new")
        assert backend.get("k") == "new"


class TestDelete:
    def test_removes_existing_key(self, backend):
        backend.setex("del_me", 60, "val")
        backend.delete("del_me")
        assert backend.get("del_me") is None

    def test_noop_on_missing_key(self, backend):
        backend.delete("never_existed")


class TestPing:
    def test_ping_reports_healthy(self, backend):
        assert backend.ping() is True


class TestErrorWrapping:
    @pytest.fixture
    def broken(self):
        client = MagicMock()
        client.get.side_effect = redis.ConnectionError("refused")
        client.ping.side_effect = redis.ConnectionError("refused")
        return RedisCacheBackend(client=client)

    def test_get_wraps_redis_error(self, broken):
        with pytest.raises(CacheError, match="GET failed for key='k'"):
            broken.get("k")

    def test_ping_wraps_redis_error(self, broken):
        with pytest.raises(CacheError):
            broken.ping()
