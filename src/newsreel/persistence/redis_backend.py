"""Redis cache backend implementing ICacheBackend."""

from __future__ import annotations

import redis

from newsreel.core.exceptions import CacheError


class RedisCacheBackend:
    """Production ICacheBackend backed by Redis. Shared by all runs."""

    def __init__(self, host: str = "localhost", port: int = 6379, db: int = 0,
                 client: redis.Redis | None = None) -> None:
        self._client = client or redis.Redis(host=host, port=port, db=db, decode_responses=True)

    def _call(self, op: str, key: str, fn, *args):
        try:
            return fn(*args)
        except Exception as exc:
            raise CacheError(f"Redis {op} failed for key={key!r}: {exc}") from exc

    def get(self, key: str) -> str | None:
        return self._call("GET", key, self._client.get, key)

    def setex(self, key: str, ttl: int, value: str) -> None:
        self._call("SETEX", key, self._client.setex, key, ttl, value)

    def delete(self, key: str) -> None:
        self._call("DELETE", key, self._client.delete, key)

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except Exception as exc:
            raise CacheError(f"Redis PING failed: {exc}") from exc
