from __future__ import annotations

import logging
from threading import Lock
import time
from typing import Callable, Protocol

from dominio_api.errors import KeyValueStoreError


LOGGER = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def put(self, key: str, value: str, ttl_seconds: int | None = None) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemoryKeyValueStore:
    """Process-local store for development and tests.

    Entries expire lazily on read, mirroring how the shared cache behaves.
    """

    def __init__(self, *, time_fn: Callable[[], float] | None = None) -> None:
        self._time_fn = time_fn or time.time
        self._lock = Lock()
        self._entries: dict[str, tuple[str, float | None]] = {}

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at is not None and self._time_fn() >= expires_at:
                del self._entries[key]
                return None
            return value

    def put(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        expires_at = None
        if ttl_seconds is not None:
            expires_at = self._time_fn() + max(int(ttl_seconds), 1)
        with self._lock:
            self._entries[key] = (value, expires_at)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)


class RedisKeyValueStore:
    def __init__(self, redis_client, *, prefix: str = "dominio") -> None:
        self.redis_client = redis_client
        self.prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    def get(self, key: str) -> str | None:
        try:
            payload = self.redis_client.get(self._key(key))
        except Exception as exc:
            LOGGER.warning("Unable to read key from Redis", exc_info=True, extra={"key": key})
            raise KeyValueStoreError("get") from exc
        if payload is None:
            return None
        if isinstance(payload, bytes):
            return payload.decode("utf-8")
        return str(payload)

    def put(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        try:
            if ttl_seconds is None:
                self.redis_client.set(self._key(key), value)
            else:
                self.redis_client.setex(self._key(key), max(int(ttl_seconds), 1), value)
        except Exception as exc:
            LOGGER.warning("Unable to write key to Redis", exc_info=True, extra={"key": key})
            raise KeyValueStoreError("put") from exc

    def delete(self, key: str) -> None:
        try:
            self.redis_client.delete(self._key(key))
        except Exception as exc:
            LOGGER.warning("Unable to delete key from Redis", exc_info=True, extra={"key": key})
            raise KeyValueStoreError("delete") from exc


def build_key_value_store(*, redis_url: str | None) -> KeyValueStore:
    if not redis_url:
        LOGGER.info("Using in-memory key-value store (redis_url not configured)")
        return InMemoryKeyValueStore()

    try:
        import redis

        redis_client = redis.Redis.from_url(
            redis_url,
            socket_timeout=0.5,
            socket_connect_timeout=0.5,
        )
        redis_client.ping()
        LOGGER.info("Using Redis-backed key-value store")
        return RedisKeyValueStore(redis_client)
    except Exception:
        LOGGER.warning(
            "Redis key-value store unavailable; falling back to in-memory store",
            exc_info=True,
        )
        return InMemoryKeyValueStore()


__all__ = [
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "RedisKeyValueStore",
    "build_key_value_store",
]
