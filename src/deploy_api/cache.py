"""
Cache stores used by the status probe.

Mirrors the framework cache contract the dashboard relies on: put a value
with a TTL in seconds, read it back, forget it.
"""
import hashlib
import json
import logging
import os
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple

import redis

from deploy_api.settings import Settings

logger = logging.getLogger(__name__)


class CacheStore(ABC):
    """Minimal key/value store with expiry."""

    @abstractmethod
    def put(self, key: str, value: Any, ttl: int) -> None:
        pass

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        pass

    @abstractmethod
    def forget(self, key: str) -> None:
        pass


class ArrayStore(CacheStore):
    """In-process store; contents vanish with the process."""

    def __init__(self):
        self._items: Dict[str, Tuple[Any, float]] = {}

    def put(self, key: str, value: Any, ttl: int) -> None:
        self._items[key] = (value, time.time() + ttl)

    def get(self, key: str, default: Any = None) -> Any:
        item = self._items.get(key)
        if item is None:
            return default
        value, expires_at = item
        if time.time() >= expires_at:
            del self._items[key]
            return default
        return value

    def forget(self, key: str) -> None:
        self._items.pop(key, None)


class FileStore(CacheStore):
    """One JSON file per key under a cache directory."""

    def __init__(self, directory: str):
        self.directory = directory

    def _path(self, key: str) -> str:
        digest = hashlib.sha1(key.encode("utf-8")).hexdigest()
        return os.path.join(self.directory, digest)

    def put(self, key: str, value: Any, ttl: int) -> None:
        os.makedirs(self.directory, exist_ok=True)
        payload = {"value": value, "expires_at": time.time() + ttl}
        with open(self._path(key), "w") as f:
            json.dump(payload, f)

    def get(self, key: str, default: Any = None) -> Any:
        path = self._path(key)
        if not os.path.exists(path):
            return default
        try:
            with open(path, "r") as f:
                payload = json.load(f)
        except (json.JSONDecodeError, IOError):
            return default

        if time.time() >= payload.get("expires_at", 0):
            self.forget(key)
            return default
        return payload.get("value", default)

    def forget(self, key: str) -> None:
        path = self._path(key)
        if os.path.exists(path):
            os.remove(path)


class RedisStore(CacheStore):
    """Redis-backed store (ElastiCache in the deployed environments)."""

    def __init__(self, url: str, client: Optional[redis.Redis] = None):
        self.client = client or redis.Redis.from_url(url, socket_timeout=2, socket_connect_timeout=2)

    def put(self, key: str, value: Any, ttl: int) -> None:
        self.client.set(key, json.dumps(value), ex=ttl)

    def get(self, key: str, default: Any = None) -> Any:
        raw = self.client.get(key)
        if raw is None:
            return default
        return json.loads(raw)

    def forget(self, key: str) -> None:
        self.client.delete(key)


def get_cache_store(settings: Settings) -> CacheStore:
    """Build the store selected by ``settings.cache_driver``."""
    if settings.cache_driver == "redis":
        return RedisStore(settings.redis_url)
    if settings.cache_driver == "array":
        return ArrayStore()

    cache_path = settings.cache_path
    if not os.path.isabs(cache_path):
        cache_path = os.path.join(settings.app_root, cache_path)
    return FileStore(cache_path)
