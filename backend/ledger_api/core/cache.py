import logging
import pickle
import threading
import time
from typing import Any

from redis import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


def connect_redis(redis_url: str | None) -> Redis | None:
    """Return a live Redis client, or None to stay on the in-process store."""
    if not redis_url:
        return None
    try:
        client = Redis.from_url(redis_url, decode_responses=False)
        client.ping()
    except (RedisError, ValueError):
        logger.warning("Redis unreachable at startup, using in-process state")
        return None
    return client


class SummaryCache:
    """Short-lived cache for report payloads, keyed ``<caller_id>:<report>:...``.

    With Redis configured it is the only store, so an invalidation made by one
    worker is seen by all of them. The local dict serves only when Redis is off
    or a Redis call fails.
    """

    def __init__(self, redis_url: str | None = None, key_prefix: str = "ledger") -> None:
        self._entries: dict[str, tuple[float, Any]] = {}
        self._lock = threading.Lock()
        self._key_prefix = key_prefix
        self._redis = connect_redis(redis_url)

    def _redis_key(self, key: str) -> str:
        return f"{self._key_prefix}:summary:{key}"

    def get(self, key: str) -> Any | None:
        if self._redis is not None:
            try:
                raw = self._redis.get(self._redis_key(key))
                return None if raw is None else pickle.loads(raw)
            except (RedisError, pickle.PickleError, ValueError, EOFError):
                logger.warning("Redis cache read failed for %s", key)

        with self._lock:
            entry = self._entries.get(key)
            if not entry:
                return None
            expires_at, value = entry
            if time.time() > expires_at:
                self._entries.pop(key, None)
                return None
            return value

    def set(self, key: str, value: Any, ttl: int) -> None:
        ttl = max(1, ttl)
        if self._redis is not None:
            try:
                self._redis.setex(self._redis_key(key), ttl, pickle.dumps(value, protocol=pickle.HIGHEST_PROTOCOL))
                return
            except (RedisError, pickle.PickleError, TypeError):
                logger.warning("Redis cache write failed for %s", key)

        with self._lock:
            self._entries[key] = (time.time() + ttl, value)

    def invalidate_prefix(self, prefix: str) -> None:
        if self._redis is not None:
            try:
                pattern = self._redis_key(f"{prefix}*")
                cursor = 0
                while True:
                    cursor, keys = self._redis.scan(cursor=cursor, match=pattern, count=200)
                    if keys:
                        self._redis.delete(*keys)
                    if cursor == 0:
                        break
            except RedisError:
                logger.warning("Redis cache invalidation failed for prefix %s", prefix)

        # Entries written while Redis was failing live here.
        with self._lock:
            for key in [k for k in self._entries if k.startswith(prefix)]:
                self._entries.pop(key, None)
