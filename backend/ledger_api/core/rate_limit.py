import logging
import math
import secrets
import threading
import time
from dataclasses import dataclass

from redis.exceptions import RedisError

from ledger_api.core.cache import connect_redis

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateRule:
    """At most ``limit`` attempts per subject inside a sliding ``window_seconds``."""

    scope: str
    limit: int
    window_seconds: int


# Returns 0 when the attempt is recorded, otherwise the milliseconds until the
# oldest attempt in the window expires.
_ATTEMPT_SCRIPT = """
local key = KEYS[1]
local now_ms = tonumber(ARGV[1])
local window_ms = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])

redis.call("ZREMRANGEBYSCORE", key, "-inf", now_ms - window_ms)
if redis.call("ZCARD", key) >= limit then
  local oldest = redis.call("ZRANGE", key, 0, 0, "WITHSCORES")
  redis.call("PEXPIRE", key, window_ms)
  return math.max(1, tonumber(oldest[2]) + window_ms - now_ms)
end

redis.call("ZADD", key, now_ms, ARGV[4])
redis.call("PEXPIRE", key, window_ms)
return 0
"""


class RateLimiter:
    """Attempt counter for login and registration.

    Attempts live in a Redis sorted set per ``<scope>:<subject>`` so every
    worker shares them; a local list per key is used when Redis is off.
    """

    def __init__(self, redis_url: str | None = None, key_prefix: str = "ledger") -> None:
        self._attempts: dict[str, list[float]] = {}
        self._lock = threading.Lock()
        self._key_prefix = key_prefix
        self._redis = connect_redis(redis_url)

    def _key(self, rule: RateRule, subject: str) -> str:
        return f"{rule.scope}:{subject.strip().lower()}"

    def _redis_attempt(self, key: str, rule: RateRule) -> int | None:
        now_ms = int(time.time() * 1000)
        try:
            wait_ms = self._redis.eval(
                _ATTEMPT_SCRIPT,
                1,
                f"{self._key_prefix}:attempts:{key}",
                now_ms,
                rule.window_seconds * 1000,
                max(1, rule.limit),
                f"{now_ms}-{secrets.token_hex(4)}",
            )
        except RedisError:
            logger.warning("Redis attempt counter failed for %s, counting locally", key)
            return None
        return math.ceil(int(wait_ms or 0) / 1000)

    def attempt(self, rule: RateRule, subject: str) -> int:
        """Record one attempt. Returns 0 when allowed, else seconds to wait."""
        key = self._key(rule, subject)
        if self._redis is not None:
            wait = self._redis_attempt(key, rule)
            if wait is not None:
                return wait

        now = time.time()
        with self._lock:
            recent = [ts for ts in self._attempts.get(key, []) if ts > now - rule.window_seconds]
            if len(recent) >= max(1, rule.limit):
                self._attempts[key] = recent
                return max(1, math.ceil(recent[0] + rule.window_seconds - now))
            recent.append(now)
            self._attempts[key] = recent
            return 0

    def reset(self, rule: RateRule, subject: str) -> None:
        key = self._key(rule, subject)
        if self._redis is not None:
            try:
                self._redis.delete(f"{self._key_prefix}:attempts:{key}")
            except RedisError:
                logger.warning("Redis attempt reset failed for %s", key)
        with self._lock:
            self._attempts.pop(key, None)
