"""Sliding-window throttles guarding the login endpoint.

Two backends share the same ``allow``/``reset`` surface: an in-process one for a
single worker and a Redis one for deployments running several workers.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from threading import Lock
from typing import Deque, DefaultDict, Final, Protocol

from redis import Redis
from redis.exceptions import ResponseError

from ..config import Settings

logger = logging.getLogger(__name__)


class LoginThrottle(Protocol):
    def allow(self, key: str) -> bool:
        ...

    def reset(self, key: str) -> None:
        ...


class MemoryLoginThrottle:
    """Thread-safe sliding window kept in process memory.

    Keys whose window has drained are evicted, and every ``sweep_every`` calls
    the whole map is swept so keys that are never retried do not accumulate.
    """

    def __init__(self, max_attempts: int, window_seconds: int, *, sweep_every: int = 256) -> None:
        self._max_attempts = max_attempts
        self._window = window_seconds
        self._sweep_every = sweep_every
        self._calls = 0
        self._attempts: DefaultDict[str, Deque[float]] = DefaultDict(deque)
        self._lock = Lock()

    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._attempts)

    def allow(self, key: str) -> bool:
        """Record an attempt for ``key`` and return ``False`` once the window is full."""
        now = time.monotonic()
        with self._lock:
            self._calls += 1
            if self._calls % self._sweep_every == 0:
                self._sweep(now)
            attempts = self._attempts[key]
            self._trim(attempts, now)
            if len(attempts) >= self._max_attempts:
                return False
            attempts.append(now)
            return True

    def reset(self, key: str) -> None:
        with self._lock:
            self._attempts.pop(key, None)

    def _trim(self, attempts: Deque[float], now: float) -> None:
        while attempts and now - attempts[0] > self._window:
            attempts.popleft()

    def _sweep(self, now: float) -> None:
        for key in list(self._attempts):
            attempts = self._attempts[key]
            self._trim(attempts, now)
            if not attempts:
                del self._attempts[key]


class RedisLoginThrottle:
    """Distributed sliding window implemented with Redis sorted sets."""

    _LUA_SCRIPT: Final[str] = """
    local key = KEYS[1]
    local counter_key = key .. ':seq'
    local window_ms = tonumber(ARGV[1])
    local max_attempts = tonumber(ARGV[2])
    local now_ms = tonumber(ARGV[3])

    redis.call('ZREMRANGEBYSCORE', key, 0, now_ms - window_ms)
    if redis.call('ZCARD', key) >= max_attempts then
        return 0
    end
    local seq = redis.call('INCR', counter_key)
    redis.call('PEXPIRE', counter_key, window_ms)
    redis.call('ZADD', key, now_ms, tostring(now_ms) .. ':' .. tostring(seq))
    redis.call('PEXPIRE', key, window_ms)
    return 1
    """

    def __init__(
        self,
        client: Redis,
        *,
        max_attempts: int,
        window_seconds: int,
        key_prefix: str = "docvault:login",
    ) -> None:
        self._client = client
        self._max_attempts = max_attempts
        self._window_ms = window_seconds * 1000
        self._key_prefix = key_prefix
        self._script = client.register_script(self._LUA_SCRIPT)

    def _key(self, key: str) -> str:
        return f"{self._key_prefix}:{key}"

    def allow(self, key: str) -> bool:
        now_ms = int(time.time() * 1000)
        redis_key = self._key(key)
        try:
            result = self._script(keys=[redis_key], args=[self._window_ms, self._max_attempts, now_ms])
            return int(result) == 1
        except ResponseError as exc:
            message = str(exc).lower()
            if "unknown command `evalsha`" in message or "unknown command `eval`" in message:
                return self._allow_without_lua(redis_key, now_ms)
            raise

    def reset(self, key: str) -> None:
        redis_key = self._key(key)
        self._client.delete(redis_key, f"{redis_key}:seq")

    def _allow_without_lua(self, redis_key: str, now_ms: int) -> bool:
        """Non-atomic equivalent of the Lua script for servers without scripting."""
        self._client.zremrangebyscore(redis_key, 0, now_ms - self._window_ms)
        if self._client.zcard(redis_key) >= self._max_attempts:
            return False
        seq = self._client.incr(f"{redis_key}:seq")
        self._client.pexpire(f"{redis_key}:seq", self._window_ms)
        self._client.zadd(redis_key, {f"{now_ms}:{seq}": now_ms})
        self._client.pexpire(redis_key, self._window_ms)
        return True


def build_login_throttle(settings: Settings) -> LoginThrottle:
    """Instantiate the configured throttle backend, preferring Redis when reachable."""
    if settings.rate_limit_backend == "redis" and settings.redis_url:
        try:
            client = Redis.from_url(settings.redis_url)
            client.ping()
        except Exception as exc:  # pragma: no cover - depends on a live redis
            logger.warning("redis login throttle unavailable, falling back to in-memory: %s", exc)
        else:
            logger.info("login throttle configured for redis backend")
            return RedisLoginThrottle(
                client,
                max_attempts=settings.login_rate_limit_requests,
                window_seconds=settings.login_rate_limit_window_seconds,
            )

    logger.info("login throttle using in-memory backend")
    return MemoryLoginThrottle(
        max_attempts=settings.login_rate_limit_requests,
        window_seconds=settings.login_rate_limit_window_seconds,
    )
