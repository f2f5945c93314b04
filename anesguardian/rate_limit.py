"""Sliding-window rate limiting with named policies and an optional Redis backend."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
import logging
from math import ceil
from secrets import token_hex
from threading import Lock
from time import monotonic, time
from typing import Protocol

from redis.asyncio import Redis
from redis.exceptions import RedisError

from anesguardian.config import Settings


@dataclass(slots=True)
class RateLimitResult:
    """Outcome of one hit against a client's window.

    ``reset_after_seconds`` is how long until the oldest counted hit leaves
    the window, which is when ``remaining`` next grows.
    """

    allowed: bool
    retry_after_seconds: int
    remaining: int = 0
    reset_after_seconds: int = 0


@dataclass(frozen=True, slots=True)
class RateLimitPolicy:
    """A named limit applied per client, with the error code reported on denial."""

    name: str
    limit: int
    window_seconds: int
    error_code: str
    message: str


class RateLimitBackendError(RuntimeError):
    """Raised when the configured rate-limit backend is unavailable."""


class RateLimiter(Protocol):
    async def check(self, *, key: str, limit: int, window_seconds: int) -> RateLimitResult:
        """Count one hit for ``key`` unless its window is already full."""

    async def close(self) -> None:
        ...

    async def reset(self) -> None:
        """Forget every client window."""


def build_policies(settings: Settings) -> dict[str, RateLimitPolicy]:
    """Return the API and upload policies keyed by name."""

    return {
        "api": RateLimitPolicy(
            name="api",
            limit=settings.api_rate_limit,
            window_seconds=settings.api_rate_limit_window_seconds,
            error_code="RATE_LIMIT_EXCEEDED",
            message="Too many requests, please try again later",
        ),
        "upload": RateLimitPolicy(
            name="upload",
            limit=settings.upload_rate_limit,
            window_seconds=settings.upload_rate_limit_window_seconds,
            error_code="UPLOAD_RATE_LIMIT_EXCEEDED",
            message="Too many file uploads, please try again later",
        ),
    }


def _seconds_until(expires_at: float, now: float) -> int:
    return max(1, ceil(expires_at - now))


def _denied_without_limit(window_seconds: int) -> RateLimitResult:
    wait = max(window_seconds, 1)
    return RateLimitResult(allowed=False, retry_after_seconds=wait, reset_after_seconds=wait)


class SlidingWindowRateLimiter:
    """Simple in-memory sliding-window limiter keyed by arbitrary strings.

    Keys whose newest hit is older than the longest window seen are dropped
    on a periodic sweep, so one-off clients do not accumulate.
    """

    def __init__(self, *, sweep_interval_seconds: float = 60.0) -> None:
        self._hits: dict[str, deque[float]] = {}
        self._lock = Lock()
        self._sweep_interval_seconds = sweep_interval_seconds
        self._max_window_seconds = 0
        self._last_sweep = monotonic()

    @property
    def tracked_keys(self) -> int:
        return len(self._hits)

    def _sweep(self, now: float) -> None:
        if now - self._last_sweep < self._sweep_interval_seconds:
            return
        self._last_sweep = now
        cutoff = now - self._max_window_seconds
        stale = [key for key, hits in self._hits.items() if not hits or hits[-1] <= cutoff]
        for key in stale:
            del self._hits[key]

    async def check(self, *, key: str, limit: int, window_seconds: int) -> RateLimitResult:
        if limit <= 0:
            return _denied_without_limit(window_seconds)

        now = monotonic()
        with self._lock:
            self._max_window_seconds = max(self._max_window_seconds, window_seconds)
            self._sweep(now)

            hits = self._hits.setdefault(key, deque())
            while hits and hits[0] <= now - window_seconds:
                hits.popleft()

            allowed = len(hits) < limit
            if allowed:
                hits.append(now)
            reset_after = _seconds_until(hits[0] + window_seconds, now)
            return RateLimitResult(
                allowed=allowed,
                retry_after_seconds=0 if allowed else reset_after,
                remaining=limit - len(hits),
                reset_after_seconds=reset_after,
            )

    async def close(self) -> None:
        return

    async def reset(self) -> None:
        with self._lock:
            self._hits.clear()


class RedisSlidingWindowRateLimiter:
    """Redis-backed sliding-window limiter shared across app instances.

    Each client window is a sorted set of hit timestamps. The script trims,
    counts and records atomically, then returns ``{allowed, remaining,
    oldest_ms}`` so callers can derive both Retry-After and RateLimit-Reset.
    """

    _CHECK_SCRIPT = """
local now_ms = tonumber(ARGV[1])
local window_ms = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])

redis.call("ZREMRANGEBYSCORE", KEYS[1], "-inf", now_ms - window_ms)
local hits = redis.call("ZCARD", KEYS[1])
local allowed = 0
if hits < limit then
  redis.call("ZADD", KEYS[1], now_ms, ARGV[4])
  hits = hits + 1
  allowed = 1
end
redis.call("PEXPIRE", KEYS[1], window_ms + 1000)

local first = redis.call("ZRANGE", KEYS[1], 0, 0, "WITHSCORES")
return {allowed, limit - hits, tonumber(first[2]) or now_ms}
"""

    def __init__(self, *, redis_url: str, prefix: str = "anesguardian:rate_limit") -> None:
        self._client = Redis.from_url(redis_url, encoding="utf-8", decode_responses=True)
        self._check_script = self._client.register_script(self._CHECK_SCRIPT)
        self._prefix = prefix

    async def check(self, *, key: str, limit: int, window_seconds: int) -> RateLimitResult:
        if limit <= 0:
            return _denied_without_limit(window_seconds)

        # Scores are compared across processes, so use wall-clock milliseconds.
        now_ms = int(time() * 1000)
        try:
            reply = await self._check_script(
                keys=[f"{self._prefix}:{key}"],
                args=[now_ms, window_seconds * 1000, limit, f"{now_ms}:{token_hex(8)}"],
            )
        except RedisError as exc:  # pragma: no cover - backend failure path
            raise RateLimitBackendError("Rate-limit backend unavailable") from exc

        try:
            allowed, remaining, oldest_ms = (int(item) for item in reply)
        except (TypeError, ValueError) as exc:
            raise RateLimitBackendError("Rate-limit backend returned unexpected response") from exc

        reset_after = _seconds_until((oldest_ms + window_seconds * 1000) / 1000, now_ms / 1000)
        return RateLimitResult(
            allowed=bool(allowed),
            retry_after_seconds=0 if allowed else reset_after,
            remaining=max(0, remaining),
            reset_after_seconds=reset_after,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def reset(self) -> None:
        try:
            keys = [key async for key in self._client.scan_iter(match=f"{self._prefix}:*")]
            if keys:
                await self._client.unlink(*keys)
        except RedisError as exc:  # pragma: no cover - backend failure path
            raise RateLimitBackendError("Rate-limit backend unavailable") from exc


def create_rate_limiter(
    settings: Settings,
    *,
    logger: logging.Logger | None = None,
) -> tuple[RateLimiter, bool]:
    """Build the limiter named by ``settings.rate_limit_backend``.

    Returns the limiter and whether its state is shared between processes.
    ``auto`` picks Redis when a URL is configured and memory otherwise.
    """

    backend = settings.rate_limit_backend.strip().lower()
    if backend not in {"memory", "redis", "auto"}:
        raise ValueError(f"Unsupported RATE_LIMIT_BACKEND value: {settings.rate_limit_backend}")
    if backend == "redis" and not settings.redis_url:
        raise RuntimeError("RATE_LIMIT_BACKEND=redis requires REDIS_URL")

    if backend != "memory" and settings.redis_url:
        limiter = RedisSlidingWindowRateLimiter(
            redis_url=settings.redis_url,
            prefix=settings.rate_limit_prefix,
        )
        return limiter, True

    if backend == "auto" and logger:
        logger.warning("rate_limit_backend_auto_fallback backend=memory reason=redis_url_missing")
    return SlidingWindowRateLimiter(), False
