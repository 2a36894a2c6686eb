from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Protocol

import redis
from redis.exceptions import RedisError

from agency.core.config import settings

_LOG = logging.getLogger("agency.rate_limit")

KEY_PREFIX = "agency:rl"
SWEEP_INTERVAL_SECONDS = 60


@dataclass
class RateLimitResult:
    allowed: bool
    retry_after_seconds: int
    current_value: int


class RateLimiter(Protocol):
    def hit(self, key: str, *, limit: int, window_seconds: int) -> RateLimitResult:
        ...


def _window(window_seconds: int) -> int:
    return max(int(window_seconds), 1)


class InMemoryRateLimiter:
    """Fixed window per key, process local.

    Expired windows are swept at most once a minute, on the next hit.
    """

    def __init__(self):
        self._windows: dict[str, tuple[int, datetime]] = {}
        self._lock = Lock()
        self._next_sweep = datetime.now(timezone.utc) + timedelta(seconds=SWEEP_INTERVAL_SECONDS)

    def __len__(self) -> int:
        return len(self._windows)

    def sweep(self, now: datetime | None = None) -> int:
        now = now or datetime.now(timezone.utc)
        with self._lock:
            return self._sweep_locked(now)

    def _sweep_locked(self, now: datetime) -> int:
        expired = [key for key, (_, resets_at) in self._windows.items() if resets_at <= now]
        for key in expired:
            del self._windows[key]
        self._next_sweep = now + timedelta(seconds=SWEEP_INTERVAL_SECONDS)
        return len(expired)

    def hit(self, key: str, *, limit: int, window_seconds: int) -> RateLimitResult:
        now = datetime.now(timezone.utc)
        with self._lock:
            if now >= self._next_sweep:
                self._sweep_locked(now)
            count, resets_at = self._windows.get(key, (0, now))
            if resets_at <= now:
                count = 0
                resets_at = now + timedelta(seconds=_window(window_seconds))
            count += 1
            self._windows[key] = (count, resets_at)
        retry_after = max(0, int((resets_at - now).total_seconds()))
        return RateLimitResult(allowed=count <= limit, retry_after_seconds=retry_after, current_value=count)


class RedisRateLimiter:
    """INCR + EXPIRE on first hit, shared by every worker.

    While redis is unreachable hits are counted in a process-local fallback.
    """

    def __init__(self, client: redis.Redis):
        self.client = client
        self.fallback = InMemoryRateLimiter()

    def hit(self, key: str, *, limit: int, window_seconds: int) -> RateLimitResult:
        window = _window(window_seconds)
        try:
            pipe = self.client.pipeline()
            pipe.incr(key)
            pipe.ttl(key)
            count, ttl = pipe.execute()
            count = int(count)
            if count == 1 or int(ttl) < 0:
                self.client.expire(key, window)
                ttl = window
        except RedisError as exc:
            _LOG.warning("redis hit failed, counting in memory: %s", exc)
            return self.fallback.hit(key, limit=limit, window_seconds=window)
        return RateLimitResult(allowed=count <= limit, retry_after_seconds=int(ttl), current_value=count)


def hashed_key(*parts: str) -> str:
    # client ips and emails stay out of redis in plain text
    digest = hashlib.sha256("|".join(str(part or "").strip().lower() for part in parts).encode("utf-8")).hexdigest()
    return digest[:32]


def submission_key(form_key: str, client_ip: str) -> str:
    return f"{KEY_PREFIX}:submit:{form_key}:{hashed_key(client_ip)}"


def unlock_key(client_ip: str) -> str:
    return f"{KEY_PREFIX}:unlock:{hashed_key(client_ip)}"


_cached_limiter: RateLimiter | None = None


def _build_limiter() -> RateLimiter:
    try:
        client = redis.Redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_timeout=0.4,
            socket_connect_timeout=0.4,
        )
        client.ping()
        return RedisRateLimiter(client)
    except (RedisError, ValueError) as exc:
        _LOG.warning("redis unavailable, using in-memory limiter: %s", exc)
        return InMemoryRateLimiter()


def get_rate_limiter() -> RateLimiter:
    global _cached_limiter
    if _cached_limiter is None:
        _cached_limiter = _build_limiter()
    return _cached_limiter


def reset_rate_limiter_for_tests() -> None:
    global _cached_limiter
    _cached_limiter = None
