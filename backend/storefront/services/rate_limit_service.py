"""
Request Rate Limiting

WHY: Throttle login brute force and checkout spam per client IP and route.

DESIGN:
- RateLimiter is a capability installed on the app
  (app.extensions["rate_limiter"]), not a module-level singleton, so a
  shared counter store can replace the in-memory one when running more
  than one instance
- FixedWindowRateLimiter keeps counters in process memory: best effort,
  reset on restart, not shared across workers
- Expired windows are cleaned lazily, and the key count is capped
"""

from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass
from functools import wraps
from typing import Callable, Protocol

from flask import current_app, jsonify, request


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitConfig:
    limit: int
    window_seconds: int


@dataclass(frozen=True)
class RateLimitResult:
    success: bool
    limit: int
    remaining: int
    reset_at: float  # epoch seconds

    def retry_after(self, now: float | None = None) -> int:
        now = time.time() if now is None else now
        return max(0, math.ceil(self.reset_at - now))


PRESETS = {
    "login": RateLimitConfig(limit=5, window_seconds=60),
    "api": RateLimitConfig(limit=100, window_seconds=60),
    "admin": RateLimitConfig(limit=50, window_seconds=60),
    "strict": RateLimitConfig(limit=3, window_seconds=60),
}


class RateLimiter(Protocol):
    def hit(self, key: str, config: RateLimitConfig) -> RateLimitResult: ...


class FixedWindowRateLimiter:
    def __init__(self, max_keys: int = 10_000, clock: Callable[[], float] = time.time):
        self.max_keys = max_keys
        self._clock = clock
        self._windows: dict[str, list] = {}  # key -> [count, reset_at]
        self._lock = threading.Lock()

    def hit(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        now = self._clock()
        with self._lock:
            self._cleanup(now)
            window = self._windows.get(key)
            if window is None or window[1] <= now:
                window = [0, now + config.window_seconds]
                self._windows[key] = window
            window[0] += 1
            count, reset_at = window

        return RateLimitResult(
            success=count <= config.limit,
            limit=config.limit,
            remaining=max(0, config.limit - count),
            reset_at=reset_at,
        )

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()

    def __len__(self) -> int:
        return len(self._windows)

    def _cleanup(self, now: float) -> None:
        if len(self._windows) < self.max_keys // 2:
            return
        for key in [k for k, (_, reset_at) in self._windows.items() if reset_at <= now]:
            del self._windows[key]
        if len(self._windows) >= self.max_keys:
            oldest = sorted(self._windows.items(), key=lambda kv: kv[1][1])
            for key, _ in oldest[: self.max_keys // 2]:
                del self._windows[key]
            logger.warning("Rate limit store at capacity; evicted %d oldest windows", self.max_keys // 2)


def client_ip() -> str:
    """Peer address. Forwarded headers count only through ProxyFix (TRUSTED_PROXY_COUNT)."""
    return request.remote_addr or "unknown"


def get_rate_limiter() -> RateLimiter:
    limiter = current_app.extensions.get("rate_limiter")
    if limiter is None:
        limiter = FixedWindowRateLimiter()
        current_app.extensions["rate_limiter"] = limiter
    return limiter


def rate_limited(preset: str):
    """Reject requests over the preset's limit with 429 and rate-limit headers."""
    config = PRESETS[preset]

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            key = f"{request.path}:{client_ip()}"
            result = get_rate_limiter().hit(key, config)
            if not result.success:
                retry_after = result.retry_after()
                response = jsonify({
                    "error": "Too many requests. Please try again later.",
                    "retryAfter": retry_after,
                })
                response.status_code = 429
                response.headers["Retry-After"] = str(retry_after)
                response.headers["X-RateLimit-Limit"] = str(result.limit)
                response.headers["X-RateLimit-Remaining"] = str(result.remaining)
                response.headers["X-RateLimit-Reset"] = str(int(result.reset_at))
                return response
            return f(*args, **kwargs)

        return decorated_function
    return decorator
