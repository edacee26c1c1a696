"""
Fixed-window request throttling.

The limiter owns no globals: `create_app` builds one `RateLimiter` around an
`InMemoryRateLimitStore` and stores it on `app.state.rate_limiter`, where the
`rate_limited` dependency picks it up.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from fastapi import HTTPException, Request, Response

from .logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class RateLimitEntry:
    count: int
    reset_at: float


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float

    def headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(self.reset_at)),
        }


class InMemoryRateLimitStore:
    """Per-key hit counters for a single process.

    Expired keys are swept from inside `hit` at most once per
    `sweep_interval_seconds`, so the map stays bounded by the clients seen
    in roughly one window.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        sweep_interval_seconds: float = 60.0,
    ) -> None:
        self._clock = clock
        self._sweep_interval = sweep_interval_seconds
        self._entries: dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def _evict_locked(self, now: float) -> int:
        expired = [key for key, entry in self._entries.items() if now > entry.reset_at]
        for key in expired:
            del self._entries[key]
        self._last_sweep = now
        return len(expired)

    def hit(self, key: str, window_seconds: float) -> RateLimitEntry:
        """Count one request for `key`, opening a new window if the old one expired."""
        now = self._clock()
        with self._lock:
            if now - self._last_sweep >= self._sweep_interval:
                evicted = self._evict_locked(now)
                if evicted:
                    logger.debug("Evicted %d expired rate limit keys", evicted)

            entry = self._entries.get(key)
            if entry is None or now > entry.reset_at:
                entry = RateLimitEntry(count=0, reset_at=now + window_seconds)
                self._entries[key] = entry
            entry.count += 1
            return RateLimitEntry(count=entry.count, reset_at=entry.reset_at)

    def evict_expired(self) -> int:
        """Drop keys whose window has closed; returns how many were removed."""
        with self._lock:
            return self._evict_locked(self._clock())

    def reset(self, key: str | None = None) -> None:
        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)


class RateLimiter:
    def __init__(
        self,
        store: InMemoryRateLimitStore,
        *,
        max_requests: int,
        window_seconds: float,
    ) -> None:
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")

        self.store = store
        self.max_requests = max_requests
        self.window_seconds = window_seconds

    def check(self, key: str) -> RateLimitDecision:
        entry = self.store.hit(key, self.window_seconds)
        return RateLimitDecision(
            allowed=entry.count <= self.max_requests,
            limit=self.max_requests,
            remaining=max(0, self.max_requests - entry.count),
            reset_at=entry.reset_at,
        )


def client_key(request: Request) -> str:
    return request.client.host if request.client else "unknown"


async def rate_limited(request: Request, response: Response) -> None:
    """FastAPI dependency enforcing the app-wide limiter for the calling client."""
    limiter: RateLimiter | None = getattr(request.app.state, "rate_limiter", None)
    if limiter is None:
        return

    key = client_key(request)
    decision = limiter.check(key)

    if not decision.allowed:
        logger.warning("Rate limit exceeded for %s on %s", key, request.url.path)
        raise HTTPException(
            status_code=429,
            detail="Too many requests, please try again later",
            headers=decision.headers(),
        )

    response.headers.update(decision.headers())
