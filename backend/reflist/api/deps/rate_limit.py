# backend/reflist/api/deps/rate_limit.py
"""
Per-client request limits for the phone verification endpoints.

Counts live in process memory, one window per (client, route).
"""

from __future__ import annotations

import time
from collections import deque
from typing import Callable

from fastapi import HTTPException, Request, status
from loguru import logger


class SlidingWindowRateLimiter:
    def __init__(self, limit: int, window_seconds: float = 60.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        # {key: timestamps of accepted requests, oldest first}
        self._hits: dict[str, deque[float]] = {}

    def hit(self, key: str) -> bool:
        """Record one request for `key`; False when it is over the limit."""
        now = self._clock()
        hits = self._hits.setdefault(key, deque())
        while hits and hits[0] <= now - self.window_seconds:
            hits.popleft()

        if len(hits) >= self.limit:
            return False
        hits.append(now)
        return True

    def retry_after(self, key: str) -> int:
        hits = self._hits.get(key)
        if not hits:
            return 0
        return max(1, int(hits[0] + self.window_seconds - self._clock()) + 1)

    def reset(self) -> None:
        self._hits.clear()


def limit_phone_verification(request: Request) -> None:
    limiter: SlidingWindowRateLimiter = request.app.state.phone_rate_limiter
    client = request.client.host if request.client else "unknown"
    key = f"{client}:{request.url.path}"

    if not limiter.hit(key):
        logger.warning("Rate limit hit for {} on {}", client, request.url.path)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={"code": "RATE_LIMITED", "message": "Too many attempts. Please try again later."},
            headers={"Retry-After": str(limiter.retry_after(key))},
        )
