"""Throttling for the unauthenticated endpoints: login and the public contact form."""

import asyncio
import logging
import time
from collections import deque
from typing import Awaitable, Callable, Deque, Dict, Tuple

from fastapi import HTTPException, Request, status

from ..config import settings

logger = logging.getLogger(__name__)


class RateLimiter:
    """Sliding window of request times per key, kept in process memory."""

    def __init__(self) -> None:
        self._windows: Dict[str, Deque[float]] = {}
        self._lock = asyncio.Lock()

    async def hit(self, key: str, limit: int, window: int) -> Tuple[bool, float]:
        """Record one request for ``key``; return whether it is allowed and the wait otherwise."""
        now = time.monotonic()
        async with self._lock:
            recent = self._windows.setdefault(key, deque())
            while recent and now - recent[0] > window:
                recent.popleft()
            if len(recent) >= limit:
                return False, max(0.0, window - (now - recent[0]))
            recent.append(now)
            return True, 0.0

    def reset(self) -> None:
        self._windows.clear()


limiter = RateLimiter()


def client_address(request: Request) -> str:
    if settings.trust_forwarded_for:
        forwarded = request.headers.get("X-Forwarded-For", "")
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.client.host if request.client else "anonymous"


def rate_limit_dependency(scope: str, limit: int, window_seconds: int) -> Callable[[Request], Awaitable[None]]:
    async def dependency(request: Request) -> None:
        address = client_address(request)
        allowed, retry_after = await limiter.hit(f"{scope}:{address}", limit, window_seconds)
        if not allowed:
            wait = int(retry_after) or window_seconds
            logger.warning("Throttled %s for client %s; retry in %ss", scope, address, wait)
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=f"Too many requests. Try again in {wait} seconds.",
                headers={"Retry-After": str(wait)},
            )

    return dependency
