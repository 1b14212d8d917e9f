"""
Per-IP fixed-window rate limiter for the GitHub proxy.

Counters live in process memory by default. When a Redis URL is configured
they are kept in Redis so several replicas share one budget; Redis failures
fail open.
"""

import asyncio
import time
from typing import Any, Dict, Optional, Tuple

import redis.asyncio as redis
from fastapi import Request

from shared.logging import get_logger


class FixedWindowRateLimiter:
    """Counts requests per client in fixed windows of ``window_seconds``."""

    def __init__(self, max_requests: int = 100, window_seconds: int = 900, redis_url: Optional[str] = None):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.redis_url = redis_url
        self.logger = get_logger("github.rate_limiter")
        self._redis: Optional[redis.Redis] = None
        self._windows: Dict[str, Tuple[float, int]] = {}
        self._next_prune: Optional[float] = None
        self._lock = asyncio.Lock()

    async def _get_redis(self) -> redis.Redis:
        """Get Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(self.redis_url)
        return self._redis

    def _make_key(self, client_id: str) -> str:
        """Generate rate limit key."""
        return f"rate_limit:{client_id}"

    def _result(self, count: int, reset_in: int) -> Dict[str, Any]:
        allowed = count <= self.max_requests
        result = {
            "allowed": allowed,
            "current_count": count,
            "limit": self.max_requests,
            "remaining": max(0, self.max_requests - count),
            "reset_in_seconds": max(0, reset_in),
        }
        if not allowed:
            result["retry_after"] = max(1, reset_in)
        return result

    async def check_rate_limit(self, client_id: str) -> Dict[str, Any]:
        """Count one request for ``client_id`` and report whether it is allowed."""
        if self.redis_url:
            result = await self._check_redis(client_id)
        else:
            result = await self._check_memory(client_id)

        if not result["allowed"]:
            self.logger.warning(
                "Rate limit exceeded",
                client_id=client_id,
                current_count=result["current_count"],
                limit=self.max_requests,
            )
        return result

    async def _check_memory(self, client_id: str) -> Dict[str, Any]:
        now = time.monotonic()
        async with self._lock:
            window_start, count = self._windows.get(client_id, (now, 0))
            if now - window_start >= self.window_seconds:
                window_start, count = now, 0
            count += 1
            self._windows[client_id] = (window_start, count)
            self._maybe_prune(now)

        reset_in = int(window_start + self.window_seconds - now)
        return self._result(count, reset_in)

    def _maybe_prune(self, now: float) -> None:
        """Drop expired windows at most once per window length."""
        if self._next_prune is None:
            self._next_prune = now + self.window_seconds
            return
        if now < self._next_prune:
            return
        self._next_prune = now + self.window_seconds

        expired = [
            key for key, (start, _) in self._windows.items()
            if now - start >= self.window_seconds
        ]
        for key in expired:
            del self._windows[key]

    async def _check_redis(self, client_id: str) -> Dict[str, Any]:
        key = self._make_key(client_id)
        try:
            redis_client = await self._get_redis()
            async with redis_client.pipeline(transaction=True) as pipeline:
                pipeline.incr(key)
                pipeline.ttl(key)
                count, ttl = await pipeline.execute()

            count = int(count)
            if ttl is None or int(ttl) < 0:
                await redis_client.expire(key, self.window_seconds)
                ttl = self.window_seconds

            return self._result(count, int(ttl))

        except Exception as e:
            self.logger.error("Rate limit check error", error=str(e))
            return {
                "allowed": True,
                "current_count": 0,
                "limit": self.max_requests,
                "remaining": self.max_requests,
                "reset_in_seconds": self.window_seconds,
                "error": str(e)
            }

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


def get_client_ip(request: Request, trust_proxy_headers: bool = False) -> str:
    """Caller IP. Forwarding headers are only read behind a trusted proxy."""
    if not trust_proxy_headers:
        return request.client.host if request.client else "unknown"

    forwarded_for = request.headers.get("X-Forwarded-For")
    if isinstance(forwarded_for, str) and forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if isinstance(real_ip, str) and real_ip:
        return real_ip

    return request.client.host if request.client else "unknown"


def rate_limit_headers(result: Dict[str, Any]) -> Dict[str, str]:
    """Standard RateLimit-* headers (plus Retry-After when blocked)."""
    headers = {
        "RateLimit-Limit": str(result["limit"]),
        "RateLimit-Remaining": str(result.get("remaining", 0)),
        "RateLimit-Reset": str(result.get("reset_in_seconds", 0)),
    }
    if not result.get("allowed", True):
        headers["Retry-After"] = str(result.get("retry_after", result.get("reset_in_seconds", 0)))
    return headers
