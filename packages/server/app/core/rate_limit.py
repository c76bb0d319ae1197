"""
Fixed-window rate limiting backed by Redis.

Usage as a route dependency:

    @router.post("/login", dependencies=[Depends(rate_limit("auth"))])
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog
from fastapi import HTTPException, Request

from app.core.redis import get_redis

log = structlog.get_logger()


@dataclass(frozen=True)
class RateLimitConfig:
    interval_seconds: int
    max_requests: int


RATE_LIMIT_CONFIGS: dict[str, RateLimitConfig] = {
    # Brute force protection on login/register
    "auth": RateLimitConfig(interval_seconds=60, max_requests=5),
    "api": RateLimitConfig(interval_seconds=60, max_requests=30),
    # Exports and reports
    "heavy": RateLimitConfig(interval_seconds=300, max_requests=5),
    "user_management": RateLimitConfig(interval_seconds=60, max_requests=10),
    "stripe": RateLimitConfig(interval_seconds=60, max_requests=10),
    "stripe_checkout": RateLimitConfig(interval_seconds=300, max_requests=5),
}


def get_client_ip(request: Request) -> str:
    """Resolve the client IP, honouring proxy headers."""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    if request.client:
        return request.client.host
    return "127.0.0.1"


async def check_rate_limit(identifier: str, config: RateLimitConfig) -> tuple[bool, int]:
    """Count a hit against the window. Returns (allowed, retry_after_seconds)."""
    redis = await get_redis()
    key = f"ratelimit:{identifier}"
    count = await redis.incr(key)
    if count == 1:
        await redis.expire(key, config.interval_seconds)
    if count > config.max_requests:
        ttl = await redis.ttl(key)
        return False, max(ttl, 1)
    return True, 0


def rate_limit(name: str):
    """Build a dependency that enforces the named rate limit per client IP."""
    config = RATE_LIMIT_CONFIGS[name]

    async def _dependency(request: Request) -> None:
        ip = get_client_ip(request)
        allowed, retry_after = await check_rate_limit(f"{name}:{ip}", config)
        if not allowed:
            log.warning("rate_limit.exceeded", limit=name, ip=ip)
            raise HTTPException(
                status_code=429,
                detail=f"Muitas tentativas. Aguarde {retry_after} segundos.",
                headers={"Retry-After": str(retry_after)},
            )

    return _dependency
