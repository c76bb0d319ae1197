"""Shared Redis client for the JWT revocation list and rate-limit counters."""

from __future__ import annotations

import redis.asyncio as redis

from app.core.config import get_settings

_client: redis.Redis | None = None


async def get_redis() -> redis.Redis:
    global _client
    if _client is None:
        settings = get_settings()
        _client = redis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_connect_timeout=2,
            health_check_interval=30,
        )
    return _client


async def close_redis() -> None:
    """Called from the app lifespan on shutdown."""
    global _client
    if _client is None:
        return
    await _client.aclose()
    _client = None
