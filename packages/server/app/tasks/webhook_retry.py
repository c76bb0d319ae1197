"""
ARQ background task: resend n8n events whose delivery failed.

Scheduled every 15 minutes. The same pass is exposed at
``GET /api/cron/retry-webhooks`` for external schedulers.
"""

from __future__ import annotations

import structlog
from arq import cron
from arq.connections import RedisSettings

from app.core.config import get_settings
from app.core.database import get_session_context
from app.core.logging import configure_logging
from app.services.events import retry_failed_events

log = structlog.get_logger()


async def retry_failed_webhooks(ctx: dict) -> int:
    """Returns the number of events delivered on this pass."""
    async with get_session_context() as session:
        retried = await retry_failed_events(session)

    if retried:
        log.info("webhook_retry.batch_delivered", count=retried)
    return retried


async def startup(ctx: dict) -> None:
    configure_logging()


# ARQ worker settings
class WorkerSettings:
    """ARQ worker configuration."""

    functions = [retry_failed_webhooks]
    cron_jobs = [cron(retry_failed_webhooks, minute={0, 15, 30, 45})]
    on_startup = startup
    redis_settings = RedisSettings.from_dsn(get_settings().redis_url)
