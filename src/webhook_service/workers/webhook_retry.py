"""Worker: retry FAILED webhook deliveries whose backoff has elapsed."""
from __future__ import annotations

from datetime import datetime

from aiohttp import web

from webhook_service.services.dependencies import get_context


async def webhook_retry_due(app: web.Application, now: datetime) -> str | None:
    ctx = get_context(app)
    if not ctx.settings.webhook_auto_retry_enabled:
        return None
    sweep = await ctx.retry_coordinator().retry_due(
        now, limit=ctx.settings.webhook_retry_batch_size
    )
    if not (sweep.succeeded or sweep.failed or sweep.skipped):
        return None
    return f"succeeded={sweep.succeeded} failed={sweep.failed} skipped={sweep.skipped}"
