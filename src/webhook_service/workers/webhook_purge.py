"""Worker: purge old succeeded webhook deliveries."""
from __future__ import annotations

from datetime import datetime, timedelta

from aiohttp import web

from webhook_service.services.dependencies import get_context


async def webhook_purge_succeeded(app: web.Application, now: datetime) -> str | None:
    """Delete succeeded deliveries older than ``webhook_succeeded_retention_days``."""
    ctx = get_context(app)
    _, ledger, _ = ctx.require()
    cutoff = now - timedelta(days=ctx.settings.webhook_succeeded_retention_days)
    purged = await ledger.delete_old_succeeded(cutoff)
    return f"purged={purged}" if purged else None
