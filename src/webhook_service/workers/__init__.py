"""Background workers for webhook-service.

Each worker is a standalone module exporting a single async task function
compatible with :class:`webhook_service.worker.WorkerTask`.
"""
from __future__ import annotations

from webhook_service.settings import Settings
from webhook_service.worker import BackgroundWorker, WorkerTask
from webhook_service.workers.webhook_purge import webhook_purge_succeeded
from webhook_service.workers.webhook_retry import webhook_retry_due


def build_worker(app_settings: Settings) -> BackgroundWorker:
    return BackgroundWorker(
        interval_seconds=app_settings.worker_interval_seconds,
        tasks=[
            WorkerTask(name="webhook_retry_due", fn=webhook_retry_due),
            WorkerTask(name="webhook_purge_succeeded", fn=webhook_purge_succeeded),
        ],
    )


__all__ = [
    "build_worker",
    "webhook_purge_succeeded",
    "webhook_retry_due",
]
