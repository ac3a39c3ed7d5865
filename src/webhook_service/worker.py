"""Periodic in-process background worker.

Usage::

    worker = BackgroundWorker(
        interval_seconds=60.0,
        tasks=[WorkerTask(name="webhook_retry_due", fn=webhook_retry_due)],
    )
    app.on_startup.append(worker.start)
    app.on_cleanup.append(worker.stop)
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Sequence

import structlog
from aiohttp import web

logger = structlog.get_logger(__name__)

# Receives the application and the current UTC time; returns an optional
# summary that is logged when non-empty.
TaskFn = Callable[[web.Application, datetime], Awaitable[str | None]]


@dataclass
class WorkerTask:
    """A named periodic task executed by :class:`BackgroundWorker`."""

    name: str
    fn: TaskFn


@dataclass
class BackgroundWorker:
    """Runs every task once per sweep; one task failing does not stop the others."""

    interval_seconds: float = 60.0
    tasks: Sequence[WorkerTask] = field(default_factory=list)
    _task: asyncio.Task | None = field(default=None, init=False, repr=False)

    async def start(self, app: web.Application) -> None:
        """Create the worker asyncio task. Register with ``app.on_startup``."""
        if self._task is None:
            self._task = asyncio.create_task(self._loop(app))

    async def stop(self, _app: web.Application) -> None:
        """Cancel the worker task. Register with ``app.on_cleanup``."""
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def run_once(self, app: web.Application, now: datetime) -> None:
        for task in self.tasks:
            try:
                summary = await task.fn(app, now)
                if summary:
                    logger.info("background_task completed", task=task.name, summary=summary)
            except Exception:
                logger.exception("background_task failed", task=task.name)

    async def _loop(self, app: web.Application) -> None:
        logger.info(
            "background_worker started",
            interval_seconds=self.interval_seconds,
            tasks=[t.name for t in self.tasks],
        )
        while True:
            try:
                await asyncio.sleep(self.interval_seconds)
                await self.run_once(app, datetime.now(timezone.utc))
            except asyncio.CancelledError:
                logger.info("background_worker stopped")
                raise
            except Exception:
                logger.exception("background_worker sweep failed")
