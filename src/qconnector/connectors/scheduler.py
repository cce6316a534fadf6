"""APScheduler-based scheduler for periodic full-refresh syncs."""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Awaitable, Dict, Optional, Protocol

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = structlog.get_logger()


class Syncable(Protocol):
    def sync(self) -> Awaitable[Any]: ...


class ConnectorScheduler:
    """Schedules periodic runs of a manager's sync method using AsyncIOScheduler."""

    def __init__(self) -> None:
        self._scheduler = AsyncIOScheduler()
        self._started = False

    @property
    def running(self) -> bool:
        return self._started

    def start(self) -> None:
        """Start the underlying scheduler if not already started."""
        if not self._started:
            self._scheduler.start(paused=False)
            self._started = True

    def shutdown(self, *, wait: bool = True) -> None:
        """Shut down the scheduler."""
        if self._started:
            self._scheduler.shutdown(wait=wait)
            self._started = False

    def get_jobs(self) -> list:
        return self._scheduler.get_jobs()

    def schedule_sync(
        self,
        manager: Syncable,
        *,
        interval: timedelta = timedelta(hours=1),
        job_id: Optional[str] = "qconnector-sync",
        run_immediately: bool = True,
        replace_existing: bool = True,
    ) -> None:
        """Schedule periodic execution of `manager.sync()`.

        Parameters
        ----------
        manager: Syncable
            Object exposing an async ``sync()``, normally a `SyncManager`.
        interval: timedelta
            How often to run the sync job (default one hour).
        job_id: Optional[str]
            Explicit job id to allow replacing/canceling.
        run_immediately: bool
            Fire the first run now instead of after one interval.
        replace_existing: bool
            If True, replace any existing job with the same id.
        """

        async def _job() -> None:
            # Errors are logged; the next interval starts a fresh run.
            try:
                await manager.sync()
            except Exception as exc:
                logger.error("scheduled_sync_failed", job_id=job_id, error=str(exc))

        trigger = IntervalTrigger(seconds=int(interval.total_seconds()))
        extra: Dict[str, Any] = {}
        if run_immediately:
            extra["next_run_time"] = datetime.now()
        self._scheduler.add_job(
            _job,
            trigger=trigger,
            id=job_id,
            replace_existing=replace_existing,
            max_instances=1,
            coalesce=True,
            **extra,
        )
