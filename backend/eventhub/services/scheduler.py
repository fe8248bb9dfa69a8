"""
Periodic batch jobs, each running as its own asyncio task started from the
application lifespan.

A job run that raises is logged and counted; the loop sleeps and tries again
on the next tick.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from eventhub.core.config import Settings
from eventhub.core.logging import get_logger
from eventhub.core.metrics import batch_job_runs

logger = get_logger(__name__)


@dataclass
class ScheduledJob:
    name: str
    interval: float
    run: Callable[[], Awaitable]


class BatchScheduler:
    def __init__(self, jobs: list[ScheduledJob]):
        self.jobs = jobs
        self._tasks: list[asyncio.Task] = []
        self._stopping = asyncio.Event()

    @classmethod
    def from_services(cls, settings: Settings, bookings, events, dispatcher) -> "BatchScheduler":
        return cls([
            ScheduledJob("expire_bookings", settings.EXPIRY_SWEEP_INTERVAL, bookings.process_expired_bookings),
            ScheduledJob("event_reminders", settings.REMINDER_SWEEP_INTERVAL, bookings.send_event_reminders),
            ScheduledJob("finish_events", settings.FINISHED_EVENTS_SWEEP_INTERVAL, events.process_finished_events),
            ScheduledJob(
                "notification_retry",
                settings.NOTIFICATION_RETRY_INTERVAL,
                dispatcher.retry_failed_notifications,
            ),
            ScheduledJob(
                "notification_cleanup",
                settings.NOTIFICATION_CLEANUP_INTERVAL,
                dispatcher.cleanup_expired_notifications,
            ),
        ])

    async def run_once(self, job: ScheduledJob) -> Optional[object]:
        try:
            return await job.run()
        except Exception:
            batch_job_runs.labels(job=job.name, result="error").inc()
            logger.exception("batch_job_failed", job=job.name)
            return None

    async def _loop(self, job: ScheduledJob) -> None:
        while not self._stopping.is_set():
            await self.run_once(job)
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=job.interval)
            except asyncio.TimeoutError:
                pass

    def start(self) -> None:
        if self._tasks:
            return
        self._stopping.clear()
        for job in self.jobs:
            self._tasks.append(asyncio.create_task(self._loop(job), name=f"batch-{job.name}"))
        logger.info("batch_scheduler_started", jobs=[job.name for job in self.jobs])

    async def stop(self) -> None:
        if not self._tasks:
            return
        self._stopping.set()
        done, pending = await asyncio.wait(self._tasks, timeout=10)
        for task in pending:
            task.cancel()
        self._tasks = []
        logger.info("batch_scheduler_stopped", cancelled=len(pending))
