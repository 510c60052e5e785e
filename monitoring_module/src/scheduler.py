"""
Monitoring Scheduler - Periodic sweeps and report generation.

Jobs run on an APScheduler AsyncIOScheduler with interval triggers taken
from MonitoringConfig. Each job has at most one running instance, missed
runs are coalesced, and a failing job is recorded while the scheduler
keeps going.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Set

from apscheduler.events import (
    EVENT_JOB_ERROR,
    EVENT_JOB_EXECUTED,
    EVENT_JOB_MAX_INSTANCES,
    EVENT_JOB_SUBMITTED,
)
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from shared.logging import get_logger

logger = get_logger(__name__)

JOB_DEFAULTS = {
    "coalesce": True,
    "max_instances": 1,
    "misfire_grace_time": None,
}


@dataclass
class ScheduledJob:
    """A named periodic job and its run statistics."""

    name: str
    interval_seconds: float
    action: Callable[[], Any]
    run_count: int = 0
    failure_count: int = 0
    last_run: Optional[datetime] = None
    last_error: Optional[str] = None
    next_run_time: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "interval_seconds": self.interval_seconds,
            "run_count": self.run_count,
            "failure_count": self.failure_count,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "last_error": self.last_error,
            "next_run_time": self.next_run_time.isoformat() if self.next_run_time else None,
        }


class MonitoringScheduler:
    """
    Interval scheduler for monitoring jobs.

    Coroutine functions run as tasks on the event loop; plain functions
    run in the loop's default executor.

    Example:
        >>> scheduler = MonitoringScheduler()
        >>> scheduler.add_job("sweep", 900, service.sweep)
        >>> await scheduler.start()
        >>> ...
        >>> await scheduler.stop()
    """

    def __init__(
        self,
        clock: Callable[[], datetime] = datetime.now,
        scheduler: Optional[AsyncIOScheduler] = None,
    ):
        self.clock = clock
        self.jobs: Dict[str, ScheduledJob] = {}
        self._scheduler = scheduler or AsyncIOScheduler()
        self._scheduler.add_listener(
            self._on_job_event,
            EVENT_JOB_SUBMITTED | EVENT_JOB_EXECUTED | EVENT_JOB_ERROR | EVENT_JOB_MAX_INSTANCES,
        )
        self._triggered: Set[str] = set()
        self._running: Set[str] = set()

    @property
    def is_running(self) -> bool:
        return self._scheduler.running

    def add_job(self, name: str, interval_seconds: float, action: Callable[[], Any]) -> ScheduledJob:
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds for {name} must be positive")
        if name in self.jobs:
            raise ValueError(f"Job already registered: {name}")

        job = ScheduledJob(name=name, interval_seconds=interval_seconds, action=action)
        self._scheduler.add_job(
            action,
            trigger=IntervalTrigger(seconds=interval_seconds),
            id=name,
            name=name,
            **JOB_DEFAULTS,
        )
        self.jobs[name] = job
        logger.info(f"Scheduled job '{name}' every {interval_seconds}s")
        return job

    def trigger(self, name: str) -> bool:
        """
        Run a job as soon as possible.

        Returns:
            False if the job is already waiting to run or running
        """
        if name not in self.jobs:
            raise KeyError(f"Unknown job: {name}")
        if name in self._triggered or name in self._running:
            logger.debug(f"Job '{name}' already pending; skipped")
            return False
        self._triggered.add(name)
        self._scheduler.modify_job(name, next_run_time=datetime.now(self._scheduler.timezone))
        return True

    def _on_job_event(self, event) -> None:
        job = self.jobs.get(event.job_id)
        if job is None:
            return

        if event.code == EVENT_JOB_SUBMITTED:
            self._triggered.discard(job.name)
            self._running.add(job.name)
            return
        if event.code == EVENT_JOB_MAX_INSTANCES:
            self._triggered.discard(job.name)
            logger.warning(f"Job '{job.name}' still running; run skipped")
            return

        self._running.discard(job.name)
        job.last_run = self.clock()
        if event.code == EVENT_JOB_ERROR:
            job.failure_count += 1
            job.last_error = str(event.exception)
            logger.error(f"Scheduled job '{job.name}' failed: {event.exception}")
        else:
            job.run_count += 1
            job.last_error = None

        scheduled = self._scheduler.get_job(job.name)
        job.next_run_time = scheduled.next_run_time if scheduled is not None else None

    async def start(self) -> None:
        if self.is_running:
            return
        self._scheduler.start()
        logger.info(f"Scheduler started with {len(self.jobs)} job(s)")

    async def run_pending(self, timeout: float = 30.0) -> None:
        """Wait until every triggered job has finished."""
        async def idle():
            while self._triggered or self._running:
                await asyncio.sleep(0.01)

        await asyncio.wait_for(idle(), timeout)

    async def stop(self) -> None:
        if not self.is_running:
            return
        self._scheduler.shutdown(wait=False)
        # shutdown hands the timer teardown to the loop
        await asyncio.sleep(0)
        self._triggered.clear()
        self._running.clear()
        logger.info("Scheduler stopped")
