"""
Fixed-interval job scheduler.

Runs named coroutine jobs at their own cadence from one background task.
A job never overlaps itself: a tick that comes due while the previous run is
still going is skipped. The clock is injectable and run_pending() runs the
due jobs once, so tests can step the scheduler without real timers.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class ScheduledJob:
    name: str
    interval_seconds: float
    func: Callable[[], Awaitable[Any]]
    next_run_at: float = 0.0
    running: bool = False
    run_count: int = 0
    skipped_count: int = 0
    error_count: int = 0
    last_started_at: Optional[datetime] = None
    last_finished_at: Optional[datetime] = None
    last_error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "interval_seconds": self.interval_seconds,
            "running": self.running,
            "run_count": self.run_count,
            "skipped_count": self.skipped_count,
            "error_count": self.error_count,
            "last_started_at": self.last_started_at.isoformat() if self.last_started_at else None,
            "last_finished_at": self.last_finished_at.isoformat() if self.last_finished_at else None,
            "last_error": self.last_error,
        }


class Scheduler:
    """Drives ScheduledJobs from a single asyncio task"""

    def __init__(self, clock: Callable[[], float] = time.monotonic, poll_interval: float = 1.0):
        self.clock = clock
        self.poll_interval = poll_interval
        self.jobs: Dict[str, ScheduledJob] = {}
        self.running = False
        self._task: Optional[asyncio.Task] = None
        self._job_tasks: Dict[str, asyncio.Task] = {}

    def add_job(
        self,
        name: str,
        interval_seconds: float,
        func: Callable[[], Awaitable[Any]],
        run_immediately: bool = True,
    ) -> ScheduledJob:
        """Register a job. Unless run_immediately, the first run waits one interval."""
        if name in self.jobs:
            raise ValueError(f"Job '{name}' is already scheduled")
        if interval_seconds <= 0:
            raise ValueError(f"Job '{name}' needs a positive interval")

        first_run = self.clock() if run_immediately else self.clock() + interval_seconds
        job = ScheduledJob(name=name, interval_seconds=interval_seconds, func=func, next_run_at=first_run)
        self.jobs[name] = job
        return job

    def due_jobs(self) -> List[ScheduledJob]:
        now = self.clock()
        return [job for job in self.jobs.values() if job.next_run_at <= now]

    async def _run_job(self, job: ScheduledJob):
        job.running = True
        job.last_started_at = datetime.utcnow()
        try:
            await job.func()
            job.last_error = None
        except Exception as e:
            job.error_count += 1
            job.last_error = str(e)
            logger.error(f"Scheduled job '{job.name}' failed: {e}", exc_info=True)
        finally:
            job.run_count += 1
            job.running = False
            job.last_finished_at = datetime.utcnow()

    async def run_pending(self, wait: bool = True) -> List[str]:
        """
        Start every job that is due.

        Args:
            wait: await the started jobs before returning. The background loop
                passes False so a slow job does not hold up the others.

        Returns:
            Names of the jobs that were started
        """
        started = []
        runs = []
        for job in self.due_jobs():
            job.next_run_at = self.clock() + job.interval_seconds

            if job.running:
                job.skipped_count += 1
                logger.warning(f"Skipping '{job.name}' tick - previous run still in progress")
                continue

            started.append(job.name)
            if wait:
                runs.append(self._run_job(job))
            else:
                task = asyncio.create_task(self._run_job(job))
                self._job_tasks[job.name] = task
                task.add_done_callback(lambda t, name=job.name: self._forget_task(name, t))

        if runs:
            await asyncio.gather(*runs)
        return started

    def _forget_task(self, name: str, task: asyncio.Task):
        if self._job_tasks.get(name) is task:
            del self._job_tasks[name]

    async def run_job(self, name: str) -> bool:
        """Run one job now, outside its cadence. Returns False if it was already running."""
        job = self.jobs[name]
        if job.running:
            logger.warning(f"Job '{name}' already running, not starting another run")
            return False
        await self._run_job(job)
        return True

    async def start(self):
        """Start the background loop"""
        if self.running:
            logger.warning("Scheduler already running")
            return

        self.running = True
        self._task = asyncio.create_task(self._loop())
        logger.info(f"Scheduler started with jobs: {', '.join(self.jobs) or 'none'}")

    async def stop(self):
        """Stop ticking, then let job runs already in progress finish"""
        self.running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        in_flight = list(self._job_tasks.values())
        if in_flight:
            logger.info(f"Waiting for {len(in_flight)} running job(s) to finish")
            await asyncio.gather(*in_flight, return_exceptions=True)
        logger.info("Scheduler stopped")

    async def _loop(self):
        while self.running:
            try:
                await self.run_pending(wait=False)
            except Exception as e:
                logger.error(f"Error in scheduler loop: {e}", exc_info=True)
            await asyncio.sleep(self.poll_interval)

    def get_status(self) -> dict:
        return {
            "running": self.running,
            "jobs": [job.to_dict() for job in self.jobs.values()],
        }
