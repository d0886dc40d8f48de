"""
WorkflowScheduler -- In-process asyncio polling scheduler.

Contract:
    Every tick, runs each enabled job whose interval has elapsed since its
    last run.  Due jobs of the same tick run concurrently; each job's own
    lease keeps a job from overlapping with itself.

Architecture: taxflow_batch/services.  Uses taxflow_batch.domain.schedule
    for pure due-ness evaluation and the JobRegistry for the jobs.

Invariants enforced:
    - All timestamps from the injected Clock.
    - A job's failure is logged and reported as a FAILED run; it never
      stops the scheduler or the other jobs of the tick.
    - Graceful shutdown: ``stop()`` lets the running tick finish.
"""

from __future__ import annotations

import asyncio
from typing import Iterable
from uuid import uuid4

from taxflow_batch.domain.schedule import is_job_due
from taxflow_batch.domain.types import JobRunResult, JobRunStatus
from taxflow_batch.jobs.base import JobRegistry, WorkflowJob
from taxflow_config.schema import JobSchedule
from taxflow_kernel.domain.clock import Clock, SystemClock
from taxflow_kernel.logging_config import get_logger

logger = get_logger("batch.scheduler")


class WorkflowScheduler:
    """In-process polling scheduler for the periodic jobs.

    Contract:
        - ``tick()`` runs all due jobs and returns their results.
        - ``start()`` / ``stop()`` for background task operation;
          ``run_forever()`` for a foreground service.

    Non-goals:
        - NOT a distributed scheduler; cross-process exclusion is the
          job lease's concern.
        - Cadence is a fixed interval, not a calendar expression.
    """

    def __init__(
        self,
        registry: JobRegistry,
        schedules: Iterable[JobSchedule],
        clock: Clock | None = None,
        tick_interval_seconds: int = 30,
    ):
        self._registry = registry
        self._schedules = {s.job_name: s for s in schedules}
        self._clock = clock or SystemClock()
        self._tick_interval = tick_interval_seconds
        self._last_run: dict[str, object] = {}
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def due_jobs(self) -> list[WorkflowJob]:
        now = self._clock.now()
        due = []
        for name, schedule in sorted(self._schedules.items()):
            if not schedule.enabled or name not in self._registry:
                continue
            if is_job_due(self._last_run.get(name), schedule.interval_seconds, now):
                due.append(self._registry.get(name))
        return due

    async def tick(self) -> list[JobRunResult]:
        """Run every due job once (public for testing)."""
        due = self.due_jobs()
        if not due:
            return []

        now = self._clock.now()
        for job in due:
            self._last_run[job.job_name] = now

        results = await asyncio.gather(*(self._run_job(job) for job in due))
        logger.info(
            "scheduler_tick_completed",
            extra={
                "jobs_run": len(results),
                "statuses": {r.job_name: r.status.value for r in results},
            },
        )
        return list(results)

    def start(self) -> None:
        """Start the polling loop as a background task."""
        if self.is_running:
            return
        self._stop_event.clear()
        self._task = asyncio.get_running_loop().create_task(
            self.run_forever(), name="workflow-scheduler",
        )

    async def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the loop to finish the current tick."""
        self._stop_event.set()
        if self._task is not None:
            try:
                await asyncio.wait_for(self._task, timeout=timeout)
            finally:
                self._task = None
        logger.info("scheduler_stopped")

    async def run_forever(self) -> None:
        """Poll until ``stop()`` is called."""
        logger.info(
            "scheduler_started",
            extra={"tick_interval": self._tick_interval, "jobs": sorted(self._schedules)},
        )
        while not self._stop_event.is_set():
            try:
                await self.tick()
            except Exception:
                logger.exception("scheduler_tick_failed")
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._tick_interval)
            except asyncio.TimeoutError:
                pass

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    async def _run_job(self, job: WorkflowJob) -> JobRunResult:
        started_at = self._clock.now()
        try:
            return await job.execute()
        except Exception as exc:
            logger.exception("scheduled_job_failed", extra={"job_name": job.job_name})
            return JobRunResult(
                job_name=job.job_name,
                run_id=uuid4(),
                status=JobRunStatus.FAILED,
                started_at=started_at,
                completed_at=self._clock.now(),
                error_message=str(exc),
            )
