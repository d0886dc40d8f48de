"""
WorkflowJob protocol, the BaseWorkflowJob template, and JobRegistry.

Contract:
    ``WorkflowJob`` is what the scheduler and the CLI call: a ``job_name``
    and a no-argument ``async execute() -> JobRunResult``.
    ``BaseWorkflowJob.execute()`` wraps a subclass's ``run()`` with the
    single-flight lease, run-scoped log context, timing and the run
    summary.  ``JobRegistry`` stores jobs keyed by ``job_name``.

Architecture:
    taxflow_batch/jobs.  Jobs open their own sessions from the session
    factory; no session is shared between records.

Invariants enforced:
    - A run that cannot take the lease returns SKIPPED and touches nothing.
    - ``process_item`` commits each record on its own.  A TaxflowError is
      a business-rule failure (warning); anything else is logged with a
      traceback.  Either way the loop goes on to the next record.
    - A job-level failure is logged as ``job_failed`` and re-raised.
"""

from __future__ import annotations

import os
import socket
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Iterator, Protocol, runtime_checkable
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from taxflow_batch.domain.types import JobRunResult, JobRunStatus, RunCounters
from taxflow_batch.services.lease import JobLeaseService
from taxflow_kernel.db.engine import session_scope
from taxflow_kernel.domain.clock import Clock, SystemClock
from taxflow_kernel.exceptions import JobNotRegisteredError, TaxflowError
from taxflow_kernel.logging_config import LogContext, get_logger

logger = get_logger("batch.jobs")


# =============================================================================
# WorkflowJob Protocol
# =============================================================================


@runtime_checkable
class WorkflowJob(Protocol):
    @property
    def job_name(self) -> str: ...

    async def execute(self) -> JobRunResult: ...


def default_holder() -> str:
    """Lease holder identity unique to this process and job instance."""
    return f"{socket.gethostname()}:{os.getpid()}:{uuid4().hex[:8]}"


# =============================================================================
# Template
# =============================================================================


class BaseWorkflowJob(ABC):
    """Template for lease-guarded, per-item-isolated periodic jobs.

    Subclasses set ``job_name`` and implement ``run(counters)``.
    """

    job_name: str = ""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Clock | None = None,
        lease: JobLeaseService | None = None,
        lease_seconds: int = 600,
        holder: str | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._lease = lease or JobLeaseService(session_factory, self._clock)
        self._lease_seconds = lease_seconds
        self._holder = holder or default_holder()

    async def execute(self) -> JobRunResult:
        run_id = uuid4()
        started_at = self._clock.now()

        with LogContext.bind(job_name=self.job_name, run_id=str(run_id)):
            async with self._lease.hold(
                self.job_name, self._holder, self._lease_seconds,
            ) as acquired:
                if not acquired:
                    logger.info("job_already_running", extra={"holder": self._holder})
                    return JobRunResult(
                        job_name=self.job_name,
                        run_id=run_id,
                        status=JobRunStatus.SKIPPED,
                        started_at=started_at,
                        completed_at=self._clock.now(),
                    )

                logger.info("job_started")
                counters = RunCounters()
                try:
                    await self.run(counters)
                except Exception:
                    logger.exception(
                        "job_failed",
                        extra={"evaluated": counters.evaluated, "failed": counters.failed},
                    )
                    raise

                result = JobRunResult(
                    job_name=self.job_name,
                    run_id=run_id,
                    status=counters.status,
                    started_at=started_at,
                    completed_at=self._clock.now(),
                    evaluated=counters.evaluated,
                    succeeded=counters.succeeded,
                    failed=counters.failed,
                    details=dict(counters.details),
                )
                logger.info(
                    "job_completed",
                    extra={
                        "status": result.status.value,
                        "evaluated": result.evaluated,
                        "succeeded": result.succeeded,
                        "failed": result.failed,
                        "details": result.details,
                        "duration_ms": round(result.duration_ms, 2),
                    },
                )
                return result

    @abstractmethod
    async def run(self, counters: RunCounters) -> None:
        """Do one pass of the job's work, filling in ``counters``."""

    async def process_item(
        self,
        counters: RunCounters,
        item_key: str,
        item_id: Any,
        work: Callable[[AsyncSession], Awaitable[Any]],
    ) -> tuple[bool, Any]:
        """Run ``work`` for one record in its own transaction.

        Returns ``(True, value)`` on commit, ``(False, None)`` on failure.
        """
        try:
            async with session_scope(self._session_factory) as session:
                value = await work(session)
        except TaxflowError as exc:
            counters.failed += 1
            logger.warning(
                "job_item_failed",
                extra={item_key: str(item_id), "error_code": exc.code, "error": str(exc)},
            )
            return False, None
        except Exception:
            counters.failed += 1
            logger.exception("job_item_error", extra={item_key: str(item_id)})
            return False, None
        return True, value


# =============================================================================
# JobRegistry
# =============================================================================


class JobRegistry:
    """Registry mapping job names to WorkflowJob implementations.

    Contract:
        - ``register()`` adds a job; raises ValueError on duplicate.
        - ``get()`` retrieves by name; raises JobNotRegisteredError if missing.
    """

    def __init__(self) -> None:
        self._jobs: dict[str, WorkflowJob] = {}

    def register(self, job: WorkflowJob) -> None:
        if job.job_name in self._jobs:
            raise ValueError(f"Job already registered: {job.job_name}")
        self._jobs[job.job_name] = job

    def get(self, job_name: str) -> WorkflowJob:
        if job_name not in self._jobs:
            raise JobNotRegisteredError(job_name, self.list_jobs())
        return self._jobs[job_name]

    def list_jobs(self) -> list[str]:
        return sorted(self._jobs)

    def __contains__(self, job_name: object) -> bool:
        return job_name in self._jobs

    def __iter__(self) -> Iterator[WorkflowJob]:
        return iter(self._jobs.values())

    def __len__(self) -> int:
        return len(self._jobs)
