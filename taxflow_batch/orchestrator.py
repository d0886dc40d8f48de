"""
WorkflowOrchestrator -- DI container for the periodic workflow jobs.

Contract:
    Wires the notifier, handler directory, workflow handler registry,
    lease service and the four jobs from one ``WorkflowConfig``, and
    optionally creates a WorkflowScheduler.  Single place where all
    batch dependencies are composed.

Architecture: taxflow_batch (top-level).  This is the canonical entry
    point for running jobs, from the CLI or from a host service.

Invariants enforced:
    - Clock injection: every job, service and the scheduler receive the
      same Clock.
    - One lease service for all jobs, so single flight also holds between
      jobs run by hand and jobs run by the scheduler in one process.
    - No kernel imports of taxflow_batch (the orchestrator lives here).
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from taxflow_batch.domain.types import JobRunResult
from taxflow_batch.jobs.base import JobRegistry, WorkflowJob
from taxflow_batch.jobs.cleanup import CleanupJob
from taxflow_batch.jobs.compliance_monitoring import ComplianceMonitoringJob
from taxflow_batch.jobs.escalation import EscalationJob
from taxflow_batch.jobs.trigger_evaluation import TriggerEvaluationJob
from taxflow_batch.services.lease import JobLeaseService
from taxflow_batch.services.scheduler import WorkflowScheduler
from taxflow_config.schema import DEFAULT_CONFIG, WorkflowConfig
from taxflow_kernel.db.engine import get_session_factory, init_engine_from_url
from taxflow_kernel.domain.clock import Clock, SystemClock
from taxflow_kernel.logging_config import get_logger
from taxflow_kernel.services.workflow_instance_service import WorkflowHandlerRegistry
from taxflow_services.notifications import (
    HandlerDirectory,
    LoggingNotifier,
    Notifier,
    StaticHandlerDirectory,
)
from taxflow_services.workflow_handlers import default_handler_registry

logger = get_logger("batch.orchestrator")


class WorkflowOrchestrator:
    """DI container for the periodic workflow jobs.

    Contract:
        - ``from_config()`` initializes the engine from the configured
          database URL and returns a fully wired orchestrator.
        - ``run_job(name)`` executes one registered job once.
        - ``create_scheduler()`` returns a WorkflowScheduler over the
          enabled job schedules.

    Non-goals:
        - Does NOT start the scheduler automatically -- caller decides.
        - Does NOT create tables -- the CLI's ``--create-tables`` does.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        config: WorkflowConfig = DEFAULT_CONFIG,
        clock: Clock | None = None,
        notifier: Notifier | None = None,
        directory: HandlerDirectory | None = None,
        handlers: WorkflowHandlerRegistry | None = None,
        lease: JobLeaseService | None = None,
        job_registry: JobRegistry | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._config = config
        self._clock = clock or SystemClock()
        self._notifier = notifier or LoggingNotifier()
        self._directory = directory or StaticHandlerDirectory(config.handlers)
        self._handlers = handlers or default_handler_registry(
            notifier=self._notifier,
            clock=self._clock,
            approval_policy=config.approval,
            escalation_policy=config.escalation,
            penalty_policy=config.penalty,
            alert_policy=config.alerts,
            directory=self._directory,
            default_currency=config.default_currency,
        )
        self._lease = lease or JobLeaseService(session_factory, self._clock)
        self._jobs = job_registry if job_registry is not None else self._default_job_registry()

    # -------------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------------

    @classmethod
    def from_config(
        cls,
        config: WorkflowConfig = DEFAULT_CONFIG,
        clock: Clock | None = None,
        notifier: Notifier | None = None,
    ) -> WorkflowOrchestrator:
        """Initialize the engine from ``config.database_url`` and wire everything."""
        init_engine_from_url(config.database_url)
        return cls(
            session_factory=get_session_factory(),
            config=config,
            clock=clock,
            notifier=notifier,
        )

    # -------------------------------------------------------------------------
    # Jobs
    # -------------------------------------------------------------------------

    def _lease_seconds(self, job_name: str, default: int) -> int:
        schedule = self._config.job(job_name)
        return schedule.lease_seconds if schedule is not None else default

    def _default_job_registry(self) -> JobRegistry:
        """Create a JobRegistry with the four periodic jobs."""
        common = {
            "session_factory": self._session_factory,
            "clock": self._clock,
            "lease": self._lease,
        }
        registry = JobRegistry()
        registry.register(TriggerEvaluationJob(
            handlers=self._handlers,
            policy=self._config.triggers,
            lease_seconds=self._lease_seconds(TriggerEvaluationJob.job_name, 600),
            **common,
        ))
        registry.register(ComplianceMonitoringJob(
            notifier=self._notifier,
            penalty_policy=self._config.penalty,
            alert_policy=self._config.alerts,
            lease_seconds=self._lease_seconds(ComplianceMonitoringJob.job_name, 3600),
            **common,
        ))
        registry.register(EscalationJob(
            notifier=self._notifier,
            policy=self._config.escalation,
            directory=self._directory,
            lease_seconds=self._lease_seconds(EscalationJob.job_name, 1800),
            **common,
        ))
        registry.register(CleanupJob(
            retention=self._config.retention,
            lease_seconds=self._lease_seconds(CleanupJob.job_name, 3600),
            **common,
        ))
        return registry

    def get_job(self, job_name: str) -> WorkflowJob:
        return self._jobs.get(job_name)

    async def run_job(self, job_name: str) -> JobRunResult:
        """Execute one job once, outside the scheduler."""
        job = self._jobs.get(job_name)
        logger.info("job_run_requested", extra={"job_name": job_name})
        return await job.execute()

    # -------------------------------------------------------------------------
    # Scheduler
    # -------------------------------------------------------------------------

    def create_scheduler(self, tick_interval_seconds: int | None = None) -> WorkflowScheduler:
        """Create a WorkflowScheduler over the configured job schedules."""
        return WorkflowScheduler(
            registry=self._jobs,
            schedules=self._config.jobs,
            clock=self._clock,
            tick_interval_seconds=tick_interval_seconds or self._config.scheduler_tick_seconds,
        )

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def notifier(self) -> Notifier:
        return self._notifier

    @property
    def handlers(self) -> WorkflowHandlerRegistry:
        return self._handlers

    @property
    def job_registry(self) -> JobRegistry:
        return self._jobs
