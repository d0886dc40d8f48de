"""
ComplianceMonitoringJob -- daily pass over pending filings.

Contract:
    ``execute()`` applies today's deadline rule to every Pending filing,
    each in its own transaction.  Details report ``alerts`` (new alerts
    recorded) and ``overdue`` (filings moved to Overdue).
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from taxflow_batch.domain.types import RunCounters
from taxflow_batch.jobs.base import BaseWorkflowJob
from taxflow_batch.services.lease import JobLeaseService
from taxflow_kernel.db.engine import session_scope
from taxflow_kernel.domain.clock import Clock
from taxflow_kernel.domain.policy import (
    DEFAULT_ALERT_POLICY,
    DEFAULT_PENALTY_POLICY,
    AlertPolicy,
    PenaltyPolicy,
)
from taxflow_services.compliance_monitoring import ComplianceMonitoringWorkflow, MonitorOutcome
from taxflow_services.notifications import Notifier


class ComplianceMonitoringJob(BaseWorkflowJob):
    job_name = "compliance_monitoring"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        notifier: Notifier | None = None,
        clock: Clock | None = None,
        lease: JobLeaseService | None = None,
        penalty_policy: PenaltyPolicy = DEFAULT_PENALTY_POLICY,
        alert_policy: AlertPolicy = DEFAULT_ALERT_POLICY,
        lease_seconds: int = 3600,
        holder: str | None = None,
    ):
        super().__init__(session_factory, clock, lease, lease_seconds, holder)
        self._notifier = notifier
        self._penalty_policy = penalty_policy
        self._alert_policy = alert_policy

    def _workflow(self, session: AsyncSession) -> ComplianceMonitoringWorkflow:
        return ComplianceMonitoringWorkflow(
            session,
            notifier=self._notifier,
            clock=self._clock,
            penalty_policy=self._penalty_policy,
            alert_policy=self._alert_policy,
        )

    async def run(self, counters: RunCounters) -> None:
        async with session_scope(self._session_factory) as session:
            filings = await self._workflow(session).list_pending_filings()

        counters.details.update(alerts=0, overdue=0)
        for filing in filings:
            counters.evaluated += 1
            ok, outcome = await self.process_item(
                counters,
                "filing_id",
                filing.filing_id,
                lambda session, fid=filing.filing_id: self._workflow(session).monitor_filing(fid),
            )
            if not ok:
                continue
            self._tally(counters, outcome)

    @staticmethod
    def _tally(counters: RunCounters, outcome: MonitorOutcome) -> None:
        if outcome.alert_recorded:
            counters.bump("alerts")
        if outcome.marked_overdue:
            counters.bump("overdue")
        if outcome.alert_recorded or outcome.marked_overdue:
            counters.succeeded += 1
