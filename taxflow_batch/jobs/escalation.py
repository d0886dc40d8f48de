"""
EscalationJob -- hourly pass over open client conversations.

Contract:
    ``execute()`` checks every open conversation against its escalation
    threshold, each in its own transaction.  Details report ``escalated``
    and ``at_ceiling`` (overdue conversations already at the top rung).
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from taxflow_batch.domain.types import RunCounters
from taxflow_batch.jobs.base import BaseWorkflowJob
from taxflow_batch.services.lease import JobLeaseService
from taxflow_kernel.db.engine import session_scope
from taxflow_kernel.domain.clock import Clock
from taxflow_kernel.domain.communication import EscalationOutcome
from taxflow_kernel.domain.policy import DEFAULT_ESCALATION_POLICY, EscalationPolicy
from taxflow_services.communication_routing import CommunicationRoutingWorkflow
from taxflow_services.notifications import HandlerDirectory, Notifier


class EscalationJob(BaseWorkflowJob):
    job_name = "communication_escalation"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        notifier: Notifier | None = None,
        clock: Clock | None = None,
        lease: JobLeaseService | None = None,
        policy: EscalationPolicy = DEFAULT_ESCALATION_POLICY,
        directory: HandlerDirectory | None = None,
        lease_seconds: int = 1800,
        holder: str | None = None,
    ):
        super().__init__(session_factory, clock, lease, lease_seconds, holder)
        self._notifier = notifier
        self._policy = policy
        self._directory = directory

    def _workflow(self, session: AsyncSession) -> CommunicationRoutingWorkflow:
        return CommunicationRoutingWorkflow(
            session,
            notifier=self._notifier,
            clock=self._clock,
            policy=self._policy,
            directory=self._directory,
        )

    async def run(self, counters: RunCounters) -> None:
        async with session_scope(self._session_factory) as session:
            conversations = await self._workflow(session).list_open()

        counters.details.update(escalated=0, at_ceiling=0)
        for conversation in conversations:
            counters.evaluated += 1
            ok, decision = await self.process_item(
                counters,
                "routing_id",
                conversation.routing_id,
                lambda session, rid=conversation.routing_id: (
                    self._workflow(session).check_and_apply_escalation(rid)
                ),
            )
            if not ok:
                continue
            if decision.outcome == EscalationOutcome.ESCALATED:
                counters.succeeded += 1
                counters.bump("escalated")
            elif decision.outcome == EscalationOutcome.AT_CEILING:
                counters.bump("at_ceiling")
