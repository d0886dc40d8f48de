"""
CleanupJob -- weekly archival of long-finished records.

Contract:
    ``execute()`` stamps ``archived_at`` on every terminal record whose
    completion time is older than the retention window.  Each record kind
    is archived in its own transaction; ``details["archived"]`` maps kind
    to the number of records archived this run.

Invariants enforced:
    - A record qualifies only when it is in a terminal status, its
      completion timestamp is strictly before ``now - retention`` and it
      has not been archived yet.
    - Only ``archived_at`` (and the audit ``updated_at``) are written;
      completion timestamps are never overwritten.
    - Non-terminal records are never touched.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from taxflow_batch.domain.types import RunCounters
from taxflow_batch.jobs.base import BaseWorkflowJob
from taxflow_batch.services.lease import JobLeaseService
from taxflow_kernel.domain.approval import ARCHIVABLE_APPROVAL_STATUSES
from taxflow_kernel.domain.clock import Clock
from taxflow_kernel.domain.communication import TERMINAL_CONVERSATION_STATUSES
from taxflow_kernel.domain.document import TERMINAL_DOCUMENT_STATUSES
from taxflow_kernel.domain.policy import DEFAULT_RETENTION_POLICY, RetentionPolicy
from taxflow_kernel.domain.workflow import TERMINAL_INSTANCE_STATUSES
from taxflow_kernel.logging_config import get_logger
from taxflow_kernel.models.approval import PaymentApprovalRequestModel
from taxflow_kernel.models.communication import ConversationRoutingModel
from taxflow_kernel.models.document import DocumentSubmissionModel
from taxflow_kernel.models.workflow import WorkflowInstanceModel

logger = get_logger("batch.jobs.cleanup")


@dataclass(frozen=True)
class ArchivableKind:
    """One table swept by the archival job."""

    name: str
    model: Any
    completed_column: str
    statuses: frozenset[str]


ARCHIVABLE_KINDS: tuple[ArchivableKind, ...] = (
    ArchivableKind(
        "payment_approvals",
        PaymentApprovalRequestModel,
        "completed_at",
        frozenset(s.value for s in ARCHIVABLE_APPROVAL_STATUSES),
    ),
    ArchivableKind(
        "documents",
        DocumentSubmissionModel,
        "completed_at",
        frozenset(s.value for s in TERMINAL_DOCUMENT_STATUSES),
    ),
    ArchivableKind(
        "conversations",
        ConversationRoutingModel,
        "resolved_at",
        frozenset(s.value for s in TERMINAL_CONVERSATION_STATUSES),
    ),
    ArchivableKind(
        "workflow_instances",
        WorkflowInstanceModel,
        "completed_at",
        frozenset(s.value for s in TERMINAL_INSTANCE_STATUSES),
    ),
)


class CleanupJob(BaseWorkflowJob):
    job_name = "workflow_cleanup"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Clock | None = None,
        lease: JobLeaseService | None = None,
        retention: RetentionPolicy = DEFAULT_RETENTION_POLICY,
        lease_seconds: int = 3600,
        holder: str | None = None,
        kinds: tuple[ArchivableKind, ...] = ARCHIVABLE_KINDS,
    ):
        super().__init__(session_factory, clock, lease, lease_seconds, holder)
        self._retention = retention
        self._kinds = kinds

    async def run(self, counters: RunCounters) -> None:
        now = self._clock.now()
        cutoff = now - timedelta(days=self._retention.archive_after_days)
        archived: dict[str, int] = {}
        counters.details["archived"] = archived
        counters.details["cutoff"] = cutoff.isoformat()

        for kind in self._kinds:
            counters.evaluated += 1
            ok, count = await self.process_item(
                counters,
                "archive_kind",
                kind.name,
                lambda session, k=kind: self._archive(session, k, cutoff, now),
            )
            if ok:
                archived[kind.name] = count
                counters.succeeded += count

    @staticmethod
    async def _archive(
        session: AsyncSession,
        kind: ArchivableKind,
        cutoff: datetime,
        now: datetime,
    ) -> int:
        model = kind.model
        completed = getattr(model, kind.completed_column)
        result = await session.execute(
            update(model)
            .where(model.status.in_(sorted(kind.statuses)))
            .where(completed.is_not(None))
            .where(completed < cutoff)
            .where(model.archived_at.is_(None))
            .values(archived_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        count = result.rowcount or 0
        logger.info(
            "records_archived",
            extra={"archive_kind": kind.name, "count": count, "cutoff": cutoff},
        )
        return count
