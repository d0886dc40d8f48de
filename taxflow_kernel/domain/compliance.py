"""
Compliance domain types (``taxflow_kernel.domain.compliance``).

Filing deadline lifecycle, deadline classification results, alert and
penalty records.  Pure value objects, ZERO I/O.

``PENDING -> OVERDUE`` is the only automatic transition; ``FILED`` and
``APPROVED`` are reached through explicit human actions.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


class FilingStatus(str, Enum):
    """Filing deadline lifecycle states."""

    PENDING = "pending"
    OVERDUE = "overdue"
    FILED = "filed"
    APPROVED = "approved"


FILING_TRANSITIONS: dict[FilingStatus, frozenset[FilingStatus]] = {
    FilingStatus.PENDING: frozenset({
        FilingStatus.OVERDUE,
        FilingStatus.FILED,
    }),
    FilingStatus.OVERDUE: frozenset({FilingStatus.FILED}),
    FilingStatus.FILED: frozenset({FilingStatus.APPROVED}),
    FilingStatus.APPROVED: frozenset(),
}


class DeadlineClass(str, Enum):
    """Proximity of a filing to its due date on a given day."""

    NONE = "none"
    ALERT = "alert"
    OVERDUE = "overdue"


OVERDUE_ALERT = "overdue"
LATE_FILING = "late_filing"


def deadline_alert_type(days: int) -> str:
    """Alert type key for a days-remaining threshold, e.g. ``deadline_30d``."""
    return f"deadline_{days}d"


@dataclass(frozen=True)
class DeadlineClassification:
    """Result of classifying a filing's distance to its due date."""

    kind: DeadlineClass
    days_until_deadline: int
    alert_type: str | None = None

    @property
    def days_overdue(self) -> int:
        return max(0, -self.days_until_deadline)


@dataclass(frozen=True)
class PenaltyResult:
    """Result of a penalty computation."""

    days_overdue: int
    months_overdue: int
    penalty_rate: Decimal
    penalty_amount: Decimal
    capped: bool = False


@dataclass(frozen=True)
class FilingDeadline:
    """Snapshot of a filing deadline record."""

    filing_id: UUID
    filing_reference: str
    client_reference: str
    tax_type: str
    due_date: date
    amount: Decimal
    status: FilingStatus
    days_overdue: int = 0
    penalty_amount: Decimal | None = None
    filed_at: datetime | None = None
    completed_at: datetime | None = None
    workflow_instance_id: UUID | None = None
    archived_at: datetime | None = None


@dataclass(frozen=True)
class ComplianceAlert:
    """An alert that was recorded (and notified) for a filing."""

    alert_id: UUID
    filing_id: UUID
    alert_type: str
    days_until_deadline: int
    message: str
    recipient: str
    penalty_amount: Decimal | None = None
    sent_at: datetime | None = None


@dataclass(frozen=True)
class PenaltyCalculation:
    """Audit record of a computed penalty."""

    calculation_id: UUID
    filing_id: UUID
    penalty_type: str
    base_amount: Decimal
    days_overdue: int
    months_overdue: int
    penalty_rate: Decimal
    penalty_amount: Decimal
    basis: str
    calculated_at: datetime | None = None


@dataclass(frozen=True)
class ComplianceStatistics:
    total: int
    pending: int
    overdue: int
    filed: int
    approved: int
    total_penalties: Decimal
