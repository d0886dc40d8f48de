"""
Payment approval domain types (``taxflow_kernel.domain.approval``).

Responsibility
--------------
Pure value objects for multi-step payment approvals: the handler role
ladder, the request lifecycle state machine, decision records and
request snapshots.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``models/``, ``services/`` or outer layers.

Invariants enforced
-------------------
* ``APPROVAL_TRANSITIONS`` defines the only valid status transitions.
  Terminal states have no outgoing edges.
* A request is ``APPROVED`` only once ``current_step`` has walked past
  every role in ``approval_chain``; a single rejection is final.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


# =========================================================================
# Handler roles
# =========================================================================


class Role(str, Enum):
    """Authority ladder shared by approvals and communication routing."""

    ASSOCIATE = "Associate"
    MANAGER = "Manager"
    DIRECTOR = "Director"


ROLE_LADDER: tuple[Role, ...] = (Role.ASSOCIATE, Role.MANAGER, Role.DIRECTOR)


# =========================================================================
# Approval Status Lifecycle
# =========================================================================


class ApprovalStatus(str, Enum):
    """Payment approval request lifecycle states."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


APPROVAL_TRANSITIONS: dict[ApprovalStatus, frozenset[ApprovalStatus]] = {
    ApprovalStatus.PENDING: frozenset({
        ApprovalStatus.APPROVED,
        ApprovalStatus.REJECTED,
        ApprovalStatus.CANCELLED,
    }),
    ApprovalStatus.APPROVED: frozenset(),
    ApprovalStatus.REJECTED: frozenset(),
    ApprovalStatus.CANCELLED: frozenset(),
}

TERMINAL_APPROVAL_STATUSES: frozenset[ApprovalStatus] = frozenset({
    ApprovalStatus.APPROVED,
    ApprovalStatus.REJECTED,
    ApprovalStatus.CANCELLED,
})

# Statuses swept by the archival job
ARCHIVABLE_APPROVAL_STATUSES: frozenset[ApprovalStatus] = frozenset({
    ApprovalStatus.APPROVED,
    ApprovalStatus.REJECTED,
})


class ApprovalDecision(str, Enum):
    """Decision recorded against a single chain step."""

    APPROVED = "approved"
    REJECTED = "rejected"


# =========================================================================
# Records
# =========================================================================


@dataclass(frozen=True)
class ApprovalStep:
    """One decision taken at one position of the chain. Immutable."""

    step_id: UUID
    approval_id: UUID
    step_index: int
    role: Role
    approver_id: str
    decision: ApprovalDecision
    comments: str | None = None
    decided_at: datetime | None = None


@dataclass(frozen=True)
class PaymentApprovalRequest:
    """Snapshot of a payment approval request."""

    approval_id: UUID
    payment_reference: str
    amount: Decimal
    currency: str
    requested_by: str
    approval_chain: tuple[Role, ...]
    current_step: int
    status: ApprovalStatus
    comments: str | None = None
    rejection_reason: str | None = None
    created_at: datetime | None = None
    completed_at: datetime | None = None
    completed_by: str | None = None
    current_approver_id: str | None = None
    workflow_instance_id: UUID | None = None
    archived_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_APPROVAL_STATUSES

    @property
    def current_role(self) -> Role | None:
        """Role whose decision is awaited, or None once the chain is walked."""
        if self.status != ApprovalStatus.PENDING:
            return None
        if self.current_step >= len(self.approval_chain):
            return None
        return self.approval_chain[self.current_step]


@dataclass(frozen=True)
class ApprovalStatistics:
    """Aggregate view over all approval requests."""

    total: int
    pending: int
    approved: int
    rejected: int
    cancelled: int
    total_approved_amount: Decimal
    total_rejected_amount: Decimal
