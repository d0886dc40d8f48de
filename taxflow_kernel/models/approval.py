"""
Module: taxflow_kernel.models.approval
Responsibility: ORM persistence for payment approval requests and their
    per-step decisions.

Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Status values limited by check constraint; the service layer
      enforces APPROVAL_TRANSITIONS.
    - Step records are append-only: UPDATE and DELETE raise
      ImmutabilityViolationError at the ORM level.
    - UNIQUE(approval_id, step_index) -- one decision per chain position.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    JSON,
    CheckConstraint,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column

from taxflow_kernel.db.base import Base, TrackedBase, UUIDString
from taxflow_kernel.exceptions import ImmutabilityViolationError

if TYPE_CHECKING:
    from taxflow_kernel.domain.approval import ApprovalStep, PaymentApprovalRequest


class PaymentApprovalRequestModel(TrackedBase):
    """Persistent payment approval request.

    ``approval_chain`` holds the ordered role names resolved at creation;
    later policy changes do not alter an existing request's chain.
    ``current_approver_id`` is the identity expected to decide the current
    step; it is cleared once the request is terminal.
    """

    __tablename__ = "payment_approval_requests"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'cancelled')",
            name="ck_payment_approval_requests_status",
        ),
        Index("ix_payment_approval_requests_status_completed", "status", "completed_at"),
        Index("ix_payment_approval_requests_status_approver", "status", "current_approver_id"),
    )

    payment_reference: Mapped[str] = mapped_column(String(100), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="SLE")
    requested_by: Mapped[str] = mapped_column(String(200), nullable=False)
    approval_chain: Mapped[list[str]] = mapped_column(JSON, nullable=False)
    current_step: Mapped[int] = mapped_column(nullable=False, default=0)
    current_approver_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending")
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_by: Mapped[str | None] = mapped_column(String(200), nullable=True)
    workflow_instance_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    archived_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return (
            f"<PaymentApprovalRequest {self.id} {self.payment_reference} "
            f"step={self.current_step}/{len(self.approval_chain or ())} "
            f"status={self.status}>"
        )

    def to_dto(self) -> PaymentApprovalRequest:
        from taxflow_kernel.domain.approval import (
            ApprovalStatus,
            PaymentApprovalRequest as PaymentApprovalRequestDTO,
            Role,
        )

        return PaymentApprovalRequestDTO(
            approval_id=self.id,
            payment_reference=self.payment_reference,
            amount=self.amount,
            currency=self.currency,
            requested_by=self.requested_by,
            approval_chain=tuple(Role(r) for r in self.approval_chain),
            current_step=self.current_step,
            current_approver_id=self.current_approver_id,
            status=ApprovalStatus(self.status),
            comments=self.comments,
            rejection_reason=self.rejection_reason,
            created_at=self.created_at,
            completed_at=self.completed_at,
            completed_by=self.completed_by,
            workflow_instance_id=self.workflow_instance_id,
            archived_at=self.archived_at,
        )


class PaymentApprovalStepModel(Base):
    """One decision at one position of an approval chain. Append-only."""

    __tablename__ = "payment_approval_steps"

    __table_args__ = (
        UniqueConstraint(
            "approval_id", "step_index",
            name="uq_payment_approval_steps_position",
        ),
        Index("ix_payment_approval_steps_approval", "approval_id"),
    )

    approval_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("payment_approval_requests.id"), nullable=False,
    )
    step_index: Mapped[int] = mapped_column(nullable=False)
    role: Mapped[str] = mapped_column(String(50), nullable=False)
    approver_id: Mapped[str] = mapped_column(String(200), nullable=False)
    decision: Mapped[str] = mapped_column(String(20), nullable=False)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    decided_at: Mapped[datetime] = mapped_column(nullable=False)

    def to_dto(self) -> ApprovalStep:
        from taxflow_kernel.domain.approval import (
            ApprovalDecision,
            ApprovalStep as ApprovalStepDTO,
            Role,
        )

        return ApprovalStepDTO(
            step_id=self.id,
            approval_id=self.approval_id,
            step_index=self.step_index,
            role=Role(self.role),
            approver_id=self.approver_id,
            decision=ApprovalDecision(self.decision),
            comments=self.comments,
            decided_at=self.decided_at,
        )


@event.listens_for(PaymentApprovalStepModel, "before_update")
def prevent_step_update(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="PaymentApprovalStep",
        entity_id=str(target.id),
        reason="Approval steps are append-only -- cannot modify",
    )


@event.listens_for(PaymentApprovalStepModel, "before_delete")
def prevent_step_delete(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="PaymentApprovalStep",
        entity_id=str(target.id),
        reason="Approval steps are append-only -- cannot delete",
    )
