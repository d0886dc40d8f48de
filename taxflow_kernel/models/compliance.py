"""
Module: taxflow_kernel.models.compliance
Responsibility: ORM persistence for filing deadlines, the alerts raised
    against them, and the penalty calculation audit trail.

Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - UNIQUE(filing_id, alert_type) -- each threshold alert is recorded at
      most once per filing, so re-running the monitor never re-notifies.
    - Penalty calculations are append-only.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
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
    from taxflow_kernel.domain.compliance import (
        ComplianceAlert,
        FilingDeadline,
        PenaltyCalculation,
    )


class FilingDeadlineModel(TrackedBase):
    """A tax filing with its due date and compliance status."""

    __tablename__ = "filing_deadlines"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'overdue', 'filed', 'approved')",
            name="ck_filing_deadlines_status",
        ),
        Index("ix_filing_deadlines_status_due", "status", "due_date"),
    )

    filing_reference: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    client_reference: Mapped[str] = mapped_column(String(100), nullable=False)
    tax_type: Mapped[str] = mapped_column(String(50), nullable=False)
    due_date: Mapped[date] = mapped_column(nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending")
    days_overdue: Mapped[int] = mapped_column(nullable=False, default=0)
    penalty_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    filed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_by: Mapped[str | None] = mapped_column(String(200), nullable=True)
    workflow_instance_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    archived_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<FilingDeadline {self.filing_reference} due={self.due_date} status={self.status}>"

    def to_dto(self) -> FilingDeadline:
        from taxflow_kernel.domain.compliance import (
            FilingDeadline as FilingDeadlineDTO,
            FilingStatus,
        )

        return FilingDeadlineDTO(
            filing_id=self.id,
            filing_reference=self.filing_reference,
            client_reference=self.client_reference,
            tax_type=self.tax_type,
            due_date=self.due_date,
            amount=self.amount,
            status=FilingStatus(self.status),
            days_overdue=self.days_overdue,
            penalty_amount=self.penalty_amount,
            filed_at=self.filed_at,
            completed_at=self.completed_at,
            workflow_instance_id=self.workflow_instance_id,
            archived_at=self.archived_at,
        )


class ComplianceAlertModel(Base):
    """Alert recorded (and notified) for a filing."""

    __tablename__ = "compliance_alerts"

    __table_args__ = (
        UniqueConstraint("filing_id", "alert_type", name="uq_compliance_alerts_type"),
    )

    filing_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("filing_deadlines.id"), nullable=False,
    )
    alert_type: Mapped[str] = mapped_column(String(30), nullable=False)
    days_until_deadline: Mapped[int] = mapped_column(nullable=False)
    penalty_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    recipient: Mapped[str] = mapped_column(String(200), nullable=False)
    sent_at: Mapped[datetime] = mapped_column(nullable=False)

    def to_dto(self) -> ComplianceAlert:
        from taxflow_kernel.domain.compliance import ComplianceAlert as ComplianceAlertDTO

        return ComplianceAlertDTO(
            alert_id=self.id,
            filing_id=self.filing_id,
            alert_type=self.alert_type,
            days_until_deadline=self.days_until_deadline,
            message=self.message,
            recipient=self.recipient,
            penalty_amount=self.penalty_amount,
            sent_at=self.sent_at,
        )


class PenaltyCalculationModel(Base):
    """Audit record of a computed penalty. Append-only."""

    __tablename__ = "penalty_calculations"

    __table_args__ = (
        Index("ix_penalty_calculations_filing", "filing_id"),
    )

    filing_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("filing_deadlines.id"), nullable=False,
    )
    penalty_type: Mapped[str] = mapped_column(String(50), nullable=False)
    base_amount: Mapped[Decimal] = mapped_column(nullable=False)
    days_overdue: Mapped[int] = mapped_column(nullable=False)
    months_overdue: Mapped[int] = mapped_column(nullable=False)
    penalty_rate: Mapped[Decimal] = mapped_column(nullable=False)
    penalty_amount: Mapped[Decimal] = mapped_column(nullable=False)
    basis: Mapped[str] = mapped_column(Text, nullable=False)
    calculated_at: Mapped[datetime] = mapped_column(nullable=False)

    def to_dto(self) -> PenaltyCalculation:
        from taxflow_kernel.domain.compliance import (
            PenaltyCalculation as PenaltyCalculationDTO,
        )

        return PenaltyCalculationDTO(
            calculation_id=self.id,
            filing_id=self.filing_id,
            penalty_type=self.penalty_type,
            base_amount=self.base_amount,
            days_overdue=self.days_overdue,
            months_overdue=self.months_overdue,
            penalty_rate=self.penalty_rate,
            penalty_amount=self.penalty_amount,
            basis=self.basis,
            calculated_at=self.calculated_at,
        )


@event.listens_for(PenaltyCalculationModel, "before_update")
def prevent_penalty_update(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="PenaltyCalculation",
        entity_id=str(target.id),
        reason="Penalty calculations are append-only -- cannot modify",
    )
