"""
Module: taxflow_kernel.models.communication
Responsibility: ORM persistence for conversation routing and its
    assignment/escalation history.

Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - ``assignee`` and ``assigned_role`` are NOT NULL: a routed
      conversation always has exactly one current handler.
    - Routing steps are append-only.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Text, event
from sqlalchemy.orm import Mapped, mapped_column

from taxflow_kernel.db.base import Base, TrackedBase, UUIDString
from taxflow_kernel.exceptions import ImmutabilityViolationError

if TYPE_CHECKING:
    from taxflow_kernel.domain.communication import ConversationRouting, RoutingStep


class ConversationRoutingModel(TrackedBase):
    """A client conversation and its current handler."""

    __tablename__ = "conversation_routings"

    __table_args__ = (
        CheckConstraint(
            "priority IN ('low', 'medium', 'high', 'urgent')",
            name="ck_conversation_routings_priority",
        ),
        CheckConstraint(
            "status IN ('assigned', 'in_progress', 'escalated', 'resolved', 'closed')",
            name="ck_conversation_routings_status",
        ),
        Index("ix_conversation_routings_status", "status", "assigned_at"),
    )

    conversation_reference: Mapped[str] = mapped_column(String(100), nullable=False)
    client_reference: Mapped[str] = mapped_column(String(100), nullable=False)
    subject: Mapped[str] = mapped_column(String(500), nullable=False)
    priority: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="assigned")
    assigned_role: Mapped[str] = mapped_column(String(50), nullable=False)
    assignee: Mapped[str] = mapped_column(String(200), nullable=False)
    escalation_level: Mapped[int] = mapped_column(nullable=False, default=0)
    assigned_at: Mapped[datetime] = mapped_column(nullable=False)
    resolved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    resolution_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    response_time_minutes: Mapped[int | None] = mapped_column(nullable=True)
    workflow_instance_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    archived_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return (
            f"<ConversationRouting {self.conversation_reference} "
            f"{self.priority} -> {self.assignee} status={self.status}>"
        )

    def to_dto(self) -> ConversationRouting:
        from taxflow_kernel.domain.approval import Role
        from taxflow_kernel.domain.communication import (
            ConversationRouting as ConversationRoutingDTO,
            ConversationStatus,
            Priority,
        )

        return ConversationRoutingDTO(
            routing_id=self.id,
            conversation_reference=self.conversation_reference,
            client_reference=self.client_reference,
            subject=self.subject,
            priority=Priority(self.priority),
            status=ConversationStatus(self.status),
            assigned_role=Role(self.assigned_role),
            assignee=self.assignee,
            escalation_level=self.escalation_level,
            assigned_at=self.assigned_at,
            created_at=self.created_at,
            resolved_at=self.resolved_at,
            resolution_notes=self.resolution_notes,
            response_time_minutes=self.response_time_minutes,
            workflow_instance_id=self.workflow_instance_id,
            archived_at=self.archived_at,
        )


class RoutingStepModel(Base):
    """Assignment / escalation / resolution history entry. Append-only."""

    __tablename__ = "conversation_routing_steps"

    __table_args__ = (
        Index("ix_conversation_routing_steps_routing", "routing_id", "occurred_at"),
    )

    routing_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("conversation_routings.id"), nullable=False,
    )
    step_type: Mapped[str] = mapped_column(String(30), nullable=False)
    from_role: Mapped[str | None] = mapped_column(String(50), nullable=True)
    to_role: Mapped[str | None] = mapped_column(String(50), nullable=True)
    assignee: Mapped[str | None] = mapped_column(String(200), nullable=True)
    handled_by: Mapped[str] = mapped_column(String(200), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(nullable=False)
    # Insertion order within a conversation; occurred_at can tie under a fixed clock
    sequence: Mapped[int] = mapped_column(nullable=False, default=0)

    def to_dto(self) -> RoutingStep:
        from taxflow_kernel.domain.approval import Role
        from taxflow_kernel.domain.communication import (
            RoutingStep as RoutingStepDTO,
            RoutingStepType,
        )

        return RoutingStepDTO(
            step_id=self.id,
            routing_id=self.routing_id,
            step_type=RoutingStepType(self.step_type),
            from_role=Role(self.from_role) if self.from_role else None,
            to_role=Role(self.to_role) if self.to_role else None,
            assignee=self.assignee,
            handled_by=self.handled_by,
            notes=self.notes,
            occurred_at=self.occurred_at,
        )


@event.listens_for(RoutingStepModel, "before_update")
def prevent_routing_step_update(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="RoutingStep",
        entity_id=str(target.id),
        reason="Routing history is append-only -- cannot modify",
    )
