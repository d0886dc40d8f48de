"""
Module: taxflow_kernel.models.workflow
Responsibility: ORM persistence for workflow definitions, triggers and
    instances.

Architecture position: Kernel > Models.  May import from db/base.py only
    (domain DTOs are imported lazily inside to_dto()).

Invariants enforced:
    - Instance status values are limited by a check constraint; the
      service layer enforces INSTANCE_TRANSITIONS.
    - A trigger's configuration is stored verbatim; it is decoded into a
      typed variant when loaded, never mutated by the evaluator.
    - Instances snapshot the definition name/version at start, so later
      edits to a definition have no effect on in-flight instances.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import JSON, Boolean, CheckConstraint, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from taxflow_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from taxflow_kernel.domain.workflow import (
        WorkflowDefinition,
        WorkflowInstance,
        WorkflowTrigger,
    )


class WorkflowDefinitionModel(TrackedBase):
    """Named workflow with its category, trigger type and ordered actions."""

    __tablename__ = "workflow_definitions"

    __table_args__ = (
        CheckConstraint(
            "category IN ('approval', 'compliance', 'document', "
            "'communication', 'general')",
            name="ck_workflow_definitions_category",
        ),
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    trigger_type: Mapped[str] = mapped_column(String(50), nullable=False)
    actions: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)
    parameter_schema: Mapped[dict[str, Any]] = mapped_column(
        JSON, nullable=False, default=dict,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    version: Mapped[int] = mapped_column(nullable=False, default=1)

    def __repr__(self) -> str:
        return f"<WorkflowDefinition {self.name} category={self.category}>"

    def to_dto(self) -> WorkflowDefinition:
        from taxflow_kernel.domain.workflow import (
            TriggerType,
            WorkflowCategory,
            WorkflowDefinition as WorkflowDefinitionDTO,
        )

        return WorkflowDefinitionDTO(
            workflow_id=self.id,
            name=self.name,
            category=WorkflowCategory(self.category),
            trigger_type=TriggerType(self.trigger_type),
            actions=tuple(self.actions or ()),
            parameter_schema=dict(self.parameter_schema or {}),
            is_active=self.is_active,
            version=self.version,
        )


class WorkflowTriggerModel(TrackedBase):
    """Stored trigger.  ``last_fired_at`` is the de-duplication watermark."""

    __tablename__ = "workflow_triggers"

    __table_args__ = (
        Index("ix_workflow_triggers_active", "is_active", "trigger_type"),
    )

    workflow_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("workflow_definitions.id"), nullable=False,
    )
    trigger_type: Mapped[str] = mapped_column(String(50), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    configuration: Mapped[Any] = mapped_column(JSON, nullable=True)
    last_evaluated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    last_fired_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<WorkflowTrigger {self.id} type={self.trigger_type} active={self.is_active}>"

    def to_dto(self) -> WorkflowTrigger:
        from taxflow_kernel.domain.workflow import WorkflowTrigger as WorkflowTriggerDTO

        return WorkflowTriggerDTO(
            trigger_id=self.id,
            workflow_id=self.workflow_id,
            trigger_type=self.trigger_type,
            configuration=self.configuration,
            is_active=self.is_active,
            last_evaluated_at=self.last_evaluated_at,
            last_fired_at=self.last_fired_at,
            created_at=self.created_at,
        )


class WorkflowInstanceModel(TrackedBase):
    """One execution of a workflow definition."""

    __tablename__ = "workflow_instances"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'running', 'completed', 'cancelled')",
            name="ck_workflow_instances_status",
        ),
        Index("ix_workflow_instances_status_completed", "status", "completed_at"),
        Index("ix_workflow_instances_workflow", "workflow_id"),
    )

    workflow_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("workflow_definitions.id"), nullable=False,
    )
    workflow_version: Mapped[int] = mapped_column(nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending")
    variables: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    context: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    started_by: Mapped[str] = mapped_column(String(200), nullable=False)
    started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_by: Mapped[str | None] = mapped_column(String(200), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    archived_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<WorkflowInstance {self.id} {self.name!r} status={self.status}>"

    def to_dto(self) -> WorkflowInstance:
        from taxflow_kernel.domain.workflow import (
            InstanceStatus,
            WorkflowInstance as WorkflowInstanceDTO,
        )

        return WorkflowInstanceDTO(
            instance_id=self.id,
            workflow_id=self.workflow_id,
            name=self.name,
            status=InstanceStatus(self.status),
            started_by=self.started_by,
            variables=dict(self.variables or {}),
            context=dict(self.context or {}),
            workflow_version=self.workflow_version,
            started_at=self.started_at,
            completed_at=self.completed_at,
            completed_by=self.completed_by,
            error_message=self.error_message,
            archived_at=self.archived_at,
        )
