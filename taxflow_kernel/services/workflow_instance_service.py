"""
WorkflowInstanceService -- create and transition workflow instances.

Contract:
    ``start_instance()`` creates exactly one instance per successful
    activation of a definition and hands it to the handler registered for
    the definition's category.  ``complete_instance()`` and
    ``cancel_instance()`` close it out.

Architecture: taxflow_kernel/services.  Session-scoped; the caller owns
    the transaction.  A handler that raises aborts the whole start, so no
    orphan instance is left behind once the caller rolls back.

Invariants enforced:
    - Lifecycle follows INSTANCE_TRANSITIONS: Pending -> Running ->
      Completed | Cancelled.  Terminal instances never move again.
    - The instance snapshots the definition's name and version at start.
    - Variables and context are stored JSON-safe.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taxflow_kernel.domain.clock import Clock, SystemClock
from taxflow_kernel.domain.workflow import (
    INSTANCE_TRANSITIONS,
    SYSTEM_ACTOR,
    InstanceStatus,
    WorkflowCategory,
    WorkflowInstance,
)
from taxflow_kernel.exceptions import (
    InvalidStateError,
    WorkflowInactiveError,
    WorkflowInstanceNotFoundError,
    WorkflowNotFoundError,
)
from taxflow_kernel.logging_config import get_logger
from taxflow_kernel.models.workflow import WorkflowDefinitionModel, WorkflowInstanceModel

logger = get_logger("services.workflow_instance")


def to_json_safe(value: Any) -> Any:
    """Recursively convert Decimal/UUID/datetime/Enum values for a JSON column."""
    if isinstance(value, dict):
        return {str(k): to_json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_safe(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


# =============================================================================
# Handler registry
# =============================================================================


@runtime_checkable
class WorkflowHandler(Protocol):
    """Domain-specific start logic for one workflow category.

    ``start()`` runs inside the caller's session and returns the context
    to store on the instance (e.g. the id of the record it created).
    """

    @property
    def category(self) -> WorkflowCategory: ...

    async def start(
        self,
        session: AsyncSession,
        instance: WorkflowInstance,
        variables: dict[str, Any],
    ) -> dict[str, Any]: ...


class WorkflowHandlerRegistry:
    """Maps a workflow category to its handler.  One handler per category."""

    def __init__(self) -> None:
        self._handlers: dict[WorkflowCategory, WorkflowHandler] = {}

    def register(self, handler: WorkflowHandler) -> None:
        """Raises ValueError if the category already has a handler."""
        if handler.category in self._handlers:
            raise ValueError(
                f"Handler already registered for category: {handler.category.value}"
            )
        self._handlers[handler.category] = handler

    def get(self, category: WorkflowCategory) -> WorkflowHandler:
        """Raises KeyError if no handler is registered."""
        if category not in self._handlers:
            raise KeyError(f"No handler registered for category: {category.value}")
        return self._handlers[category]

    def __contains__(self, category: object) -> bool:
        return category in self._handlers

    def list_categories(self) -> list[str]:
        return sorted(c.value for c in self._handlers)


# =============================================================================
# Service
# =============================================================================


class WorkflowInstanceService:
    """Creates and transitions workflow instances."""

    def __init__(
        self,
        session: AsyncSession,
        clock: Clock | None = None,
        handlers: WorkflowHandlerRegistry | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._handlers = handlers or WorkflowHandlerRegistry()

    async def start_instance(
        self,
        workflow_id: UUID,
        variables: dict[str, Any] | None = None,
        started_by: str = SYSTEM_ACTOR,
    ) -> WorkflowInstance:
        """Start a new instance of an active workflow definition.

        Raises:
            WorkflowNotFoundError: No definition with ``workflow_id``.
            WorkflowInactiveError: The definition is deactivated.
        """
        definition = await self._session.get(WorkflowDefinitionModel, workflow_id)
        if definition is None:
            raise WorkflowNotFoundError(str(workflow_id))
        if not definition.is_active:
            raise WorkflowInactiveError(str(workflow_id))

        now = self._clock.now()
        variables = dict(variables or {})
        model = WorkflowInstanceModel(
            workflow_id=definition.id,
            workflow_version=definition.version,
            name=f"{definition.name} - {now:%Y-%m-%d %H:%M}",
            status=InstanceStatus.PENDING.value,
            variables=to_json_safe(variables),
            context={},
            started_by=started_by,
            started_at=now,
        )
        model.touch(now)
        self._session.add(model)
        await self._session.flush()

        category = WorkflowCategory(definition.category)
        if category in self._handlers:
            handler = self._handlers.get(category)
            context = await handler.start(self._session, model.to_dto(), variables)
            model.context = to_json_safe(context or {})

        self._transition(model, InstanceStatus.RUNNING, "start")
        model.touch(now)
        await self._session.flush()

        logger.info(
            "workflow_instance_started",
            extra={
                "instance_id": str(model.id),
                "workflow_id": str(definition.id),
                "workflow_name": definition.name,
                "category": category.value,
                "started_by": started_by,
            },
        )
        return model.to_dto()

    async def complete_instance(
        self,
        instance_id: UUID,
        completed_by: str = SYSTEM_ACTOR,
        result: dict[str, Any] | None = None,
    ) -> WorkflowInstance:
        model = await self._load(instance_id)
        self._transition(model, InstanceStatus.COMPLETED, "complete")

        now = self._clock.now()
        model.completed_at = now
        model.completed_by = completed_by
        if result:
            model.context = {**(model.context or {}), **to_json_safe(result)}
        model.touch(now)
        await self._session.flush()

        logger.info(
            "workflow_instance_completed",
            extra={"instance_id": str(model.id), "completed_by": completed_by},
        )
        return model.to_dto()

    async def cancel_instance(
        self,
        instance_id: UUID,
        cancelled_by: str,
        reason: str | None = None,
    ) -> WorkflowInstance:
        model = await self._load(instance_id)
        self._transition(model, InstanceStatus.CANCELLED, "cancel")

        now = self._clock.now()
        model.completed_at = now
        model.completed_by = cancelled_by
        model.error_message = reason
        model.touch(now)
        await self._session.flush()

        logger.info(
            "workflow_instance_cancelled",
            extra={
                "instance_id": str(model.id),
                "cancelled_by": cancelled_by,
                "reason": reason,
            },
        )
        return model.to_dto()

    async def get_instance(self, instance_id: UUID) -> WorkflowInstance:
        return (await self._load(instance_id)).to_dto()

    async def list_instances(
        self,
        workflow_id: UUID | None = None,
        status: InstanceStatus | None = None,
    ) -> list[WorkflowInstance]:
        stmt = select(WorkflowInstanceModel).order_by(WorkflowInstanceModel.created_at)
        if workflow_id is not None:
            stmt = stmt.where(WorkflowInstanceModel.workflow_id == workflow_id)
        if status is not None:
            stmt = stmt.where(WorkflowInstanceModel.status == status.value)
        result = await self._session.execute(stmt)
        return [m.to_dto() for m in result.scalars().all()]

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    async def _load(self, instance_id: UUID) -> WorkflowInstanceModel:
        model = await self._session.get(WorkflowInstanceModel, instance_id)
        if model is None:
            raise WorkflowInstanceNotFoundError(str(instance_id))
        return model

    @staticmethod
    def _transition(
        model: WorkflowInstanceModel,
        new_status: InstanceStatus,
        attempted: str,
    ) -> None:
        current = InstanceStatus(model.status)
        if new_status not in INSTANCE_TRANSITIONS[current]:
            raise InvalidStateError(
                entity_type="WorkflowInstance",
                entity_id=str(model.id),
                current_status=current.value,
                attempted=attempted,
            )
        model.status = new_status.value
