"""WorkflowDefinitionService -- register and (de)activate workflow definitions."""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taxflow_engines.trigger_schedule import normalize_trigger_type
from taxflow_kernel.domain.clock import Clock, SystemClock
from taxflow_kernel.domain.workflow import WorkflowCategory, WorkflowDefinition
from taxflow_kernel.exceptions import WorkflowNotFoundError
from taxflow_kernel.logging_config import get_logger
from taxflow_kernel.models.workflow import WorkflowDefinitionModel

logger = get_logger("services.workflow_definition")


class WorkflowDefinitionService:
    def __init__(self, session: AsyncSession, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    async def create_definition(
        self,
        name: str,
        category: WorkflowCategory | str,
        trigger_type: str = "manual",
        actions: list[dict[str, Any]] | None = None,
        parameter_schema: dict[str, Any] | None = None,
        is_active: bool = True,
    ) -> WorkflowDefinition:
        now = self._clock.now()
        model = WorkflowDefinitionModel(
            name=name,
            category=WorkflowCategory(category).value,
            trigger_type=normalize_trigger_type(trigger_type).value,
            actions=list(actions or []),
            parameter_schema=dict(parameter_schema or {}),
            is_active=is_active,
            version=1,
        )
        model.touch(now)
        self._session.add(model)
        await self._session.flush()

        logger.info(
            "workflow_definition_created",
            extra={
                "workflow_id": str(model.id),
                "workflow_name": name,
                "category": model.category,
            },
        )
        return model.to_dto()

    async def set_active(self, workflow_id: UUID, is_active: bool) -> WorkflowDefinition:
        model = await self._load(workflow_id)
        model.is_active = is_active
        model.touch(self._clock.now())
        await self._session.flush()
        logger.info(
            "workflow_definition_activation_changed",
            extra={"workflow_id": str(workflow_id), "is_active": is_active},
        )
        return model.to_dto()

    async def get_definition(self, workflow_id: UUID) -> WorkflowDefinition:
        return (await self._load(workflow_id)).to_dto()

    async def list_definitions(self, active_only: bool = False) -> list[WorkflowDefinition]:
        stmt = select(WorkflowDefinitionModel).order_by(WorkflowDefinitionModel.name)
        if active_only:
            stmt = stmt.where(WorkflowDefinitionModel.is_active.is_(True))
        result = await self._session.execute(stmt)
        return [m.to_dto() for m in result.scalars().all()]

    async def _load(self, workflow_id: UUID) -> WorkflowDefinitionModel:
        model = await self._session.get(WorkflowDefinitionModel, workflow_id)
        if model is None:
            raise WorkflowNotFoundError(str(workflow_id))
        return model
