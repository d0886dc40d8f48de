"""
TriggerService -- create, look up and deactivate workflow triggers.

Contract:
    A trigger's configuration is validated against its type when it is
    created, so malformed blobs are rejected at the door.  Blobs that
    reach the table some other way are still decoded (and rejected per
    trigger) by the evaluator.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taxflow_engines.trigger_schedule import decode_trigger_config, normalize_trigger_type
from taxflow_kernel.domain.clock import Clock, SystemClock
from taxflow_kernel.domain.workflow import WorkflowTrigger
from taxflow_kernel.exceptions import TriggerNotFoundError, WorkflowNotFoundError
from taxflow_kernel.logging_config import get_logger
from taxflow_kernel.models.workflow import WorkflowDefinitionModel, WorkflowTriggerModel

logger = get_logger("services.trigger")


class TriggerService:
    def __init__(self, session: AsyncSession, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    async def create_trigger(
        self,
        workflow_id: UUID,
        trigger_type: str,
        configuration: Any = None,
        is_active: bool = True,
    ) -> WorkflowTrigger:
        """
        Raises:
            WorkflowNotFoundError: ``workflow_id`` does not exist.
            UnknownTriggerTypeError: ``trigger_type`` is not supported.
            InvalidTriggerConfigError: ``configuration`` does not decode.
        """
        if await self._session.get(WorkflowDefinitionModel, workflow_id) is None:
            raise WorkflowNotFoundError(str(workflow_id))

        ttype = normalize_trigger_type(trigger_type)
        decode_trigger_config(ttype, configuration)

        model = WorkflowTriggerModel(
            workflow_id=workflow_id,
            trigger_type=ttype.value,
            configuration=configuration,
            is_active=is_active,
        )
        model.touch(self._clock.now())
        self._session.add(model)
        await self._session.flush()

        logger.info(
            "trigger_created",
            extra={
                "trigger_id": str(model.id),
                "workflow_id": str(workflow_id),
                "trigger_type": ttype.value,
            },
        )
        return model.to_dto()

    async def deactivate_trigger(self, trigger_id: UUID) -> WorkflowTrigger:
        model = await self._load(trigger_id)
        model.is_active = False
        model.touch(self._clock.now())
        await self._session.flush()
        logger.info("trigger_deactivated", extra={"trigger_id": str(trigger_id)})
        return model.to_dto()

    async def get_trigger(self, trigger_id: UUID) -> WorkflowTrigger:
        return (await self._load(trigger_id)).to_dto()

    async def list_active_triggers(self) -> list[WorkflowTrigger]:
        result = await self._session.execute(
            select(WorkflowTriggerModel)
            .where(WorkflowTriggerModel.is_active.is_(True))
            .order_by(WorkflowTriggerModel.created_at, WorkflowTriggerModel.id)
        )
        return [m.to_dto() for m in result.scalars().all()]

    async def _load(self, trigger_id: UUID) -> WorkflowTriggerModel:
        model = await self._session.get(WorkflowTriggerModel, trigger_id)
        if model is None:
            raise TriggerNotFoundError(str(trigger_id))
        return model
