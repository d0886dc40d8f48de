"""
TriggerEvaluationJob -- start workflow instances whose triggers are due.

Contract:
    ``execute()`` evaluates every active trigger once.  A scheduled
    trigger inside its firing window starts exactly one instance of its
    workflow; event, manual, webhook and file-watch triggers are never
    started here.  ``fire_event_triggers()`` is the entry point for event
    triggers, called by whatever ingests domain events.

Architecture: taxflow_batch/jobs.  Calls WorkflowInstanceService; never
    another job.

Invariants enforced:
    - At most one fire per trigger per occurrence window, across repeated
      runs: ``last_fired_at`` is written in the same transaction as the
      instance it started.
    - Every evaluated trigger gets ``last_evaluated_at`` stamped.
    - A trigger whose configuration cannot be decoded fails on its own;
      the remaining triggers are still evaluated.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from taxflow_batch.domain.types import RunCounters
from taxflow_batch.jobs.base import BaseWorkflowJob
from taxflow_batch.services.lease import JobLeaseService
from taxflow_engines.trigger_schedule import decode_trigger_config, evaluate_schedule
from taxflow_kernel.db.engine import session_scope
from taxflow_kernel.domain.clock import Clock
from taxflow_kernel.domain.policy import DEFAULT_TRIGGER_POLICY, TriggerPolicy
from taxflow_kernel.domain.workflow import (
    SYSTEM_ACTOR,
    EventTriggerConfig,
    ScheduleTriggerConfig,
    TriggerDecision,
    TriggerType,
    WorkflowInstance,
    WorkflowTrigger,
)
from taxflow_kernel.exceptions import UnknownTriggerTypeError
from taxflow_kernel.logging_config import get_logger
from taxflow_kernel.models.workflow import WorkflowTriggerModel
from taxflow_kernel.services.workflow_instance_service import (
    WorkflowHandlerRegistry,
    WorkflowInstanceService,
)
from taxflow_services.triggers import TriggerService

logger = get_logger("batch.jobs.trigger_evaluation")


class TriggerEvaluationJob(BaseWorkflowJob):
    job_name = "trigger_evaluation"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Clock | None = None,
        lease: JobLeaseService | None = None,
        handlers: WorkflowHandlerRegistry | None = None,
        policy: TriggerPolicy = DEFAULT_TRIGGER_POLICY,
        lease_seconds: int = 600,
        holder: str | None = None,
    ):
        super().__init__(session_factory, clock, lease, lease_seconds, holder)
        self._handlers = handlers or WorkflowHandlerRegistry()
        self._window = timedelta(minutes=policy.window_minutes)

    async def run(self, counters: RunCounters) -> None:
        async with session_scope(self._session_factory) as session:
            triggers = await TriggerService(session, self._clock).list_active_triggers()

        now = self._clock.now()
        counters.details["started"] = 0
        for trigger in triggers:
            counters.evaluated += 1
            ok, fired = await self.process_item(
                counters,
                "trigger_id",
                trigger.trigger_id,
                lambda session, t=trigger: self._evaluate_trigger(session, t, now),
            )
            if ok and fired:
                counters.succeeded += 1
                counters.bump("started")

    async def fire_event_triggers(
        self,
        event_name: str,
        variables: dict[str, Any] | None = None,
    ) -> list[WorkflowInstance]:
        """Start one instance per active event trigger listening for ``event_name``."""
        async with session_scope(self._session_factory) as session:
            triggers = [
                t for t in await TriggerService(session, self._clock).list_active_triggers()
                if t.trigger_type == TriggerType.EVENT.value
            ]

        started: list[WorkflowInstance] = []
        counters = RunCounters()
        for trigger in triggers:
            ok, instance = await self.process_item(
                counters,
                "trigger_id",
                trigger.trigger_id,
                lambda session, t=trigger: self._fire_event(session, t, event_name, variables or {}),
            )
            if ok and instance is not None:
                started.append(instance)

        logger.info(
            "event_triggers_fired",
            extra={
                "event_name": event_name,
                "matched": len(triggers),
                "started": len(started),
                "failed": counters.failed,
            },
        )
        return started

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    async def _evaluate_trigger(
        self,
        session: AsyncSession,
        trigger: WorkflowTrigger,
        now: datetime,
    ) -> bool:
        model = await session.get(WorkflowTriggerModel, trigger.trigger_id)
        if model is None or not model.is_active:
            return False
        model.last_evaluated_at = now
        model.touch(now)

        try:
            config = decode_trigger_config(model.trigger_type, model.configuration)
        except UnknownTriggerTypeError:
            logger.warning(
                "trigger_type_unknown",
                extra={"trigger_id": str(model.id), "trigger_type": model.trigger_type},
            )
            return False

        if isinstance(config, ScheduleTriggerConfig):
            decision = evaluate_schedule(config, now, model.last_fired_at, self._window)
        elif isinstance(config, EventTriggerConfig):
            decision = TriggerDecision(should_fire=False, reason="event_driven")
        else:
            decision = TriggerDecision(should_fire=False, reason="not_scheduled")

        if not decision.should_fire:
            logger.debug(
                "trigger_not_fired",
                extra={"trigger_id": str(model.id), "reason": decision.reason},
            )
            return False

        await self._start(session, model, config.variables, now)
        return True

    async def _fire_event(
        self,
        session: AsyncSession,
        trigger: WorkflowTrigger,
        event_name: str,
        variables: dict[str, Any],
    ) -> WorkflowInstance | None:
        model = await session.get(WorkflowTriggerModel, trigger.trigger_id)
        if model is None or not model.is_active:
            return None
        config = decode_trigger_config(model.trigger_type, model.configuration)
        if not isinstance(config, EventTriggerConfig) or config.event_name != event_name:
            return None

        now = self._clock.now()
        model.last_evaluated_at = now
        model.touch(now)
        return await self._start(session, model, {**config.variables, **variables}, now)

    async def _start(
        self,
        session: AsyncSession,
        model: WorkflowTriggerModel,
        variables: dict[str, Any],
        now: datetime,
    ) -> WorkflowInstance:
        instances = WorkflowInstanceService(session, self._clock, self._handlers)
        instance = await instances.start_instance(
            model.workflow_id,
            variables={**variables, "trigger_id": str(model.id)},
            started_by=SYSTEM_ACTOR,
        )
        model.last_fired_at = now
        await session.flush()

        logger.info(
            "trigger_fired",
            extra={
                "trigger_id": str(model.id),
                "workflow_id": str(model.workflow_id),
                "instance_id": str(instance.instance_id),
            },
        )
        return instance
