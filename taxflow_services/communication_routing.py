"""
taxflow_services.communication_routing -- Client conversation routing and escalation.

Responsibility:
    Route a new client conversation to a handler by priority, escalate it
    up the role ladder when it waits too long, and record its resolution.

Architecture position:
    Services -- composes the pure escalation rules with kernel models and
    the notification channel.  Session-scoped; one conversation per call.

Invariants enforced:
    - An open conversation always has exactly one assignee.
    - Escalation moves one rung (Associate -> Manager -> Director) and
      restarts the waiting clock; at the top rung nothing changes.
    - Every assignment, escalation and resolution is appended to the
      routing history; the history is never rewritten.
    - Resolved and Closed conversations are never escalated.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from taxflow_engines.escalation import (
    EscalationDecision,
    elapsed_minutes,
    evaluate_escalation,
    initial_role_for,
    next_role_on_ladder,
)
from taxflow_kernel.domain.approval import Role
from taxflow_kernel.domain.clock import Clock, SystemClock
from taxflow_kernel.domain.communication import (
    CONVERSATION_TRANSITIONS,
    OPEN_CONVERSATION_STATUSES,
    ConversationRouting,
    ConversationStatus,
    EscalationOutcome,
    Priority,
    RoutingStep,
    RoutingStepType,
)
from taxflow_kernel.domain.notification import Notification, Severity
from taxflow_kernel.domain.policy import DEFAULT_ESCALATION_POLICY, EscalationPolicy
from taxflow_kernel.domain.workflow import SYSTEM_ACTOR
from taxflow_kernel.exceptions import ConversationNotFoundError, InvalidStateError
from taxflow_kernel.logging_config import get_logger
from taxflow_kernel.models.communication import ConversationRoutingModel, RoutingStepModel
from taxflow_kernel.services.workflow_instance_service import WorkflowInstanceService
from taxflow_services.notifications import (
    HandlerDirectory,
    LoggingNotifier,
    Notifier,
    StaticHandlerDirectory,
    dispatch_notification,
)

logger = get_logger("services.communication_routing")


class CommunicationRoutingWorkflow:
    def __init__(
        self,
        session: AsyncSession,
        notifier: Notifier | None = None,
        clock: Clock | None = None,
        policy: EscalationPolicy = DEFAULT_ESCALATION_POLICY,
        directory: HandlerDirectory | None = None,
    ):
        self._session = session
        self._notifier = notifier or LoggingNotifier()
        self._clock = clock or SystemClock()
        self._policy = policy
        self._directory = directory or StaticHandlerDirectory()

    # =========================================================================
    # Routing
    # =========================================================================

    async def route_message(
        self,
        conversation_reference: str,
        client_reference: str,
        subject: str,
        priority: Priority | str,
        workflow_instance_id: UUID | None = None,
    ) -> ConversationRouting:
        """Assign a new conversation to the role its priority calls for."""
        priority = Priority(priority)
        role = initial_role_for(priority, self._policy)
        assignee = self._directory.handler_for(role)
        now = self._clock.now()

        model = ConversationRoutingModel(
            conversation_reference=conversation_reference,
            client_reference=client_reference,
            subject=subject,
            priority=priority.value,
            status=ConversationStatus.ASSIGNED.value,
            assigned_role=role.value,
            assignee=assignee,
            escalation_level=0,
            assigned_at=now,
            workflow_instance_id=workflow_instance_id,
        )
        model.touch(now)
        self._session.add(model)
        await self._session.flush()

        await self._append_step(
            model,
            RoutingStepType.ASSIGNED,
            handled_by=SYSTEM_ACTOR,
            to_role=role,
            notes=f"Routed by {priority.value} priority",
        )

        logger.info(
            "conversation_routed",
            extra={
                "routing_id": str(model.id),
                "conversation_reference": conversation_reference,
                "priority": priority.value,
                "assigned_role": role.value,
                "assignee": assignee,
            },
        )
        await self._notify(
            assignee,
            title=f"New {priority.value} priority conversation",
            message=f"{subject} (client {client_reference}) has been assigned to you.",
            severity=Severity.WARNING if priority == Priority.URGENT else Severity.INFO,
        )
        return model.to_dto()

    # =========================================================================
    # Escalation
    # =========================================================================

    async def check_and_apply_escalation(self, routing_id: UUID) -> EscalationDecision:
        """Escalate one conversation if it has waited past its threshold."""
        model = await self._load(routing_id)
        now = self._clock.now()
        priority = Priority(model.priority)

        if ConversationStatus(model.status) not in OPEN_CONVERSATION_STATUSES:
            return EscalationDecision(
                outcome=EscalationOutcome.CLOSED,
                elapsed_minutes=elapsed_minutes(model.assigned_at, now),
                threshold_minutes=self._policy.threshold_minutes[priority],
            )

        decision = evaluate_escalation(
            priority, Role(model.assigned_role), model.assigned_at, now, self._policy,
        )

        if decision.outcome == EscalationOutcome.AT_CEILING:
            logger.info(
                "conversation_at_escalation_ceiling",
                extra={
                    "routing_id": str(model.id),
                    "assigned_role": model.assigned_role,
                    "elapsed_minutes": decision.elapsed_minutes,
                },
            )
        elif decision.outcome == EscalationOutcome.ESCALATED:
            await self._move_up(
                model,
                decision.target_role,
                handled_by=SYSTEM_ACTOR,
                notes=f"Auto-escalated after {decision.elapsed_minutes} minutes",
            )
        return decision

    async def escalate(
        self,
        conversation_id: UUID,
        escalated_by: str,
        reason: str,
    ) -> ConversationRouting:
        """Manually move a conversation one rung up the ladder."""
        model = await self._load(conversation_id)
        target = next_role_on_ladder(Role(model.assigned_role), self._policy)
        if target is None:
            raise InvalidStateError(
                entity_type="ConversationRouting",
                entity_id=str(model.id),
                current_status=model.status,
                attempted=f"escalate beyond {model.assigned_role}",
            )
        await self._move_up(model, target, handled_by=escalated_by, notes=reason)
        return model.to_dto()

    # =========================================================================
    # Handler actions
    # =========================================================================

    async def start_work(self, conversation_id: UUID, handled_by: str) -> ConversationRouting:
        model = await self._load(conversation_id)
        self._transition(model, ConversationStatus.IN_PROGRESS, "start work on")
        model.touch(self._clock.now())
        await self._session.flush()
        logger.info(
            "conversation_in_progress",
            extra={"routing_id": str(model.id), "handled_by": handled_by},
        )
        return model.to_dto()

    async def resolve(
        self,
        conversation_id: UUID,
        resolved_by: str,
        notes: str | None = None,
    ) -> ConversationRouting:
        model = await self._load(conversation_id)
        self._transition(model, ConversationStatus.RESOLVED, "resolve")

        now = self._clock.now()
        model.resolved_at = now
        model.resolution_notes = notes
        model.response_time_minutes = elapsed_minutes(model.created_at, now)
        model.touch(now)
        await self._append_step(
            model, RoutingStepType.RESOLVED, handled_by=resolved_by, notes=notes,
        )

        logger.info(
            "conversation_resolved",
            extra={
                "routing_id": str(model.id),
                "resolved_by": resolved_by,
                "response_time_minutes": model.response_time_minutes,
                "escalation_level": model.escalation_level,
            },
        )
        await self._complete_linked_instance(model, resolved_by)
        return model.to_dto()

    async def close(
        self,
        conversation_id: UUID,
        closed_by: str,
        notes: str | None = None,
    ) -> ConversationRouting:
        model = await self._load(conversation_id)
        self._transition(model, ConversationStatus.CLOSED, "close")

        now = self._clock.now()
        if model.resolved_at is None:
            model.resolved_at = now
            model.response_time_minutes = elapsed_minutes(model.created_at, now)
        model.touch(now)
        await self._append_step(
            model, RoutingStepType.CLOSED, handled_by=closed_by, notes=notes,
        )

        logger.info(
            "conversation_closed",
            extra={"routing_id": str(model.id), "closed_by": closed_by},
        )
        await self._complete_linked_instance(model, closed_by)
        return model.to_dto()

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_conversation(self, conversation_id: UUID) -> ConversationRouting:
        return (await self._load(conversation_id)).to_dto()

    async def get_history(self, conversation_id: UUID) -> list[RoutingStep]:
        await self._load(conversation_id)
        result = await self._session.execute(
            select(RoutingStepModel)
            .where(RoutingStepModel.routing_id == conversation_id)
            .order_by(RoutingStepModel.sequence)
        )
        return [m.to_dto() for m in result.scalars().all()]

    async def list_open(self) -> list[ConversationRouting]:
        result = await self._session.execute(
            select(ConversationRoutingModel)
            .where(ConversationRoutingModel.status.in_(
                [s.value for s in OPEN_CONVERSATION_STATUSES]
            ))
            .order_by(ConversationRoutingModel.assigned_at, ConversationRoutingModel.id)
        )
        return [m.to_dto() for m in result.scalars().all()]

    # =========================================================================
    # Internal
    # =========================================================================

    async def _load(self, conversation_id: UUID) -> ConversationRoutingModel:
        model = await self._session.get(ConversationRoutingModel, conversation_id)
        if model is None:
            raise ConversationNotFoundError(str(conversation_id))
        return model

    @staticmethod
    def _transition(
        model: ConversationRoutingModel,
        new_status: ConversationStatus,
        attempted: str,
    ) -> None:
        current = ConversationStatus(model.status)
        if new_status not in CONVERSATION_TRANSITIONS[current]:
            raise InvalidStateError(
                entity_type="ConversationRouting",
                entity_id=str(model.id),
                current_status=current.value,
                attempted=attempted,
            )
        model.status = new_status.value

    async def _move_up(
        self,
        model: ConversationRoutingModel,
        target: Role,
        handled_by: str,
        notes: str,
    ) -> None:
        self._transition(model, ConversationStatus.ESCALATED, "escalate")

        now = self._clock.now()
        from_role = Role(model.assigned_role)
        assignee = self._directory.handler_for(target)
        model.assigned_role = target.value
        model.assignee = assignee
        model.escalation_level += 1
        model.assigned_at = now
        model.touch(now)
        await self._append_step(
            model,
            RoutingStepType.ESCALATED,
            handled_by=handled_by,
            from_role=from_role,
            to_role=target,
            notes=notes,
        )

        logger.warning(
            "conversation_escalated",
            extra={
                "routing_id": str(model.id),
                "from_role": from_role.value,
                "to_role": target.value,
                "assignee": assignee,
                "escalation_level": model.escalation_level,
                "escalated_by": handled_by,
            },
        )
        await self._notify(
            assignee,
            title=f"Conversation escalated to {target.value}",
            message=f"{model.subject} (client {model.client_reference}): {notes}",
            severity=Severity.WARNING,
        )

    async def _append_step(
        self,
        model: ConversationRoutingModel,
        step_type: RoutingStepType,
        handled_by: str,
        to_role: Role | None = None,
        from_role: Role | None = None,
        notes: str | None = None,
    ) -> None:
        last = (await self._session.execute(
            select(func.max(RoutingStepModel.sequence))
            .where(RoutingStepModel.routing_id == model.id)
        )).scalar()
        self._session.add(RoutingStepModel(
            routing_id=model.id,
            step_type=step_type.value,
            from_role=from_role.value if from_role else None,
            to_role=to_role.value if to_role else None,
            assignee=model.assignee,
            handled_by=handled_by,
            notes=notes,
            occurred_at=self._clock.now(),
            sequence=0 if last is None else last + 1,
        ))
        await self._session.flush()

    async def _complete_linked_instance(
        self,
        model: ConversationRoutingModel,
        actor: str,
    ) -> None:
        if model.workflow_instance_id is None:
            return
        instances = WorkflowInstanceService(self._session, clock=self._clock)
        instance = await instances.get_instance(model.workflow_instance_id)
        if not instance.is_terminal:
            await instances.complete_instance(
                instance.instance_id,
                completed_by=actor,
                result={"conversation_status": model.status},
            )

    async def _notify(
        self,
        recipient: str,
        title: str,
        message: str,
        severity: Severity = Severity.INFO,
    ) -> None:
        await dispatch_notification(
            self._notifier,
            Notification(recipient=recipient, title=title, message=message, severity=severity),
        )
