"""
taxflow_services.workflow_handlers -- Category handlers for workflow instances.

Responsibility:
    Bridge ``WorkflowInstanceService.start_instance`` to the domain
    workflows.  A definition in the ``approval`` category opens a payment
    approval request, ``compliance`` registers a filing deadline,
    ``document`` records a document submission and ``communication``
    routes a client conversation.  Each handler pulls its inputs out of
    the instance variables and returns the ids it created as instance
    context.  ``general`` definitions have no handler; their instances
    are closed by whoever started them.

Failure modes:
    - WorkflowVariablesError when a required variable is missing or
      cannot be coerced.  The caller's transaction rolls back, so no
      instance is left behind.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from taxflow_kernel.domain.clock import Clock, SystemClock
from taxflow_kernel.domain.communication import Priority
from taxflow_kernel.domain.policy import (
    DEFAULT_ALERT_POLICY,
    DEFAULT_APPROVAL_POLICY,
    DEFAULT_ESCALATION_POLICY,
    DEFAULT_PENALTY_POLICY,
    AlertPolicy,
    ApprovalChainPolicy,
    EscalationPolicy,
    PenaltyPolicy,
)
from taxflow_kernel.domain.workflow import WorkflowCategory, WorkflowInstance
from taxflow_kernel.exceptions import WorkflowVariablesError
from taxflow_kernel.services.workflow_instance_service import WorkflowHandlerRegistry
from taxflow_services.communication_routing import CommunicationRoutingWorkflow
from taxflow_services.compliance_monitoring import ComplianceMonitoringWorkflow
from taxflow_services.document_management import DocumentManagementWorkflow
from taxflow_services.notifications import HandlerDirectory, Notifier
from taxflow_services.payment_approval import PaymentApprovalWorkflow


def _require(variables: dict[str, Any], key: str, category: WorkflowCategory) -> Any:
    value = variables.get(key)
    if value is None or value == "":
        raise WorkflowVariablesError(category.value, f"missing '{key}'")
    return value


def _decimal(variables: dict[str, Any], key: str, category: WorkflowCategory) -> Decimal:
    raw = _require(variables, key, category)
    try:
        return Decimal(str(raw))
    except InvalidOperation:
        raise WorkflowVariablesError(
            category.value, f"{key} is not a number: {raw!r}",
        ) from None


def _date(variables: dict[str, Any], key: str, category: WorkflowCategory) -> date:
    raw = _require(variables, key, category)
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    try:
        return date.fromisoformat(str(raw))
    except ValueError:
        raise WorkflowVariablesError(
            category.value, f"{key} is not an ISO date: {raw!r}",
        ) from None


class PaymentApprovalHandler:
    """Variables: payment_reference, amount, requested_by (optional), currency (optional)."""

    category = WorkflowCategory.APPROVAL

    def __init__(
        self,
        notifier: Notifier | None = None,
        clock: Clock | None = None,
        policy: ApprovalChainPolicy = DEFAULT_APPROVAL_POLICY,
        directory: HandlerDirectory | None = None,
        default_currency: str = "SLE",
    ):
        self._notifier = notifier
        self._clock = clock or SystemClock()
        self._policy = policy
        self._directory = directory
        self._default_currency = default_currency

    async def start(
        self,
        session: AsyncSession,
        instance: WorkflowInstance,
        variables: dict[str, Any],
    ) -> dict[str, Any]:
        reference = _require(variables, "payment_reference", self.category)
        amount = _decimal(variables, "amount", self.category)

        workflow = PaymentApprovalWorkflow(
            session,
            notifier=self._notifier,
            clock=self._clock,
            policy=self._policy,
            directory=self._directory,
            default_currency=self._default_currency,
        )
        request = await workflow.request_payment_approval(
            payment_reference=str(reference),
            amount=amount,
            requested_by=str(variables.get("requested_by") or instance.started_by),
            currency=variables.get("currency"),
            comments=variables.get("comments"),
            workflow_instance_id=instance.instance_id,
        )
        return {"approval_id": request.approval_id}


class ComplianceFilingHandler:
    """Variables: filing_reference, client_reference, tax_type, due_date (ISO date), amount."""

    category = WorkflowCategory.COMPLIANCE

    def __init__(
        self,
        notifier: Notifier | None = None,
        clock: Clock | None = None,
        penalty_policy: PenaltyPolicy = DEFAULT_PENALTY_POLICY,
        alert_policy: AlertPolicy = DEFAULT_ALERT_POLICY,
    ):
        self._notifier = notifier
        self._clock = clock or SystemClock()
        self._penalty_policy = penalty_policy
        self._alert_policy = alert_policy

    async def start(
        self,
        session: AsyncSession,
        instance: WorkflowInstance,
        variables: dict[str, Any],
    ) -> dict[str, Any]:
        workflow = ComplianceMonitoringWorkflow(
            session,
            notifier=self._notifier,
            clock=self._clock,
            penalty_policy=self._penalty_policy,
            alert_policy=self._alert_policy,
        )
        filing = await workflow.register_filing(
            filing_reference=str(_require(variables, "filing_reference", self.category)),
            client_reference=str(_require(variables, "client_reference", self.category)),
            tax_type=str(_require(variables, "tax_type", self.category)),
            due_date=_date(variables, "due_date", self.category),
            amount=_decimal(variables, "amount", self.category),
            workflow_instance_id=instance.instance_id,
        )
        return {"filing_id": filing.filing_id}


class DocumentSubmissionHandler:
    """Variables: document_reference, client_reference, document_type (default
    general), submitted_by (optional)."""

    category = WorkflowCategory.DOCUMENT

    def __init__(
        self,
        notifier: Notifier | None = None,
        clock: Clock | None = None,
        directory: HandlerDirectory | None = None,
    ):
        self._notifier = notifier
        self._clock = clock or SystemClock()
        self._directory = directory

    async def start(
        self,
        session: AsyncSession,
        instance: WorkflowInstance,
        variables: dict[str, Any],
    ) -> dict[str, Any]:
        workflow = DocumentManagementWorkflow(
            session,
            notifier=self._notifier,
            clock=self._clock,
            directory=self._directory,
        )
        submission = await workflow.submit_document(
            document_reference=str(_require(variables, "document_reference", self.category)),
            client_reference=str(_require(variables, "client_reference", self.category)),
            document_type=str(variables.get("document_type") or "general"),
            submitted_by=str(variables.get("submitted_by") or instance.started_by),
            workflow_instance_id=instance.instance_id,
        )
        return {"submission_id": submission.submission_id}


class CommunicationRoutingHandler:
    """Variables: conversation_reference, client_reference, subject, priority (default medium)."""

    category = WorkflowCategory.COMMUNICATION

    def __init__(
        self,
        notifier: Notifier | None = None,
        clock: Clock | None = None,
        policy: EscalationPolicy = DEFAULT_ESCALATION_POLICY,
        directory: HandlerDirectory | None = None,
    ):
        self._notifier = notifier
        self._clock = clock or SystemClock()
        self._policy = policy
        self._directory = directory

    async def start(
        self,
        session: AsyncSession,
        instance: WorkflowInstance,
        variables: dict[str, Any],
    ) -> dict[str, Any]:
        raw_priority = str(variables.get("priority") or Priority.MEDIUM.value).lower()
        try:
            priority = Priority(raw_priority)
        except ValueError:
            raise WorkflowVariablesError(
                self.category.value, f"unknown priority {raw_priority!r}",
            ) from None

        workflow = CommunicationRoutingWorkflow(
            session,
            notifier=self._notifier,
            clock=self._clock,
            policy=self._policy,
            directory=self._directory,
        )
        routing = await workflow.route_message(
            conversation_reference=str(_require(variables, "conversation_reference", self.category)),
            client_reference=str(_require(variables, "client_reference", self.category)),
            subject=str(_require(variables, "subject", self.category)),
            priority=priority,
            workflow_instance_id=instance.instance_id,
        )
        return {"routing_id": routing.routing_id}


def default_handler_registry(
    notifier: Notifier | None = None,
    clock: Clock | None = None,
    approval_policy: ApprovalChainPolicy = DEFAULT_APPROVAL_POLICY,
    escalation_policy: EscalationPolicy = DEFAULT_ESCALATION_POLICY,
    penalty_policy: PenaltyPolicy = DEFAULT_PENALTY_POLICY,
    alert_policy: AlertPolicy = DEFAULT_ALERT_POLICY,
    directory: HandlerDirectory | None = None,
    default_currency: str = "SLE",
) -> WorkflowHandlerRegistry:
    """Registry with a handler for every category except ``general``."""
    registry = WorkflowHandlerRegistry()
    registry.register(PaymentApprovalHandler(
        notifier=notifier,
        clock=clock,
        policy=approval_policy,
        directory=directory,
        default_currency=default_currency,
    ))
    registry.register(ComplianceFilingHandler(
        notifier=notifier,
        clock=clock,
        penalty_policy=penalty_policy,
        alert_policy=alert_policy,
    ))
    registry.register(DocumentSubmissionHandler(
        notifier=notifier,
        clock=clock,
        directory=directory,
    ))
    registry.register(CommunicationRoutingHandler(
        notifier=notifier,
        clock=clock,
        policy=escalation_policy,
        directory=directory,
    ))
    return registry
