"""
taxflow_services.payment_approval -- Multi-step payment approval workflow.

Responsibility:
    Open approval requests with the chain resolved from the amount, walk
    the chain one decision at a time, and notify whoever acts next.

Architecture position:
    Services -- stateful orchestration over the approval chain engine and
    kernel models.  Session-scoped; the caller owns the transaction.

Invariants enforced:
    - A request is Approved only after every role in its chain approved,
      in order; a single rejection is final.
    - Terminal requests never change state (InvalidStateError).
    - The chain is frozen on the request at creation time.
    - Each step is decided by a different person.
    - Every decision is stored as an append-only PaymentApprovalStep.
    - A linked workflow instance is closed when the request resolves.

Failure modes:
    - ApprovalNotFoundError for an unknown approval id.
    - NoApprovalChainError / ValueError from the resolver at creation.
    - UnauthorizedApproverError when the caller is neither the current
      approver nor acting in the required role, has already decided an
      earlier step of the same request, or delegates a step that is not
      theirs.
    - Notification failures are logged and never raised.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from taxflow_engines.approval_chain import resolve_approval_chain
from taxflow_kernel.domain.approval import (
    APPROVAL_TRANSITIONS,
    ApprovalDecision,
    ApprovalStatistics,
    ApprovalStatus,
    ApprovalStep,
    PaymentApprovalRequest,
    Role,
)
from taxflow_kernel.domain.clock import Clock, SystemClock
from taxflow_kernel.domain.notification import Notification, Severity
from taxflow_kernel.domain.policy import DEFAULT_APPROVAL_POLICY, ApprovalChainPolicy
from taxflow_kernel.exceptions import (
    ApprovalNotFoundError,
    InvalidStateError,
    UnauthorizedApproverError,
)
from taxflow_kernel.logging_config import get_logger
from taxflow_kernel.models.approval import (
    PaymentApprovalRequestModel,
    PaymentApprovalStepModel,
)
from taxflow_kernel.services.workflow_instance_service import WorkflowInstanceService
from taxflow_services.notifications import (
    HandlerDirectory,
    LoggingNotifier,
    Notifier,
    StaticHandlerDirectory,
    dispatch_notification,
)

logger = get_logger("services.payment_approval")


class PaymentApprovalWorkflow:
    """
    Contract:
        Every public method either completes its state change or raises
        before touching anything.  Notifications are sent after the
        change has been flushed.
    """

    def __init__(
        self,
        session: AsyncSession,
        notifier: Notifier | None = None,
        clock: Clock | None = None,
        policy: ApprovalChainPolicy = DEFAULT_APPROVAL_POLICY,
        directory: HandlerDirectory | None = None,
        default_currency: str = "SLE",
    ):
        self._session = session
        self._notifier = notifier or LoggingNotifier()
        self._clock = clock or SystemClock()
        self._policy = policy
        self._directory = directory or StaticHandlerDirectory()
        self._default_currency = default_currency

    # =========================================================================
    # Commands
    # =========================================================================

    async def request_payment_approval(
        self,
        payment_reference: str,
        amount: Decimal,
        requested_by: str,
        currency: str | None = None,
        comments: str | None = None,
        workflow_instance_id: UUID | None = None,
    ) -> PaymentApprovalRequest:
        """Open a Pending request and notify the first role in its chain."""
        amount = Decimal(str(amount))
        chain = resolve_approval_chain(amount, self._policy)
        now = self._clock.now()

        model = PaymentApprovalRequestModel(
            payment_reference=payment_reference,
            amount=amount,
            currency=currency or self._default_currency,
            requested_by=requested_by,
            approval_chain=[role.value for role in chain],
            current_step=0,
            current_approver_id=self._directory.handler_for(chain[0]),
            status=ApprovalStatus.PENDING.value,
            comments=comments,
            workflow_instance_id=workflow_instance_id,
        )
        model.touch(now)
        self._session.add(model)
        await self._session.flush()

        logger.info(
            "approval_requested",
            extra={
                "approval_id": str(model.id),
                "payment_reference": payment_reference,
                "amount": str(amount),
                "currency": model.currency,
                "requested_by": requested_by,
                "approval_chain": model.approval_chain,
                "current_approver_id": model.current_approver_id,
            },
        )

        await self._notify(
            model.current_approver_id,
            title="Payment approval required",
            message=(
                f"Payment {payment_reference} for {model.currency} {amount} "
                f"requested by {requested_by} awaits {chain[0].value} approval."
            ),
        )
        return model.to_dto()

    async def approve(
        self,
        approval_id: UUID,
        approver_id: str,
        approver_role: Role | str | None = None,
        comments: str | None = None,
    ) -> PaymentApprovalRequest:
        """Approve the current step; the request completes after the last one."""
        model = await self._load(approval_id)
        self._require_pending(model, "approve")

        chain = [Role(r) for r in model.approval_chain]
        step_index = model.current_step
        required = chain[step_index]
        await self._authorize(model, approver_id, approver_role, required)

        now = self._clock.now()
        self._record_step(model, step_index, required, approver_id,
                          ApprovalDecision.APPROVED, comments, now)
        model.current_step = step_index + 1
        model.touch(now)

        if model.current_step >= len(chain):
            self._transition(model, ApprovalStatus.APPROVED, "approve")
            model.completed_at = now
            model.completed_by = approver_id
            model.current_approver_id = None
            await self._session.flush()

            logger.info(
                "approval_request_approved",
                extra={
                    "approval_id": str(model.id),
                    "approver_id": approver_id,
                    "steps": len(chain),
                },
            )
            await self._close_linked_instance(model, approver_id)
            await self._notify(
                model.requested_by,
                title="Payment approved",
                message=(
                    f"Payment {model.payment_reference} for {model.currency} "
                    f"{model.amount} has been fully approved."
                ),
            )
            return model.to_dto()

        next_role = chain[model.current_step]
        model.current_approver_id = self._directory.handler_for(next_role)
        await self._session.flush()

        logger.info(
            "approval_step_approved",
            extra={
                "approval_id": str(model.id),
                "step_index": step_index,
                "role": required.value,
                "approver_id": approver_id,
                "next_role": next_role.value,
                "current_approver_id": model.current_approver_id,
            },
        )
        await self._notify(
            model.current_approver_id,
            title="Payment approval required",
            message=(
                f"Payment {model.payment_reference} for {model.currency} "
                f"{model.amount} was approved by {required.value} and now "
                f"awaits {next_role.value} approval."
            ),
        )
        return model.to_dto()

    async def reject(
        self,
        approval_id: UUID,
        approver_id: str,
        reason: str,
        approver_role: Role | str | None = None,
    ) -> PaymentApprovalRequest:
        """Reject the request outright at its current step."""
        model = await self._load(approval_id)
        self._require_pending(model, "reject")

        required = Role(model.approval_chain[model.current_step])
        await self._authorize(model, approver_id, approver_role, required)

        now = self._clock.now()
        self._record_step(model, model.current_step, required,
                          approver_id, ApprovalDecision.REJECTED, reason, now)
        self._transition(model, ApprovalStatus.REJECTED, "reject")
        model.rejection_reason = reason
        model.completed_at = now
        model.completed_by = approver_id
        model.current_approver_id = None
        model.touch(now)
        await self._session.flush()

        logger.info(
            "approval_request_rejected",
            extra={
                "approval_id": str(model.id),
                "approver_id": approver_id,
                "step_index": model.current_step,
                "reason": reason,
            },
        )
        await self._close_linked_instance(model, approver_id)
        await self._notify(
            model.requested_by,
            title="Payment rejected",
            message=(
                f"Payment {model.payment_reference} for {model.currency} "
                f"{model.amount} was rejected: {reason}"
            ),
            severity=Severity.WARNING,
        )
        return model.to_dto()

    async def delegate(
        self,
        approval_id: UUID,
        current_approver_id: str,
        delegate_to: str,
        reason: str | None = None,
    ) -> PaymentApprovalRequest:
        """Hand the current step to ``delegate_to``.

        Only the current approver may delegate.  The chain position and the
        required role stay as they are; the delegate decides the step under
        their own identity.
        """
        model = await self._load(approval_id)
        self._require_pending(model, "delegate")

        required = Role(model.approval_chain[model.current_step])
        if current_approver_id != model.current_approver_id:
            raise UnauthorizedApproverError(
                approval_id=str(approval_id),
                approver_id=current_approver_id,
                required_role=required.value,
            )

        model.current_approver_id = delegate_to
        model.touch(self._clock.now())
        await self._session.flush()

        logger.info(
            "approval_step_delegated",
            extra={
                "approval_id": str(model.id),
                "step_index": model.current_step,
                "role": required.value,
                "delegated_by": current_approver_id,
                "delegated_to": delegate_to,
                "reason": reason,
            },
        )
        await self._notify(
            delegate_to,
            title="Payment approval delegated",
            message=(
                f"{current_approver_id} delegated the {required.value} approval of "
                f"payment {model.payment_reference} for {model.currency} "
                f"{model.amount} to you."
            ),
        )
        return model.to_dto()

    async def cancel(
        self,
        approval_id: UUID,
        cancelled_by: str,
        reason: str | None = None,
    ) -> PaymentApprovalRequest:
        model = await self._load(approval_id)
        self._require_pending(model, "cancel")

        now = self._clock.now()
        self._transition(model, ApprovalStatus.CANCELLED, "cancel")
        model.completed_at = now
        model.completed_by = cancelled_by
        model.current_approver_id = None
        model.rejection_reason = reason
        model.touch(now)
        await self._session.flush()

        logger.info(
            "approval_request_cancelled",
            extra={
                "approval_id": str(model.id),
                "cancelled_by": cancelled_by,
                "reason": reason,
            },
        )
        await self._close_linked_instance(model, cancelled_by, cancelled=True, reason=reason)
        return model.to_dto()

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_request(self, approval_id: UUID) -> PaymentApprovalRequest:
        return (await self._load(approval_id)).to_dto()

    async def get_history(self, approval_id: UUID) -> list[ApprovalStep]:
        await self._load(approval_id)
        result = await self._session.execute(
            select(PaymentApprovalStepModel)
            .where(PaymentApprovalStepModel.approval_id == approval_id)
            .order_by(PaymentApprovalStepModel.step_index)
        )
        return [m.to_dto() for m in result.scalars().all()]

    async def list_pending(
        self,
        role: Role | str | None = None,
        approver_id: str | None = None,
    ) -> list[PaymentApprovalRequest]:
        """Pending requests, optionally only those awaiting ``role`` or ``approver_id``."""
        stmt = (
            select(PaymentApprovalRequestModel)
            .where(PaymentApprovalRequestModel.status == ApprovalStatus.PENDING.value)
            .order_by(PaymentApprovalRequestModel.created_at)
        )
        if approver_id is not None:
            stmt = stmt.where(PaymentApprovalRequestModel.current_approver_id == approver_id)
        result = await self._session.execute(stmt)
        requests = [m.to_dto() for m in result.scalars().all()]
        if role is None:
            return requests
        wanted = Role(role)
        return [r for r in requests if r.current_role == wanted]

    async def get_statistics(self) -> ApprovalStatistics:
        result = await self._session.execute(
            select(
                PaymentApprovalRequestModel.status,
                func.count(PaymentApprovalRequestModel.id),
                func.sum(PaymentApprovalRequestModel.amount),
            ).group_by(PaymentApprovalRequestModel.status)
        )
        counts: dict[str, int] = {}
        totals: dict[str, Decimal] = {}
        for status, count, total in result.all():
            counts[status] = count
            totals[status] = Decimal(str(total)) if total is not None else Decimal("0")

        return ApprovalStatistics(
            total=sum(counts.values()),
            pending=counts.get(ApprovalStatus.PENDING.value, 0),
            approved=counts.get(ApprovalStatus.APPROVED.value, 0),
            rejected=counts.get(ApprovalStatus.REJECTED.value, 0),
            cancelled=counts.get(ApprovalStatus.CANCELLED.value, 0),
            total_approved_amount=totals.get(ApprovalStatus.APPROVED.value, Decimal("0")),
            total_rejected_amount=totals.get(ApprovalStatus.REJECTED.value, Decimal("0")),
        )

    # =========================================================================
    # Internal
    # =========================================================================

    async def _load(self, approval_id: UUID) -> PaymentApprovalRequestModel:
        model = await self._session.get(PaymentApprovalRequestModel, approval_id)
        if model is None:
            raise ApprovalNotFoundError(str(approval_id))
        return model

    @staticmethod
    def _require_pending(model: PaymentApprovalRequestModel, attempted: str) -> None:
        if model.status != ApprovalStatus.PENDING.value:
            raise InvalidStateError(
                entity_type="PaymentApprovalRequest",
                entity_id=str(model.id),
                current_status=model.status,
                attempted=attempted,
            )

    @staticmethod
    def _transition(
        model: PaymentApprovalRequestModel,
        new_status: ApprovalStatus,
        attempted: str,
    ) -> None:
        current = ApprovalStatus(model.status)
        if new_status not in APPROVAL_TRANSITIONS[current]:
            raise InvalidStateError(
                entity_type="PaymentApprovalRequest",
                entity_id=str(model.id),
                current_status=current.value,
                attempted=attempted,
            )
        model.status = new_status.value

    async def _authorize(
        self,
        model: PaymentApprovalRequestModel,
        approver_id: str,
        approver_role: Role | str | None,
        required: Role,
    ) -> None:
        """The caller is the current approver or acts in ``required``, and
        has not decided an earlier step of this request."""
        acting_in_role = approver_role is not None and Role(approver_role) == required
        already_decided = await self._session.scalar(
            select(func.count(PaymentApprovalStepModel.id)).where(
                PaymentApprovalStepModel.approval_id == model.id,
                PaymentApprovalStepModel.approver_id == approver_id,
            )
        )
        if (approver_id != model.current_approver_id and not acting_in_role) or already_decided:
            logger.warning(
                "approval_unauthorized",
                extra={
                    "approval_id": str(model.id),
                    "approver_id": approver_id,
                    "required_role": required.value,
                    "current_approver_id": model.current_approver_id,
                },
            )
            raise UnauthorizedApproverError(
                approval_id=str(model.id),
                approver_id=approver_id,
                required_role=required.value,
            )

    def _record_step(
        self,
        model: PaymentApprovalRequestModel,
        step_index: int,
        role: Role,
        approver_id: str,
        decision: ApprovalDecision,
        comments: str | None,
        now: datetime,
    ) -> None:
        self._session.add(PaymentApprovalStepModel(
            approval_id=model.id,
            step_index=step_index,
            role=role.value,
            approver_id=approver_id,
            decision=decision.value,
            comments=comments,
            decided_at=now,
        ))

    async def _close_linked_instance(
        self,
        model: PaymentApprovalRequestModel,
        actor: str,
        cancelled: bool = False,
        reason: str | None = None,
    ) -> None:
        if model.workflow_instance_id is None:
            return
        instances = WorkflowInstanceService(self._session, clock=self._clock)
        instance = await instances.get_instance(model.workflow_instance_id)
        if instance.is_terminal:
            return
        if cancelled:
            await instances.cancel_instance(instance.instance_id, actor, reason)
        else:
            await instances.complete_instance(
                instance.instance_id,
                completed_by=actor,
                result={"approval_status": model.status},
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
