"""
Tests for PaymentApprovalWorkflow.

Covers the chain walk, approver identity, delegation, rejection,
terminal-state guards, linked workflow instances, statistics and who
gets notified.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from taxflow_kernel.domain.approval import ApprovalDecision, ApprovalStatus, Role
from taxflow_kernel.domain.notification import Severity
from taxflow_kernel.domain.policy import ApprovalChainPolicy, ApprovalThreshold
from taxflow_kernel.domain.workflow import InstanceStatus, WorkflowCategory
from taxflow_kernel.exceptions import (
    ApprovalNotFoundError,
    InvalidStateError,
    NoApprovalChainError,
    UnauthorizedApproverError,
)
from taxflow_kernel.services.workflow_instance_service import WorkflowInstanceService
from taxflow_services.payment_approval import PaymentApprovalWorkflow
from taxflow_services.workflow_definitions import WorkflowDefinitionService
from taxflow_services.workflow_handlers import default_handler_registry


@pytest.fixture
def workflow(session, notifier, clock, directory):
    return PaymentApprovalWorkflow(
        session, notifier=notifier, clock=clock, directory=directory,
    )


class TestRequest:
    async def test_small_payment_needs_associate_only(self, workflow, notifier):
        request = await workflow.request_payment_approval("PAY-1", Decimal("999999.99"), "alice")

        assert request.status == ApprovalStatus.PENDING
        assert request.approval_chain == (Role.ASSOCIATE,)
        assert request.current_role == Role.ASSOCIATE
        assert request.currency == "SLE"
        assert [n.recipient for n in notifier.sent] == ["associate@practice.test"]

    async def test_large_payment_needs_all_three(self, workflow):
        request = await workflow.request_payment_approval("PAY-2", Decimal("10000000"), "alice")
        assert request.approval_chain == (Role.ASSOCIATE, Role.MANAGER, Role.DIRECTOR)

    async def test_negative_amount_rejected(self, workflow):
        with pytest.raises(ValueError):
            await workflow.request_payment_approval("PAY-3", Decimal("-5"), "alice")

    async def test_policy_gap_raises(self, session, clock):
        policy = ApprovalChainPolicy(thresholds=(
            ApprovalThreshold(Decimal("0"), Decimal("100"), (Role.ASSOCIATE,)),
        ))
        workflow = PaymentApprovalWorkflow(session, clock=clock, policy=policy)
        with pytest.raises(NoApprovalChainError):
            await workflow.request_payment_approval("PAY-4", Decimal("500"), "alice")

    async def test_unrouted_role_goes_to_shared_queue(self, session, clock, notifier):
        workflow = PaymentApprovalWorkflow(session, notifier=notifier, clock=clock)
        await workflow.request_payment_approval("PAY-5", Decimal("10"), "alice")
        assert notifier.sent[0].recipient == "queue:associate"


class TestChainWalk:
    async def test_two_step_approval(self, workflow, notifier):
        request = await workflow.request_payment_approval("PAY-10", Decimal("2500000"), "alice")
        notifier.clear()

        after_first = await workflow.approve(request.approval_id, "bob", Role.ASSOCIATE)
        assert after_first.status == ApprovalStatus.PENDING
        assert after_first.current_step == 1
        assert after_first.current_role == Role.MANAGER
        assert [n.recipient for n in notifier.sent] == ["manager@practice.test"]

        notifier.clear()
        done = await workflow.approve(request.approval_id, "carol", Role.MANAGER, "ok")
        assert done.status == ApprovalStatus.APPROVED
        assert done.completed_by == "carol"
        assert done.current_role is None
        assert [n.recipient for n in notifier.sent] == ["alice"]
        assert notifier.sent[0].title == "Payment approved"

        history = await workflow.get_history(request.approval_id)
        assert [(s.step_index, s.role, s.approver_id) for s in history] == [
            (0, Role.ASSOCIATE, "bob"),
            (1, Role.MANAGER, "carol"),
        ]
        assert all(s.decision == ApprovalDecision.APPROVED for s in history)

    async def test_wrong_role_is_refused(self, workflow):
        request = await workflow.request_payment_approval("PAY-11", Decimal("2500000"), "alice")
        with pytest.raises(UnauthorizedApproverError) as exc_info:
            await workflow.approve(request.approval_id, "carol", Role.MANAGER)
        assert exc_info.value.code == "UNAUTHORIZED_APPROVER"

        unchanged = await workflow.get_request(request.approval_id)
        assert unchanged.current_step == 0
        assert await workflow.get_history(request.approval_id) == []

    async def test_role_accepted_as_string(self, workflow):
        request = await workflow.request_payment_approval("PAY-12", Decimal("10"), "alice")
        done = await workflow.approve(request.approval_id, "bob", "Associate")
        assert done.status == ApprovalStatus.APPROVED

    async def test_rejection_is_final(self, workflow, notifier):
        request = await workflow.request_payment_approval("PAY-13", Decimal("15000000"), "alice")
        await workflow.approve(request.approval_id, "bob", Role.ASSOCIATE)
        notifier.clear()

        rejected = await workflow.reject(
            request.approval_id, "carol", "duplicate invoice", Role.MANAGER,
        )
        assert rejected.status == ApprovalStatus.REJECTED
        assert rejected.rejection_reason == "duplicate invoice"
        assert notifier.sent[0].recipient == "alice"
        assert notifier.sent[0].severity == Severity.WARNING

        history = await workflow.get_history(request.approval_id)
        assert history[-1].decision == ApprovalDecision.REJECTED
        assert history[-1].role == Role.MANAGER

        with pytest.raises(InvalidStateError):
            await workflow.approve(request.approval_id, "dave", Role.MANAGER)

    async def test_terminal_request_cannot_be_cancelled(self, workflow):
        request = await workflow.request_payment_approval("PAY-14", Decimal("10"), "alice")
        await workflow.approve(request.approval_id, "bob", Role.ASSOCIATE)
        with pytest.raises(InvalidStateError) as exc_info:
            await workflow.cancel(request.approval_id, "alice")
        assert exc_info.value.code == "INVALID_STATE"

    async def test_cancel_pending(self, workflow):
        request = await workflow.request_payment_approval("PAY-15", Decimal("10"), "alice")
        cancelled = await workflow.cancel(request.approval_id, "alice", "raised in error")
        assert cancelled.status == ApprovalStatus.CANCELLED

    async def test_unknown_request(self, workflow):
        with pytest.raises(ApprovalNotFoundError):
            await workflow.approve(uuid4(), "bob")


class TestQueries:
    async def test_list_pending_by_role(self, workflow):
        small = await workflow.request_payment_approval("PAY-20", Decimal("10"), "alice")
        big = await workflow.request_payment_approval("PAY-21", Decimal("2500000"), "alice")
        await workflow.approve(big.approval_id, "bob", Role.ASSOCIATE)

        assert [r.approval_id for r in await workflow.list_pending(Role.MANAGER)] == [big.approval_id]
        assert [r.approval_id for r in await workflow.list_pending("Associate")] == [small.approval_id]
        assert len(await workflow.list_pending()) == 2

    async def test_statistics(self, workflow):
        a = await workflow.request_payment_approval("PAY-30", Decimal("100"), "alice")
        b = await workflow.request_payment_approval("PAY-31", Decimal("250"), "alice")
        c = await workflow.request_payment_approval("PAY-32", Decimal("40"), "alice")
        await workflow.request_payment_approval("PAY-33", Decimal("1"), "alice")
        await workflow.approve(a.approval_id, "bob", Role.ASSOCIATE)
        await workflow.approve(b.approval_id, "bob", Role.ASSOCIATE)
        await workflow.reject(c.approval_id, "bob", "no PO", Role.ASSOCIATE)

        stats = await workflow.get_statistics()
        assert stats.total == 4
        assert (stats.pending, stats.approved, stats.rejected, stats.cancelled) == (1, 2, 1, 0)
        assert stats.total_approved_amount == Decimal("350")
        assert stats.total_rejected_amount == Decimal("40")

    async def test_empty_statistics(self, workflow):
        stats = await workflow.get_statistics()
        assert stats.total == 0
        assert stats.total_approved_amount == Decimal("0")


class TestApproverIdentity:
    async def test_request_names_first_approver(self, workflow):
        request = await workflow.request_payment_approval("PAY-60", Decimal("2500000"), "alice")
        assert request.current_approver_id == "associate@practice.test"

    async def test_named_approver_needs_no_role(self, workflow):
        request = await workflow.request_payment_approval("PAY-61", Decimal("2500000"), "alice")

        after_first = await workflow.approve(request.approval_id, "associate@practice.test")
        assert after_first.current_approver_id == "manager@practice.test"

        done = await workflow.approve(request.approval_id, "manager@practice.test")
        assert done.status == ApprovalStatus.APPROVED
        assert done.current_approver_id is None

    async def test_stranger_cannot_approve(self, workflow):
        request = await workflow.request_payment_approval("PAY-62", Decimal("20000000"), "alice")

        with pytest.raises(UnauthorizedApproverError) as exc_info:
            await workflow.approve(request.approval_id, "mallory")
        assert exc_info.value.required_role == "Associate"
        assert await workflow.get_history(request.approval_id) == []

    async def test_one_person_cannot_decide_two_steps(self, workflow):
        request = await workflow.request_payment_approval("PAY-63", Decimal("20000000"), "alice")
        await workflow.approve(request.approval_id, "mallory", Role.ASSOCIATE)

        with pytest.raises(UnauthorizedApproverError):
            await workflow.approve(request.approval_id, "mallory", Role.MANAGER)
        with pytest.raises(UnauthorizedApproverError):
            await workflow.reject(request.approval_id, "mallory", "changed my mind", Role.MANAGER)

        unchanged = await workflow.get_request(request.approval_id)
        assert unchanged.status == ApprovalStatus.PENDING
        assert unchanged.current_step == 1

    async def test_stranger_cannot_reject(self, workflow):
        request = await workflow.request_payment_approval("PAY-64", Decimal("10"), "alice")

        with pytest.raises(UnauthorizedApproverError):
            await workflow.reject(request.approval_id, "mallory", "no reason")
        assert (await workflow.get_request(request.approval_id)).status == ApprovalStatus.PENDING

    async def test_refusal_is_logged(self, workflow, captured_logs):
        request = await workflow.request_payment_approval("PAY-65", Decimal("10"), "alice")
        with pytest.raises(UnauthorizedApproverError):
            await workflow.approve(request.approval_id, "mallory")

        refused = [r for r in captured_logs() if r["message"] == "approval_unauthorized"]
        assert len(refused) == 1
        assert refused[0]["approver_id"] == "mallory"


class TestDelegation:
    async def test_delegate_takes_over_the_step(self, workflow, notifier):
        request = await workflow.request_payment_approval("PAY-70", Decimal("2500000"), "alice")
        notifier.clear()

        delegated = await workflow.delegate(
            request.approval_id, "associate@practice.test", "erin", "on leave",
        )
        assert delegated.current_approver_id == "erin"
        assert delegated.current_step == 0
        assert [n.recipient for n in notifier.sent] == ["erin"]

        after = await workflow.approve(request.approval_id, "erin")
        assert after.current_role == Role.MANAGER
        history = await workflow.get_history(request.approval_id)
        assert [(s.role, s.approver_id) for s in history] == [(Role.ASSOCIATE, "erin")]

    async def test_only_current_approver_can_delegate(self, workflow):
        request = await workflow.request_payment_approval("PAY-71", Decimal("10"), "alice")

        with pytest.raises(UnauthorizedApproverError):
            await workflow.delegate(request.approval_id, "mallory", "mallory-friend")
        assert (await workflow.get_request(request.approval_id)).current_approver_id == (
            "associate@practice.test"
        )

    async def test_terminal_request_cannot_be_delegated(self, workflow):
        request = await workflow.request_payment_approval("PAY-72", Decimal("10"), "alice")
        await workflow.approve(request.approval_id, "associate@practice.test")

        with pytest.raises(InvalidStateError):
            await workflow.delegate(request.approval_id, "associate@practice.test", "erin")

    async def test_list_pending_by_approver(self, workflow):
        first = await workflow.request_payment_approval("PAY-73", Decimal("10"), "alice")
        second = await workflow.request_payment_approval("PAY-74", Decimal("10"), "alice")
        await workflow.delegate(second.approval_id, "associate@practice.test", "erin")

        mine = await workflow.list_pending(approver_id="associate@practice.test")
        assert [r.approval_id for r in mine] == [first.approval_id]
        assert [r.approval_id for r in await workflow.list_pending(approver_id="erin")] == [
            second.approval_id,
        ]
        assert await workflow.list_pending(Role.MANAGER, approver_id="erin") == []


class TestLinkedInstance:
    async def _start(self, session, clock, notifier, directory, amount):
        definition = await WorkflowDefinitionService(session, clock).create_definition(
            "Supplier payment", WorkflowCategory.APPROVAL,
        )
        service = WorkflowInstanceService(
            session, clock,
            default_handler_registry(notifier=notifier, clock=clock, directory=directory),
        )
        instance = await service.start_instance(
            definition.workflow_id, {"payment_reference": "PAY-40", "amount": amount},
        )
        return service, instance

    async def test_approval_completes_instance(self, session, clock, notifier, directory, workflow):
        service, instance = await self._start(session, clock, notifier, directory, "10")
        approval_id = (await workflow.list_pending())[0].approval_id

        await workflow.approve(approval_id, "bob", Role.ASSOCIATE)

        closed = await service.get_instance(instance.instance_id)
        assert closed.status == InstanceStatus.COMPLETED
        assert closed.completed_by == "bob"
        assert closed.context["approval_status"] == "approved"

    async def test_cancellation_cancels_instance(self, session, clock, notifier, directory, workflow):
        service, instance = await self._start(session, clock, notifier, directory, "10")
        approval_id = (await workflow.list_pending())[0].approval_id

        await workflow.cancel(approval_id, "alice", "withdrawn")

        closed = await service.get_instance(instance.instance_id)
        assert closed.status == InstanceStatus.CANCELLED
        assert closed.error_message == "withdrawn"

    async def test_already_closed_instance_is_left_alone(
        self, session, clock, notifier, directory, workflow,
    ):
        service, instance = await self._start(session, clock, notifier, directory, "10")
        await service.cancel_instance(instance.instance_id, "ops", "manual close")
        approval_id = (await workflow.list_pending())[0].approval_id

        approved = await workflow.approve(approval_id, "bob", Role.ASSOCIATE)

        assert approved.status == ApprovalStatus.APPROVED
        assert (await service.get_instance(instance.instance_id)).status == InstanceStatus.CANCELLED


class TestNotificationFailure:
    async def test_failed_delivery_does_not_undo_approval(self, session, clock, captured_logs):
        class BrokenNotifier:
            async def notify(self, recipient, title, message, severity=Severity.INFO):
                raise ConnectionError("smtp down")

        workflow = PaymentApprovalWorkflow(session, notifier=BrokenNotifier(), clock=clock)
        request = await workflow.request_payment_approval("PAY-50", Decimal("10"), "alice")
        done = await workflow.approve(request.approval_id, "bob", Role.ASSOCIATE)

        assert done.status == ApprovalStatus.APPROVED
        failures = [r for r in captured_logs() if r["message"] == "notification_failed"]
        assert len(failures) == 2
