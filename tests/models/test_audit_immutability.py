"""
Tests for ORM-level protections on audit records.

Approval steps, routing steps and penalty calculations are append-only:
the before_update/before_delete listeners raise ImmutabilityViolationError
at flush time.  Also covers the UTC column type and the business-key
unique constraints.
"""

from datetime import date, timezone
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from taxflow_kernel.domain.approval import Role
from taxflow_kernel.exceptions import ImmutabilityViolationError
from taxflow_kernel.models.approval import PaymentApprovalStepModel
from taxflow_kernel.models.communication import RoutingStepModel
from taxflow_kernel.models.compliance import PenaltyCalculationModel
from taxflow_services.communication_routing import CommunicationRoutingWorkflow
from taxflow_services.compliance_monitoring import ComplianceMonitoringWorkflow
from taxflow_services.payment_approval import PaymentApprovalWorkflow


async def _approved_step(session, clock) -> PaymentApprovalStepModel:
    payments = PaymentApprovalWorkflow(session, clock=clock)
    request = await payments.request_payment_approval("PAY-1", Decimal("10"), "alice")
    await payments.approve(request.approval_id, "bob", Role.ASSOCIATE)
    return await session.scalar(select(PaymentApprovalStepModel))


class TestApprovalSteps:
    async def test_update_rejected(self, session, clock):
        step = await _approved_step(session, clock)
        step.comments = "rewritten"

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            await session.flush()
        assert exc_info.value.code == "IMMUTABILITY_VIOLATION"
        assert exc_info.value.entity_type == "PaymentApprovalStep"

    async def test_delete_rejected(self, session, clock):
        step = await _approved_step(session, clock)
        await session.delete(step)

        with pytest.raises(ImmutabilityViolationError):
            await session.flush()


class TestRoutingSteps:
    async def test_update_rejected(self, session, clock):
        routing = CommunicationRoutingWorkflow(session, clock=clock)
        await routing.route_message("CONV-1", "client-042", "Query", "high")
        step = await session.scalar(select(RoutingStepModel))
        step.notes = "rewritten"

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            await session.flush()
        assert exc_info.value.entity_type == "RoutingStep"


class TestPenaltyCalculations:
    async def test_update_rejected(self, session, clock):
        monitor = ComplianceMonitoringWorkflow(session, clock=clock)
        filing = await monitor.register_filing(
            "GST-LATE", "client-042", "GST", date(2026, 2, 1), Decimal("1000"),
        )
        await monitor.calculate_penalty_for_filing(filing.filing_id)
        calculation = await session.scalar(select(PenaltyCalculationModel))
        calculation.penalty_amount = Decimal("0")

        with pytest.raises(ImmutabilityViolationError):
            await session.flush()


class TestColumns:
    async def test_timestamps_come_back_utc(self, session, clock):
        step = await _approved_step(session, clock)
        session.expire(step)
        decided_at = (await session.scalar(select(PaymentApprovalStepModel))).decided_at

        assert decided_at.tzinfo is not None
        assert decided_at.utcoffset() == timezone.utc.utcoffset(None)
        assert decided_at == clock.now()

    async def test_filing_reference_is_unique(self, session, clock):
        monitor = ComplianceMonitoringWorkflow(session, clock=clock)
        await monitor.register_filing("GST-1", "client-042", "GST", date(2026, 4, 1), Decimal("1"))

        with pytest.raises(IntegrityError):
            await monitor.register_filing(
                "GST-1", "client-007", "GST", date(2026, 5, 1), Decimal("1"),
            )
