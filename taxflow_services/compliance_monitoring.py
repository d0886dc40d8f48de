"""
taxflow_services.compliance_monitoring -- Filing deadline monitoring.

Responsibility:
    Classify each pending filing against its due date, raise the
    threshold alert that applies today, and move filings past their due
    date to Overdue with a recorded late-filing penalty.

Architecture position:
    Services -- composes the pure penalty engine with kernel models and
    the notification channel.  Session-scoped; one filing per call.

Invariants enforced:
    - Each (filing, alert type) pair is recorded and notified at most
      once, however often the monitor runs.
    - Pending -> Overdue happens at most once, and always writes an
      append-only PenaltyCalculation.
    - Filed and Approved filings are never re-opened (FILING_TRANSITIONS).
    - A linked workflow instance is completed when the filing is approved.
    - "Nothing to do today" is a normal outcome, not an error.

Failure modes:
    - FilingNotFoundError for an unknown filing id.
    - InvalidStateError for an out-of-order status change.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from taxflow_engines.penalty import (
    calculate_penalty,
    classify_deadline,
    days_until_deadline,
    describe_penalty,
)
from taxflow_kernel.domain.clock import Clock, SystemClock
from taxflow_kernel.domain.compliance import (
    FILING_TRANSITIONS,
    ComplianceAlert,
    ComplianceStatistics,
    DeadlineClass,
    DeadlineClassification,
    FilingDeadline,
    FilingStatus,
    PenaltyCalculation,
    PenaltyResult,
)
from taxflow_kernel.domain.notification import Notification, Severity
from taxflow_kernel.domain.policy import (
    DEFAULT_ALERT_POLICY,
    DEFAULT_PENALTY_POLICY,
    AlertPolicy,
    PenaltyPolicy,
)
from taxflow_kernel.exceptions import FilingNotFoundError, InvalidStateError
from taxflow_kernel.logging_config import get_logger
from taxflow_kernel.models.compliance import (
    ComplianceAlertModel,
    FilingDeadlineModel,
    PenaltyCalculationModel,
)
from taxflow_kernel.services.workflow_instance_service import WorkflowInstanceService
from taxflow_services.notifications import LoggingNotifier, Notifier, dispatch_notification

logger = get_logger("services.compliance_monitoring")


@dataclass(frozen=True)
class MonitorOutcome:
    """What ``monitor_filing`` did for one filing."""

    filing_id: UUID
    classification: DeadlineClassification
    alert_recorded: bool = False
    marked_overdue: bool = False
    penalty: PenaltyResult | None = None


class ComplianceMonitoringWorkflow:
    def __init__(
        self,
        session: AsyncSession,
        notifier: Notifier | None = None,
        clock: Clock | None = None,
        penalty_policy: PenaltyPolicy = DEFAULT_PENALTY_POLICY,
        alert_policy: AlertPolicy = DEFAULT_ALERT_POLICY,
    ):
        self._session = session
        self._notifier = notifier or LoggingNotifier()
        self._clock = clock or SystemClock()
        self._penalty_policy = penalty_policy
        self._alert_policy = alert_policy

    # =========================================================================
    # Registration and human actions
    # =========================================================================

    async def register_filing(
        self,
        filing_reference: str,
        client_reference: str,
        tax_type: str,
        due_date: date,
        amount: Decimal,
        workflow_instance_id: UUID | None = None,
    ) -> FilingDeadline:
        now = self._clock.now()
        model = FilingDeadlineModel(
            filing_reference=filing_reference,
            client_reference=client_reference,
            tax_type=tax_type,
            due_date=due_date,
            amount=Decimal(str(amount)),
            status=FilingStatus.PENDING.value,
            days_overdue=0,
            workflow_instance_id=workflow_instance_id,
        )
        model.touch(now)
        self._session.add(model)
        await self._session.flush()

        logger.info(
            "filing_registered",
            extra={
                "filing_id": str(model.id),
                "filing_reference": filing_reference,
                "tax_type": tax_type,
                "due_date": due_date,
            },
        )
        return model.to_dto()

    async def mark_filed(self, filing_id: UUID, filed_by: str) -> FilingDeadline:
        model = await self._load(filing_id)
        self._transition(model, FilingStatus.FILED, "mark filed")

        now = self._clock.now()
        model.filed_at = now
        model.touch(now)
        await self._session.flush()

        logger.info(
            "filing_marked_filed",
            extra={"filing_id": str(model.id), "filed_by": filed_by},
        )
        return model.to_dto()

    async def mark_approved(self, filing_id: UUID, approved_by: str) -> FilingDeadline:
        model = await self._load(filing_id)
        self._transition(model, FilingStatus.APPROVED, "approve")

        now = self._clock.now()
        model.completed_at = now
        model.completed_by = approved_by
        model.touch(now)
        await self._session.flush()

        logger.info(
            "filing_approved",
            extra={"filing_id": str(model.id), "approved_by": approved_by},
        )
        await self._complete_linked_instance(model, approved_by)
        return model.to_dto()

    # =========================================================================
    # Monitoring
    # =========================================================================

    async def monitor_filing(self, filing_id: UUID) -> MonitorOutcome:
        """Apply today's deadline rule to one filing.

        Filings that are no longer Pending are left untouched.
        """
        model = await self._load(filing_id)
        today = self._today()
        classification = classify_deadline(
            days_until_deadline(model.due_date, today), self._alert_policy,
        )

        if model.status != FilingStatus.PENDING.value:
            return MonitorOutcome(filing_id=model.id, classification=classification)

        if classification.kind == DeadlineClass.OVERDUE:
            return await self._mark_overdue(model, classification)

        if classification.kind == DeadlineClass.ALERT:
            days = classification.days_until_deadline
            severity = (
                Severity.WARNING if days <= self._alert_policy.warning_at_days
                else Severity.INFO
            )
            recorded = await self._raise_alert(
                model,
                classification,
                title=f"Filing due in {days} day(s)",
                message=(
                    f"{model.tax_type} filing {model.filing_reference} is due "
                    f"on {model.due_date.isoformat()} ({days} day(s) remaining)."
                ),
                severity=severity,
            )
            return MonitorOutcome(
                filing_id=model.id,
                classification=classification,
                alert_recorded=recorded,
            )

        return MonitorOutcome(filing_id=model.id, classification=classification)

    async def calculate_penalty_for_filing(self, filing_id: UUID) -> PenaltyCalculation:
        """Recompute and record the penalty as of today (or the filing date)."""
        model = await self._load(filing_id)
        as_of = model.filed_at.date() if model.filed_at is not None else self._today()
        days_overdue = max(0, -days_until_deadline(model.due_date, as_of))

        result = calculate_penalty(model.amount, days_overdue, self._penalty_policy)
        calculation = self._record_penalty(model, result)
        model.days_overdue = result.days_overdue
        model.penalty_amount = result.penalty_amount
        model.touch(self._clock.now())
        await self._session.flush()

        logger.info(
            "penalty_recalculated",
            extra={
                "filing_id": str(model.id),
                "days_overdue": result.days_overdue,
                "penalty_amount": result.penalty_amount,
            },
        )
        return calculation.to_dto()

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_filing(self, filing_id: UUID) -> FilingDeadline:
        return (await self._load(filing_id)).to_dto()

    async def list_pending_filings(self) -> list[FilingDeadline]:
        result = await self._session.execute(
            select(FilingDeadlineModel)
            .where(FilingDeadlineModel.status == FilingStatus.PENDING.value)
            .order_by(FilingDeadlineModel.due_date, FilingDeadlineModel.id)
        )
        return [m.to_dto() for m in result.scalars().all()]

    async def list_alerts(self, filing_id: UUID) -> list[ComplianceAlert]:
        result = await self._session.execute(
            select(ComplianceAlertModel)
            .where(ComplianceAlertModel.filing_id == filing_id)
            .order_by(ComplianceAlertModel.sent_at, ComplianceAlertModel.days_until_deadline.desc())
        )
        return [m.to_dto() for m in result.scalars().all()]

    async def list_penalties(self, filing_id: UUID) -> list[PenaltyCalculation]:
        result = await self._session.execute(
            select(PenaltyCalculationModel)
            .where(PenaltyCalculationModel.filing_id == filing_id)
            .order_by(PenaltyCalculationModel.calculated_at)
        )
        return [m.to_dto() for m in result.scalars().all()]

    async def get_statistics(self) -> ComplianceStatistics:
        rows = (await self._session.execute(
            select(FilingDeadlineModel.status, func.count(FilingDeadlineModel.id))
            .group_by(FilingDeadlineModel.status)
        )).all()
        counts = {status: count for status, count in rows}

        total_penalties = (await self._session.execute(
            select(func.sum(FilingDeadlineModel.penalty_amount))
        )).scalar()

        return ComplianceStatistics(
            total=sum(counts.values()),
            pending=counts.get(FilingStatus.PENDING.value, 0),
            overdue=counts.get(FilingStatus.OVERDUE.value, 0),
            filed=counts.get(FilingStatus.FILED.value, 0),
            approved=counts.get(FilingStatus.APPROVED.value, 0),
            total_penalties=(
                Decimal(str(total_penalties)) if total_penalties is not None
                else Decimal("0")
            ),
        )

    # =========================================================================
    # Internal
    # =========================================================================

    def _today(self) -> date:
        return self._clock.now_utc().date()

    async def _load(self, filing_id: UUID) -> FilingDeadlineModel:
        model = await self._session.get(FilingDeadlineModel, filing_id)
        if model is None:
            raise FilingNotFoundError(str(filing_id))
        return model

    @staticmethod
    def _transition(
        model: FilingDeadlineModel,
        new_status: FilingStatus,
        attempted: str,
    ) -> None:
        current = FilingStatus(model.status)
        if new_status not in FILING_TRANSITIONS[current]:
            raise InvalidStateError(
                entity_type="FilingDeadline",
                entity_id=str(model.id),
                current_status=current.value,
                attempted=attempted,
            )
        model.status = new_status.value

    async def _mark_overdue(
        self,
        model: FilingDeadlineModel,
        classification: DeadlineClassification,
    ) -> MonitorOutcome:
        result = calculate_penalty(
            model.amount, classification.days_overdue, self._penalty_policy,
        )
        self._transition(model, FilingStatus.OVERDUE, "mark overdue")
        model.days_overdue = result.days_overdue
        model.penalty_amount = result.penalty_amount
        model.touch(self._clock.now())
        self._record_penalty(model, result)
        await self._session.flush()

        logger.warning(
            "filing_marked_overdue",
            extra={
                "filing_id": str(model.id),
                "filing_reference": model.filing_reference,
                "days_overdue": result.days_overdue,
                "penalty_amount": result.penalty_amount,
            },
        )

        recorded = await self._raise_alert(
            model,
            classification,
            title="Filing overdue",
            message=(
                f"{model.tax_type} filing {model.filing_reference} is "
                f"{result.days_overdue} day(s) overdue. Estimated penalty: "
                f"{result.penalty_amount}."
            ),
            severity=Severity.CRITICAL,
            penalty_amount=result.penalty_amount,
        )
        return MonitorOutcome(
            filing_id=model.id,
            classification=classification,
            alert_recorded=recorded,
            marked_overdue=True,
            penalty=result,
        )

    async def _complete_linked_instance(
        self,
        model: FilingDeadlineModel,
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
                result={"filing_status": model.status},
            )

    def _record_penalty(
        self,
        model: FilingDeadlineModel,
        result: PenaltyResult,
    ) -> PenaltyCalculationModel:
        calculation = PenaltyCalculationModel(
            filing_id=model.id,
            penalty_type=self._penalty_policy.penalty_type,
            base_amount=model.amount,
            days_overdue=result.days_overdue,
            months_overdue=result.months_overdue,
            penalty_rate=result.penalty_rate,
            penalty_amount=result.penalty_amount,
            basis=describe_penalty(model.amount, result),
            calculated_at=self._clock.now(),
        )
        self._session.add(calculation)
        return calculation

    async def _raise_alert(
        self,
        model: FilingDeadlineModel,
        classification: DeadlineClassification,
        title: str,
        message: str,
        severity: Severity,
        penalty_amount: Decimal | None = None,
    ) -> bool:
        """Record and notify an alert unless this filing already has one of that type."""
        existing = (await self._session.execute(
            select(ComplianceAlertModel.id).where(
                ComplianceAlertModel.filing_id == model.id,
                ComplianceAlertModel.alert_type == classification.alert_type,
            )
        )).first()
        if existing is not None:
            logger.debug(
                "compliance_alert_already_sent",
                extra={"filing_id": str(model.id), "alert_type": classification.alert_type},
            )
            return False

        now: datetime = self._clock.now()
        self._session.add(ComplianceAlertModel(
            filing_id=model.id,
            alert_type=classification.alert_type,
            days_until_deadline=classification.days_until_deadline,
            penalty_amount=penalty_amount,
            message=message,
            recipient=model.client_reference,
            sent_at=now,
        ))
        await self._session.flush()

        logger.info(
            "compliance_alert_recorded",
            extra={
                "filing_id": str(model.id),
                "alert_type": classification.alert_type,
                "days_until_deadline": classification.days_until_deadline,
            },
        )
        await dispatch_notification(
            self._notifier,
            Notification(
                recipient=model.client_reference,
                title=title,
                message=message,
                severity=severity,
            ),
        )
        return True
