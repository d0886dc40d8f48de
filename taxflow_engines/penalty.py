"""
taxflow_engines.penalty -- Pure deadline classification and penalty math.

Responsibility:
    Compute whole days to a filing's due date, classify that distance
    against the alert thresholds, and compute late-filing penalties.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The caller supplies
    ``today``; nothing here reads a clock.

Invariants enforced:
    - Alert thresholds match on equality only: 29 days remaining never
      re-fires the 30-day alert.
    - A filing is overdue once its due date has passed
      (``days_until_deadline < 0``).
    - Penalty is a non-decreasing step function of days overdue that
      steps up exactly after each ``days_per_month`` boundary:
      ``months = ceil(days / days_per_month)``,
      ``rate = rate_per_month * months`` (optionally capped),
      ``penalty = amount * rate``, rounded half-up to cents.
"""

from __future__ import annotations

from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from taxflow_engines.tracer import traced_engine
from taxflow_kernel.domain.compliance import (
    DeadlineClass,
    DeadlineClassification,
    OVERDUE_ALERT,
    PenaltyResult,
    deadline_alert_type,
)
from taxflow_kernel.domain.policy import (
    DEFAULT_ALERT_POLICY,
    DEFAULT_PENALTY_POLICY,
    AlertPolicy,
    PenaltyPolicy,
)

CENTS = Decimal("0.01")


def days_until_deadline(due_date: date, today: date) -> int:
    """Whole calendar days from ``today`` to ``due_date`` (negative when past)."""
    return (due_date - today).days


def classify_deadline(
    days_until: int,
    policy: AlertPolicy = DEFAULT_ALERT_POLICY,
) -> DeadlineClassification:
    """Classify a filing's distance to its due date.

    Returns ``DeadlineClass.NONE`` when there is nothing to do.
    """
    if days_until < 0:
        return DeadlineClassification(
            kind=DeadlineClass.OVERDUE,
            days_until_deadline=days_until,
            alert_type=OVERDUE_ALERT,
        )
    if days_until in policy.thresholds_days:
        return DeadlineClassification(
            kind=DeadlineClass.ALERT,
            days_until_deadline=days_until,
            alert_type=deadline_alert_type(days_until),
        )
    return DeadlineClassification(kind=DeadlineClass.NONE, days_until_deadline=days_until)


def months_overdue(days_overdue: int, days_per_month: int = 30) -> int:
    """Started months overdue: ``ceil(days_overdue / days_per_month)``."""
    if days_overdue <= 0:
        return 0
    return -(-days_overdue // days_per_month)


@traced_engine("penalty", "1.0", fingerprint_fields=("amount", "days_overdue"))
def calculate_penalty(
    amount: Decimal,
    days_overdue: int,
    policy: PenaltyPolicy = DEFAULT_PENALTY_POLICY,
) -> PenaltyResult:
    """Late-filing penalty for ``amount`` filed ``days_overdue`` days late.

    >>> calculate_penalty(Decimal("1000000"), 31).penalty_amount
    Decimal('100000.00')
    """
    if amount < 0:
        raise ValueError(f"Filing amount cannot be negative: {amount}")

    months = months_overdue(days_overdue, policy.days_per_month)
    rate = policy.rate_per_month * months
    capped = False
    if policy.max_rate is not None and rate > policy.max_rate:
        rate = policy.max_rate
        capped = True

    penalty = (amount * rate).quantize(CENTS, rounding=ROUND_HALF_UP)
    return PenaltyResult(
        days_overdue=max(0, days_overdue),
        months_overdue=months,
        penalty_rate=rate,
        penalty_amount=penalty,
        capped=capped,
    )


def describe_penalty(amount: Decimal, result: PenaltyResult) -> str:
    """Human-readable calculation basis stored with the audit record."""
    basis = (
        f"{amount} x {result.penalty_rate} "
        f"({result.months_overdue} month(s) overdue, {result.days_overdue} day(s))"
    )
    if result.capped:
        basis += " [rate capped]"
    return basis
