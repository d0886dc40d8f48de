"""
Policy value objects (``taxflow_kernel.domain.policy``).

Responsibility
--------------
Frozen policy parameters consumed by the pure engines and the services:
approval thresholds, penalty rates, alert thresholds, escalation timing,
retention and trigger windows.  The ``DEFAULT_*`` instances reproduce the
platform's historical behaviour; ``taxflow_config`` builds overrides from
YAML.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  The kernel
never imports ``taxflow_config``; the config package imports these.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from taxflow_kernel.domain.approval import ROLE_LADDER, Role
from taxflow_kernel.domain.communication import Priority


# =========================================================================
# Approval chain
# =========================================================================


@dataclass(frozen=True)
class ApprovalThreshold:
    """Amount band ``[min_amount, max_amount)`` mapped to a role chain.

    ``max_amount`` of None means unbounded above.
    """

    min_amount: Decimal
    max_amount: Decimal | None
    chain: tuple[Role, ...]

    def covers(self, amount: Decimal) -> bool:
        if amount < self.min_amount:
            return False
        return self.max_amount is None or amount < self.max_amount


@dataclass(frozen=True)
class ApprovalChainPolicy:
    thresholds: tuple[ApprovalThreshold, ...]


DEFAULT_APPROVAL_POLICY = ApprovalChainPolicy(
    thresholds=(
        ApprovalThreshold(
            min_amount=Decimal("0"),
            max_amount=Decimal("1000000"),
            chain=(Role.ASSOCIATE,),
        ),
        ApprovalThreshold(
            min_amount=Decimal("1000000"),
            max_amount=Decimal("10000000"),
            chain=(Role.ASSOCIATE, Role.MANAGER),
        ),
        ApprovalThreshold(
            min_amount=Decimal("10000000"),
            max_amount=None,
            chain=(Role.ASSOCIATE, Role.MANAGER, Role.DIRECTOR),
        ),
    ),
)


# =========================================================================
# Compliance
# =========================================================================


@dataclass(frozen=True)
class PenaltyPolicy:
    """Late-filing penalty: ``rate_per_month`` per started month overdue.

    ``max_rate`` caps the cumulative rate; None leaves it unbounded.
    """

    rate_per_month: Decimal = Decimal("0.05")
    days_per_month: int = 30
    max_rate: Decimal | None = None
    penalty_type: str = "late_filing"


@dataclass(frozen=True)
class AlertPolicy:
    """Exact days-remaining values at which a deadline alert fires."""

    thresholds_days: tuple[int, ...] = (30, 14, 7, 1)
    # Thresholds at or below this value notify at WARNING severity
    warning_at_days: int = 7


DEFAULT_PENALTY_POLICY = PenaltyPolicy()
DEFAULT_ALERT_POLICY = AlertPolicy()


# =========================================================================
# Communication escalation
# =========================================================================


def _default_thresholds() -> dict[Priority, int]:
    return {
        Priority.URGENT: 60,
        Priority.HIGH: 240,
        Priority.MEDIUM: 1440,
        Priority.LOW: 2880,
    }


def _default_initial_roles() -> dict[Priority, Role]:
    return {
        Priority.URGENT: Role.DIRECTOR,
        Priority.HIGH: Role.MANAGER,
        Priority.MEDIUM: Role.ASSOCIATE,
        Priority.LOW: Role.ASSOCIATE,
    }


@dataclass(frozen=True)
class EscalationPolicy:
    """Minutes without resolution before a conversation moves up the ladder."""

    threshold_minutes: dict[Priority, int] = field(default_factory=_default_thresholds)
    initial_roles: dict[Priority, Role] = field(default_factory=_default_initial_roles)
    ladder: tuple[Role, ...] = ROLE_LADDER


DEFAULT_ESCALATION_POLICY = EscalationPolicy()


# =========================================================================
# Retention and triggers
# =========================================================================


@dataclass(frozen=True)
class RetentionPolicy:
    archive_after_days: int = 90


@dataclass(frozen=True)
class TriggerPolicy:
    window_minutes: int = 5


DEFAULT_RETENTION_POLICY = RetentionPolicy()
DEFAULT_TRIGGER_POLICY = TriggerPolicy()
