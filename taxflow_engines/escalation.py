"""
taxflow_engines.escalation -- Pure communication routing rules.

Responsibility:
    Pick the initial handler role for a new conversation, and decide
    whether an open conversation has waited past its priority threshold
    and which role it moves to.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Initial routing by priority: Urgent -> Director, High -> Manager,
      otherwise Associate (configurable).
    - Escalation moves exactly one rung up the ladder; a conversation at
      the top rung reports ``AT_CEILING`` and is left unchanged.
    - Elapsed time is measured from the current assignment, so each rung
      gets the full threshold before the next escalation.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from taxflow_kernel.domain.approval import Role
from taxflow_kernel.domain.communication import EscalationOutcome, Priority
from taxflow_kernel.domain.policy import DEFAULT_ESCALATION_POLICY, EscalationPolicy


@dataclass(frozen=True)
class EscalationDecision:
    outcome: EscalationOutcome
    elapsed_minutes: int
    threshold_minutes: int
    target_role: Role | None = None


def initial_role_for(
    priority: Priority,
    policy: EscalationPolicy = DEFAULT_ESCALATION_POLICY,
) -> Role:
    return policy.initial_roles.get(priority, policy.ladder[0])


def next_role_on_ladder(
    current: Role,
    policy: EscalationPolicy = DEFAULT_ESCALATION_POLICY,
) -> Role | None:
    """The role one rung above ``current``; None at the top."""
    if current not in policy.ladder:
        return policy.ladder[0]
    index = policy.ladder.index(current)
    if index + 1 >= len(policy.ladder):
        return None
    return policy.ladder[index + 1]


def elapsed_minutes(since: datetime, now: datetime) -> int:
    return max(0, int((now - since).total_seconds() // 60))


def evaluate_escalation(
    priority: Priority,
    current_role: Role,
    assigned_at: datetime,
    now: datetime,
    policy: EscalationPolicy = DEFAULT_ESCALATION_POLICY,
) -> EscalationDecision:
    """Decide whether an open conversation escalates at ``now``."""
    threshold = policy.threshold_minutes[priority]
    elapsed = elapsed_minutes(assigned_at, now)

    if elapsed < threshold:
        return EscalationDecision(
            outcome=EscalationOutcome.NOT_DUE,
            elapsed_minutes=elapsed,
            threshold_minutes=threshold,
        )

    target = next_role_on_ladder(current_role, policy)
    if target is None:
        return EscalationDecision(
            outcome=EscalationOutcome.AT_CEILING,
            elapsed_minutes=elapsed,
            threshold_minutes=threshold,
        )

    return EscalationDecision(
        outcome=EscalationOutcome.ESCALATED,
        elapsed_minutes=elapsed,
        threshold_minutes=threshold,
        target_role=target,
    )
