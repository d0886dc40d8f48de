"""
taxflow_engines.approval_chain -- Pure approval chain resolution.

Responsibility:
    Map a payment amount to the ordered tuple of roles that must approve
    it, using the configured threshold bands.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import taxflow_kernel/domain types.

Invariants enforced:
    - Determinism: same amount and policy always yield the same chain.
    - Bands are half-open ``[min_amount, max_amount)``; with the default
      policy 999,999 -> Associate, 1,000,000 -> Associate+Manager,
      9,999,999 -> Associate+Manager, 10,000,000 -> all three roles.

Failure modes:
    - ValueError for negative amounts.
    - NoApprovalChainError when no band covers the amount (only possible
      with a custom policy that leaves gaps).
"""

from __future__ import annotations

from decimal import Decimal

from taxflow_engines.tracer import traced_engine
from taxflow_kernel.domain.approval import Role
from taxflow_kernel.domain.policy import DEFAULT_APPROVAL_POLICY, ApprovalChainPolicy
from taxflow_kernel.exceptions import NoApprovalChainError


@traced_engine("approval_chain", "1.0", fingerprint_fields=("amount",))
def resolve_approval_chain(
    amount: Decimal,
    policy: ApprovalChainPolicy = DEFAULT_APPROVAL_POLICY,
) -> tuple[Role, ...]:
    """Return the ordered roles required to approve ``amount``."""
    if amount < 0:
        raise ValueError(f"Payment amount cannot be negative: {amount}")

    for threshold in sorted(policy.thresholds, key=lambda t: t.min_amount):
        if threshold.covers(amount):
            return threshold.chain

    raise NoApprovalChainError(str(amount))


def next_role(chain: tuple[Role, ...], current_step: int) -> Role | None:
    """Role awaited at ``current_step``; None once the chain is exhausted."""
    if 0 <= current_step < len(chain):
        return chain[current_step]
    return None
