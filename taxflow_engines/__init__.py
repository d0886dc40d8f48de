"""
Module: taxflow_engines
Responsibility:
    Re-exports the pure decision functions used by the workflow services
    and jobs.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import taxflow_kernel/domain (and sibling engine modules).

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()`` or ``date.today()``.
      Callers pass the current time in.
    - Decimal-only arithmetic for money and rates.
    - Determinism: identical inputs always produce identical outputs.
"""

from taxflow_engines.approval_chain import next_role, resolve_approval_chain
from taxflow_engines.escalation import (
    EscalationDecision,
    elapsed_minutes,
    evaluate_escalation,
    initial_role_for,
    next_role_on_ladder,
)
from taxflow_engines.penalty import (
    calculate_penalty,
    classify_deadline,
    days_until_deadline,
    describe_penalty,
    months_overdue,
)
from taxflow_engines.trigger_schedule import (
    decode_trigger_config,
    evaluate_schedule,
    nearest_occurrence,
    normalize_trigger_type,
    parse_schedule_expression,
)

__all__ = [
    "EscalationDecision",
    "calculate_penalty",
    "classify_deadline",
    "days_until_deadline",
    "decode_trigger_config",
    "describe_penalty",
    "elapsed_minutes",
    "evaluate_escalation",
    "evaluate_schedule",
    "initial_role_for",
    "months_overdue",
    "nearest_occurrence",
    "next_role",
    "next_role_on_ladder",
    "normalize_trigger_type",
    "parse_schedule_expression",
    "resolve_approval_chain",
]
