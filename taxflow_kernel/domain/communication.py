"""
Communication routing domain types (``taxflow_kernel.domain.communication``).

Conversation priority, routing lifecycle, escalation outcomes and the
routing-step audit record.  Pure value objects, ZERO I/O.

Invariant: a routed conversation always has exactly one current
``assignee``; escalation replaces it, never clears it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID

from taxflow_kernel.domain.approval import Role


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class ConversationStatus(str, Enum):
    """Conversation routing lifecycle states."""

    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    ESCALATED = "escalated"
    RESOLVED = "resolved"
    CLOSED = "closed"


CONVERSATION_TRANSITIONS: dict[ConversationStatus, frozenset[ConversationStatus]] = {
    ConversationStatus.ASSIGNED: frozenset({
        ConversationStatus.IN_PROGRESS,
        ConversationStatus.ESCALATED,
        ConversationStatus.RESOLVED,
        ConversationStatus.CLOSED,
    }),
    ConversationStatus.IN_PROGRESS: frozenset({
        ConversationStatus.ESCALATED,
        ConversationStatus.RESOLVED,
        ConversationStatus.CLOSED,
    }),
    # Escalated -> Escalated: each rung of the ladder is its own escalation
    ConversationStatus.ESCALATED: frozenset({
        ConversationStatus.IN_PROGRESS,
        ConversationStatus.ESCALATED,
        ConversationStatus.RESOLVED,
        ConversationStatus.CLOSED,
    }),
    ConversationStatus.RESOLVED: frozenset({ConversationStatus.CLOSED}),
    ConversationStatus.CLOSED: frozenset(),
}


OPEN_CONVERSATION_STATUSES: frozenset[ConversationStatus] = frozenset({
    ConversationStatus.ASSIGNED,
    ConversationStatus.IN_PROGRESS,
    ConversationStatus.ESCALATED,
})

TERMINAL_CONVERSATION_STATUSES: frozenset[ConversationStatus] = frozenset({
    ConversationStatus.RESOLVED,
    ConversationStatus.CLOSED,
})


class RoutingStepType(str, Enum):
    ASSIGNED = "assigned"
    ESCALATED = "escalated"
    RESOLVED = "resolved"
    CLOSED = "closed"


class EscalationOutcome(str, Enum):
    """Result of checking a conversation against its escalation rule."""

    NOT_DUE = "not_due"
    ESCALATED = "escalated"
    AT_CEILING = "at_ceiling"
    CLOSED = "closed"


@dataclass(frozen=True)
class ConversationRouting:
    """Snapshot of a routed conversation."""

    routing_id: UUID
    conversation_reference: str
    client_reference: str
    subject: str
    priority: Priority
    status: ConversationStatus
    assigned_role: Role
    assignee: str
    escalation_level: int
    assigned_at: datetime
    created_at: datetime | None = None
    resolved_at: datetime | None = None
    resolution_notes: str | None = None
    response_time_minutes: int | None = None
    workflow_instance_id: UUID | None = None
    archived_at: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_CONVERSATION_STATUSES


@dataclass(frozen=True)
class RoutingStep:
    """One entry in a conversation's assignment/escalation history."""

    step_id: UUID
    routing_id: UUID
    step_type: RoutingStepType
    to_role: Role | None
    handled_by: str
    from_role: Role | None = None
    assignee: str | None = None
    notes: str | None = None
    occurred_at: datetime | None = None
