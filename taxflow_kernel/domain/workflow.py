"""
Workflow domain types (``taxflow_kernel.domain.workflow``).

Responsibility
--------------
Value objects for workflow definitions, triggers and instances, plus the
closed set of trigger configuration shapes.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* ``INSTANCE_TRANSITIONS`` is the instance lifecycle: Pending -> Running
  -> Completed | Cancelled.  Completed and Cancelled have no outgoing
  edges.
* Trigger configuration is one of the ``TriggerConfig`` variants; the
  variant is selected by ``TriggerType`` when a trigger is loaded.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Union
from uuid import UUID


SYSTEM_ACTOR = "System"


# =========================================================================
# Enums
# =========================================================================


class TriggerType(str, Enum):
    """How a workflow gets started."""

    SCHEDULE = "schedule"
    EVENT = "event"
    MANUAL = "manual"
    WEBHOOK = "webhook"
    FILE_WATCH = "file_watch"


class WorkflowCategory(str, Enum):
    """Domain workflow a definition delegates to."""

    APPROVAL = "approval"
    COMPLIANCE = "compliance"
    DOCUMENT = "document"
    COMMUNICATION = "communication"
    GENERAL = "general"


class InstanceStatus(str, Enum):
    """Workflow instance lifecycle states."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


INSTANCE_TRANSITIONS: dict[InstanceStatus, frozenset[InstanceStatus]] = {
    InstanceStatus.PENDING: frozenset({
        InstanceStatus.RUNNING,
        InstanceStatus.CANCELLED,
    }),
    InstanceStatus.RUNNING: frozenset({
        InstanceStatus.COMPLETED,
        InstanceStatus.CANCELLED,
    }),
    InstanceStatus.COMPLETED: frozenset(),
    InstanceStatus.CANCELLED: frozenset(),
}

TERMINAL_INSTANCE_STATUSES: frozenset[InstanceStatus] = frozenset({
    InstanceStatus.COMPLETED,
    InstanceStatus.CANCELLED,
})


class ScheduleCadence(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"


# =========================================================================
# Trigger configuration variants
# =========================================================================


@dataclass(frozen=True)
class ScheduleTriggerConfig:
    """``daily:HH:MM`` or ``weekly:<day>:HH:MM``.  ``weekday`` is 0=Monday."""

    cadence: ScheduleCadence
    hour: int
    minute: int
    weekday: int | None = None
    variables: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class EventTriggerConfig:
    event_name: str
    variables: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class WebhookTriggerConfig:
    path: str


@dataclass(frozen=True)
class ManualTriggerConfig:
    pass


@dataclass(frozen=True)
class FileWatchTriggerConfig:
    pattern: str


TriggerConfig = Union[
    ScheduleTriggerConfig,
    EventTriggerConfig,
    WebhookTriggerConfig,
    ManualTriggerConfig,
    FileWatchTriggerConfig,
]


# =========================================================================
# Records
# =========================================================================


@dataclass(frozen=True)
class WorkflowDefinition:
    """A named workflow with its category and ordered action list."""

    workflow_id: UUID
    name: str
    category: WorkflowCategory
    trigger_type: TriggerType
    actions: tuple[dict[str, Any], ...] = ()
    parameter_schema: dict[str, Any] = field(default_factory=dict)
    is_active: bool = True
    version: int = 1


@dataclass(frozen=True)
class WorkflowTrigger:
    """Stored trigger with its raw configuration blob."""

    trigger_id: UUID
    workflow_id: UUID
    trigger_type: str
    configuration: Any
    is_active: bool = True
    last_evaluated_at: datetime | None = None
    last_fired_at: datetime | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class TriggerDecision:
    """Outcome of evaluating a trigger.  "Nothing to do" is a normal result."""

    should_fire: bool
    reason: str
    occurrence: datetime | None = None


@dataclass(frozen=True)
class WorkflowInstance:
    """One execution of a workflow definition."""

    instance_id: UUID
    workflow_id: UUID
    name: str
    status: InstanceStatus
    started_by: str
    variables: dict[str, Any] = field(default_factory=dict)
    context: dict[str, Any] = field(default_factory=dict)
    workflow_version: int = 1
    started_at: datetime | None = None
    completed_at: datetime | None = None
    completed_by: str | None = None
    error_message: str | None = None
    archived_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_INSTANCE_STATUSES
