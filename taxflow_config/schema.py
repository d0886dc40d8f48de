"""
Configuration schema (``taxflow_config.schema``).

Frozen dataclasses describing a complete workflow-core configuration.  The
policy sections reuse the kernel's policy value objects so engines and
services receive exactly what the loader produced.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from taxflow_kernel.domain.policy import (
    DEFAULT_ALERT_POLICY,
    DEFAULT_APPROVAL_POLICY,
    DEFAULT_ESCALATION_POLICY,
    DEFAULT_PENALTY_POLICY,
    DEFAULT_RETENTION_POLICY,
    DEFAULT_TRIGGER_POLICY,
    AlertPolicy,
    ApprovalChainPolicy,
    ApprovalThreshold,
    EscalationPolicy,
    PenaltyPolicy,
    RetentionPolicy,
    TriggerPolicy,
)

__all__ = [
    "AlertPolicy",
    "DEFAULT_CONFIG",
    "ApprovalChainPolicy",
    "ApprovalThreshold",
    "DEFAULT_JOB_SCHEDULES",
    "EscalationPolicy",
    "JobSchedule",
    "PenaltyPolicy",
    "RetentionPolicy",
    "TriggerPolicy",
    "WorkflowConfig",
]


@dataclass(frozen=True)
class JobSchedule:
    """Cadence and lease length for one periodic job."""

    job_name: str
    interval_seconds: int
    lease_seconds: int
    enabled: bool = True


DEFAULT_JOB_SCHEDULES: tuple[JobSchedule, ...] = (
    JobSchedule("trigger_evaluation", interval_seconds=300, lease_seconds=600),
    JobSchedule("communication_escalation", interval_seconds=3600, lease_seconds=1800),
    JobSchedule("compliance_monitoring", interval_seconds=86400, lease_seconds=3600),
    JobSchedule("workflow_cleanup", interval_seconds=604800, lease_seconds=3600),
)


@dataclass(frozen=True)
class WorkflowConfig:
    """Root configuration object."""

    database_url: str = "sqlite+aiosqlite:///taxflow.db"
    default_currency: str = "SLE"
    approval: ApprovalChainPolicy = DEFAULT_APPROVAL_POLICY
    penalty: PenaltyPolicy = DEFAULT_PENALTY_POLICY
    alerts: AlertPolicy = DEFAULT_ALERT_POLICY
    escalation: EscalationPolicy = DEFAULT_ESCALATION_POLICY
    retention: RetentionPolicy = DEFAULT_RETENTION_POLICY
    triggers: TriggerPolicy = DEFAULT_TRIGGER_POLICY
    jobs: tuple[JobSchedule, ...] = DEFAULT_JOB_SCHEDULES
    # Role name -> handler identity used when routing conversations
    handlers: dict[str, str] = field(default_factory=dict)
    scheduler_tick_seconds: int = 30

    def job(self, job_name: str) -> JobSchedule | None:
        for schedule in self.jobs:
            if schedule.job_name == job_name:
                return schedule
        return None


DEFAULT_CONFIG = WorkflowConfig()
