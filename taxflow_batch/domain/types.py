"""
taxflow_batch.domain.types -- Pure frozen dataclasses for job runs.  ZERO I/O.

Invariants enforced:
    - A run's status is derived from its counters, never set ad hoc:
      any failed item makes an otherwise successful run
      ``SUCCEEDED_WITH_WARNINGS``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID


class JobRunStatus(str, Enum):
    """Outcome of one job run."""

    SUCCEEDED = "succeeded"
    SUCCEEDED_WITH_WARNINGS = "succeeded_with_warnings"  # Some items failed
    FAILED = "failed"  # Job-level failure
    SKIPPED = "skipped"  # Another run holds the lease


@dataclass(frozen=True)
class JobRunResult:
    """Immutable summary of one job run.

    ``evaluated`` counts records looked at, ``succeeded`` those the job
    acted on, ``failed`` those whose processing raised.  ``details``
    carries job-specific counters (e.g. alerts raised, archived per kind).
    """

    job_name: str
    run_id: UUID
    status: JobRunStatus
    started_at: datetime
    completed_at: datetime
    evaluated: int = 0
    succeeded: int = 0
    failed: int = 0
    details: dict[str, Any] = field(default_factory=dict)
    error_message: str | None = None

    @property
    def duration_ms(self) -> float:
        return (self.completed_at - self.started_at).total_seconds() * 1000


@dataclass
class RunCounters:
    """Mutable tally a job fills in while it runs."""

    evaluated: int = 0
    succeeded: int = 0
    failed: int = 0
    details: dict[str, Any] = field(default_factory=dict)

    def bump(self, key: str, by: int = 1) -> None:
        self.details[key] = self.details.get(key, 0) + by

    @property
    def status(self) -> JobRunStatus:
        if self.failed:
            return JobRunStatus.SUCCEEDED_WITH_WARNINGS
        return JobRunStatus.SUCCEEDED
