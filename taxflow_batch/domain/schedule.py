"""
Pure job cadence evaluation.

Contract:
    ``is_job_due(last_run_at, interval_seconds, now)`` and
    ``next_run_at()`` are PURE -- no I/O, no clock access.  The scheduler
    passes in its clock's ``now``.

Architecture: taxflow_batch/domain.  ZERO I/O.
"""

from __future__ import annotations

from datetime import datetime, timedelta


def next_run_at(last_run_at: datetime | None, interval_seconds: int, now: datetime) -> datetime:
    """When the job should next run.  A job that never ran is due immediately."""
    if last_run_at is None:
        return now
    return last_run_at + timedelta(seconds=interval_seconds)


def is_job_due(last_run_at: datetime | None, interval_seconds: int, now: datetime) -> bool:
    """True if ``interval_seconds`` have passed since ``last_run_at``.

    >>> from datetime import timezone
    >>> t0 = datetime(2026, 1, 1, tzinfo=timezone.utc)
    >>> is_job_due(None, 300, t0)
    True
    >>> is_job_due(t0, 300, t0 + timedelta(seconds=299))
    False
    >>> is_job_due(t0, 300, t0 + timedelta(seconds=300))
    True
    """
    return now >= next_run_at(last_run_at, interval_seconds, now)
