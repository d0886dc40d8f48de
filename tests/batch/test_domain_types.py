"""
Tests for taxflow_batch.domain -- run result types and job cadence.
"""

from dataclasses import FrozenInstanceError
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from taxflow_batch.domain.schedule import is_job_due, next_run_at
from taxflow_batch.domain.types import JobRunResult, JobRunStatus, RunCounters

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


# =============================================================================
# Enum tests
# =============================================================================


class TestJobRunStatus:
    def test_string_values(self):
        assert JobRunStatus.SUCCEEDED.value == "succeeded"
        assert JobRunStatus.SUCCEEDED_WITH_WARNINGS.value == "succeeded_with_warnings"
        assert JobRunStatus.FAILED.value == "failed"
        assert JobRunStatus.SKIPPED.value == "skipped"

    def test_is_str_enum(self):
        assert isinstance(JobRunStatus.SKIPPED, str)


# =============================================================================
# Dataclass tests
# =============================================================================


class TestJobRunResult:
    def _result(self, **overrides):
        fields = {
            "job_name": "workflow_cleanup",
            "run_id": uuid4(),
            "status": JobRunStatus.SUCCEEDED,
            "started_at": T0,
            "completed_at": T0 + timedelta(milliseconds=1500),
        }
        fields.update(overrides)
        return JobRunResult(**fields)

    def test_defaults(self):
        result = self._result()
        assert (result.evaluated, result.succeeded, result.failed) == (0, 0, 0)
        assert result.details == {}
        assert result.error_message is None

    def test_duration(self):
        assert self._result().duration_ms == 1500.0

    def test_frozen(self):
        with pytest.raises(FrozenInstanceError):
            self._result().status = JobRunStatus.FAILED


class TestRunCounters:
    def test_clean_run_succeeds(self):
        counters = RunCounters(evaluated=3, succeeded=3)
        assert counters.status == JobRunStatus.SUCCEEDED

    def test_any_failure_is_a_warning(self):
        counters = RunCounters(evaluated=3, succeeded=2, failed=1)
        assert counters.status == JobRunStatus.SUCCEEDED_WITH_WARNINGS

    def test_nothing_to_do_is_success(self):
        assert RunCounters().status == JobRunStatus.SUCCEEDED

    def test_bump(self):
        counters = RunCounters()
        counters.bump("alerts")
        counters.bump("alerts", 2)
        assert counters.details == {"alerts": 3}


# =============================================================================
# Cadence
# =============================================================================


class TestCadence:
    def test_never_run_is_due(self):
        assert is_job_due(None, 3600, T0)
        assert next_run_at(None, 3600, T0) == T0

    def test_interval_boundary(self):
        assert not is_job_due(T0, 300, T0 + timedelta(seconds=299))
        assert is_job_due(T0, 300, T0 + timedelta(seconds=300))

    def test_next_run(self):
        assert next_run_at(T0, 86400, T0) == T0 + timedelta(days=1)
