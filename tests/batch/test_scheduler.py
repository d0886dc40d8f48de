"""
Tests for taxflow_batch.services.scheduler -- WorkflowScheduler.

Validates tick() due-ness evaluation, per-job intervals, failure
isolation, and the start/stop lifecycle.  Uses stub jobs so no database
is needed.
"""

import asyncio
from uuid import uuid4

import pytest

from taxflow_batch.domain.types import JobRunResult, JobRunStatus
from taxflow_batch.jobs.base import JobRegistry
from taxflow_batch.services.scheduler import WorkflowScheduler
from taxflow_config.schema import JobSchedule


# =============================================================================
# Stub jobs
# =============================================================================


class StubJob:
    """Records each execution; always succeeds."""

    def __init__(self, job_name: str, clock):
        self._job_name = job_name
        self._clock = clock
        self.runs = 0

    @property
    def job_name(self) -> str:
        return self._job_name

    async def execute(self) -> JobRunResult:
        self.runs += 1
        now = self._clock.now()
        return JobRunResult(
            job_name=self._job_name,
            run_id=uuid4(),
            status=JobRunStatus.SUCCEEDED,
            started_at=now,
            completed_at=now,
        )


class ExplodingJob(StubJob):
    async def execute(self) -> JobRunResult:
        self.runs += 1
        raise RuntimeError("database unavailable")


def _scheduler(clock, jobs, schedules, tick=30):
    registry = JobRegistry()
    for job in jobs:
        registry.register(job)
    return WorkflowScheduler(registry, schedules, clock=clock, tick_interval_seconds=tick)


# =============================================================================
# tick()
# =============================================================================


class TestTick:
    async def test_first_tick_runs_every_enabled_job(self, clock):
        a, b = StubJob("trigger_evaluation", clock), StubJob("workflow_cleanup", clock)
        scheduler = _scheduler(clock, [a, b], [
            JobSchedule("trigger_evaluation", 300, 600),
            JobSchedule("workflow_cleanup", 604800, 3600),
        ])

        results = await scheduler.tick()

        assert sorted(r.job_name for r in results) == ["trigger_evaluation", "workflow_cleanup"]
        assert (a.runs, b.runs) == (1, 1)

    async def test_respects_each_interval(self, clock):
        fast, slow = StubJob("trigger_evaluation", clock), StubJob("workflow_cleanup", clock)
        scheduler = _scheduler(clock, [fast, slow], [
            JobSchedule("trigger_evaluation", 300, 600),
            JobSchedule("workflow_cleanup", 604800, 3600),
        ])
        await scheduler.tick()

        clock.advance(299)
        assert await scheduler.tick() == []

        clock.advance(1)
        results = await scheduler.tick()
        assert [r.job_name for r in results] == ["trigger_evaluation"]
        assert (fast.runs, slow.runs) == (2, 1)

    async def test_disabled_job_never_runs(self, clock):
        job = StubJob("workflow_cleanup", clock)
        scheduler = _scheduler(clock, [job], [
            JobSchedule("workflow_cleanup", 60, 60, enabled=False),
        ])
        assert await scheduler.tick() == []
        assert job.runs == 0

    async def test_schedule_without_registered_job_is_ignored(self, clock):
        scheduler = _scheduler(clock, [], [JobSchedule("workflow_cleanup", 60, 60)])
        assert scheduler.due_jobs() == []

    async def test_failing_job_reports_failed_and_does_not_block_others(
        self, clock, captured_logs,
    ):
        bad = ExplodingJob("compliance_monitoring", clock)
        good = StubJob("trigger_evaluation", clock)
        scheduler = _scheduler(clock, [bad, good], [
            JobSchedule("compliance_monitoring", 86400, 3600),
            JobSchedule("trigger_evaluation", 300, 600),
        ])

        results = {r.job_name: r for r in await scheduler.tick()}

        assert results["compliance_monitoring"].status == JobRunStatus.FAILED
        assert results["compliance_monitoring"].error_message == "database unavailable"
        assert results["trigger_evaluation"].status == JobRunStatus.SUCCEEDED
        assert any(r["message"] == "scheduled_job_failed" for r in captured_logs())

    async def test_failed_job_waits_for_its_next_interval(self, clock):
        bad = ExplodingJob("compliance_monitoring", clock)
        scheduler = _scheduler(clock, [bad], [JobSchedule("compliance_monitoring", 86400, 3600)])

        await scheduler.tick()
        clock.advance(60)
        await scheduler.tick()

        assert bad.runs == 1


# =============================================================================
# Lifecycle
# =============================================================================


class TestLifecycle:
    async def test_start_runs_a_tick_and_stop_shuts_down(self, clock):
        job = StubJob("trigger_evaluation", clock)
        scheduler = _scheduler(
            clock, [job], [JobSchedule("trigger_evaluation", 300, 600)], tick=3600,
        )

        scheduler.start()
        assert scheduler.is_running
        for _ in range(50):
            if job.runs:
                break
            await asyncio.sleep(0.01)

        await scheduler.stop(timeout=5)

        assert job.runs == 1
        assert not scheduler.is_running

    async def test_start_twice_is_a_no_op(self, clock):
        scheduler = _scheduler(clock, [], [], tick=3600)
        scheduler.start()
        task = scheduler._task
        scheduler.start()
        assert scheduler._task is task
        await scheduler.stop(timeout=5)

    async def test_stop_without_start(self, clock):
        scheduler = _scheduler(clock, [], [])
        await scheduler.stop()
        assert not scheduler.is_running


@pytest.mark.parametrize("name", ["trigger_evaluation", "workflow_cleanup"])
def test_due_jobs_before_first_tick(clock, name):
    scheduler = _scheduler(clock, [StubJob(name, clock)], [JobSchedule(name, 300, 600)])
    assert [j.job_name for j in scheduler.due_jobs()] == [name]
