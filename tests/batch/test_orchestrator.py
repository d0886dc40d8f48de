"""
Tests for taxflow_batch.orchestrator -- WorkflowOrchestrator wiring.

Validates that the four periodic jobs are registered with configured
policies and lease lengths, that run_job() executes against the real
database, and that the scheduler is built from the job schedules.
"""

from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from taxflow_batch.domain.types import JobRunStatus
from taxflow_batch.orchestrator import WorkflowOrchestrator
from taxflow_config.schema import DEFAULT_CONFIG, JobSchedule
from taxflow_kernel.domain.approval import Role
from taxflow_kernel.domain.workflow import WorkflowCategory
from taxflow_kernel.exceptions import JobNotRegisteredError
from taxflow_services.compliance_monitoring import ComplianceMonitoringWorkflow
from taxflow_services.payment_approval import PaymentApprovalWorkflow
from taxflow_services.triggers import TriggerService
from taxflow_services.workflow_definitions import WorkflowDefinitionService

ALL_JOBS = [
    "communication_escalation",
    "compliance_monitoring",
    "trigger_evaluation",
    "workflow_cleanup",
]


@pytest.fixture
def config():
    return replace(DEFAULT_CONFIG, handlers={
        "Associate": "associate@practice.test",
        "Manager": "manager@practice.test",
        "Director": "director@practice.test",
    })


@pytest.fixture
def orchestrator(session_factory, config, clock, notifier):
    return WorkflowOrchestrator(session_factory, config=config, clock=clock, notifier=notifier)


class TestWiring:
    def test_registers_all_jobs(self, orchestrator):
        assert orchestrator.job_registry.list_jobs() == ALL_JOBS

    def test_unknown_job(self, orchestrator):
        with pytest.raises(JobNotRegisteredError) as exc_info:
            orchestrator.get_job("nightly_backup")
        assert exc_info.value.code == "JOB_NOT_REGISTERED"

    def test_lease_seconds_come_from_config(self, session_factory, config, clock):
        jobs = tuple(
            replace(s, lease_seconds=42) if s.job_name == "workflow_cleanup" else s
            for s in config.jobs
        )
        orch = WorkflowOrchestrator(session_factory, config=replace(config, jobs=jobs), clock=clock)
        assert orch.get_job("workflow_cleanup")._lease_seconds == 42

    def test_clock_is_shared(self, orchestrator, clock):
        assert orchestrator.clock is clock
        for job in orchestrator.job_registry:
            assert job._clock is clock

    def test_handler_registry_covers_every_domain_category(self, orchestrator):
        assert orchestrator.handlers.list_categories() == [
            "approval", "communication", "compliance", "document",
        ]


class TestRunJob:
    async def test_compliance_job_runs_against_database(
        self, orchestrator, in_tx, clock, notifier,
    ):
        await in_tx(lambda s: ComplianceMonitoringWorkflow(s, clock=clock).register_filing(
            "GST-1", "client-042", "GST", date(2026, 4, 1), Decimal("500"),
        ))

        result = await orchestrator.run_job("compliance_monitoring")

        assert result.status == JobRunStatus.SUCCEEDED
        assert result.details["alerts"] == 1
        assert notifier.sent[0].recipient == "client-042"

    async def test_triggered_approval_uses_configured_handlers(
        self, orchestrator, in_tx, clock, notifier,
    ):
        async def seed(session):
            wf = await WorkflowDefinitionService(session, clock).create_definition(
                "Monthly retainer payment", WorkflowCategory.APPROVAL,
            )
            await TriggerService(session, clock).create_trigger(wf.workflow_id, "Schedule", {
                "schedule": "daily:09:00",
                "variables": {"payment_reference": "RET-03", "amount": "2000000"},
            })

        await in_tx(seed)

        result = await orchestrator.run_job("trigger_evaluation")

        assert result.succeeded == 1
        assert notifier.sent[0].recipient == "associate@practice.test"
        pending = await in_tx(
            lambda s: PaymentApprovalWorkflow(s, clock=clock).list_pending(Role.ASSOCIATE)
        )
        assert pending[0].approval_chain == (Role.ASSOCIATE, Role.MANAGER)

    async def test_unknown_job_raises(self, orchestrator):
        with pytest.raises(JobNotRegisteredError):
            await orchestrator.run_job("nightly_backup")


class TestScheduler:
    def test_created_from_config(self, orchestrator):
        scheduler = orchestrator.create_scheduler(tick_interval_seconds=5)
        assert [j.job_name for j in scheduler.due_jobs()] == ALL_JOBS

    def test_disabled_jobs_are_not_scheduled(self, session_factory, config, clock):
        jobs = tuple(
            JobSchedule(s.job_name, s.interval_seconds, s.lease_seconds,
                        enabled=s.job_name != "workflow_cleanup")
            for s in config.jobs
        )
        orch = WorkflowOrchestrator(session_factory, config=replace(config, jobs=jobs), clock=clock)
        names = [j.job_name for j in orch.create_scheduler().due_jobs()]
        assert "workflow_cleanup" not in names
        assert len(names) == 3
