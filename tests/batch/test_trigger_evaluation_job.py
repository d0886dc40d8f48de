"""
Tests for TriggerEvaluationJob.

The clock starts at Monday 2026-03-02 09:02 UTC, inside the firing window
of a ``daily:09:00`` trigger.
"""

import pytest
from sqlalchemy import select

from taxflow_batch.domain.types import JobRunStatus
from taxflow_batch.jobs.trigger_evaluation import TriggerEvaluationJob
from taxflow_batch.services.lease import JobLeaseService
from taxflow_kernel.domain.workflow import InstanceStatus, WorkflowCategory
from taxflow_kernel.models.workflow import WorkflowInstanceModel, WorkflowTriggerModel
from taxflow_services.triggers import TriggerService
from taxflow_services.workflow_definitions import WorkflowDefinitionService
from taxflow_services.workflow_handlers import default_handler_registry


def _job(session_factory, clock, **kwargs):
    return TriggerEvaluationJob(session_factory, clock=clock, holder="test-host", **kwargs)


async def _workflow_with_trigger(in_tx, clock, name, trigger_type, configuration,
                                 category=WorkflowCategory.GENERAL):
    async def work(session):
        wf = await WorkflowDefinitionService(session, clock).create_definition(name, category)
        trigger = await TriggerService(session, clock).create_trigger(
            wf.workflow_id, trigger_type, configuration,
        )
        return wf, trigger

    return await in_tx(work)


async def _instances(in_tx, workflow_id=None):
    async def work(session):
        stmt = select(WorkflowInstanceModel)
        if workflow_id is not None:
            stmt = stmt.where(WorkflowInstanceModel.workflow_id == workflow_id)
        return [m.to_dto() for m in (await session.execute(stmt)).scalars().all()]

    return await in_tx(work)


class TestScheduledTriggers:
    async def test_fires_once_per_window(self, session_factory, in_tx, clock):
        wf, trigger = await _workflow_with_trigger(
            in_tx, clock, "Daily digest", "Schedule", "daily:09:00",
        )
        job = _job(session_factory, clock)

        first = await job.execute()
        clock.advance(60)
        second = await job.execute()

        assert first.status == JobRunStatus.SUCCEEDED
        assert (first.evaluated, first.succeeded) == (1, 1)
        assert first.details == {"started": 1}
        assert (second.evaluated, second.succeeded) == (1, 0)

        instances = await _instances(in_tx, wf.workflow_id)
        assert len(instances) == 1
        assert instances[0].status == InstanceStatus.RUNNING
        assert instances[0].started_by == "System"
        assert instances[0].variables["trigger_id"] == str(trigger.trigger_id)

    async def test_fires_again_next_day(self, session_factory, in_tx, clock):
        wf, _ = await _workflow_with_trigger(in_tx, clock, "Daily digest", "Schedule", "daily:09:00")
        job = _job(session_factory, clock)

        await job.execute()
        clock.advance(days=1)
        await job.execute()

        assert len(await _instances(in_tx, wf.workflow_id)) == 2

    async def test_outside_window_does_nothing(self, session_factory, in_tx, clock):
        await _workflow_with_trigger(in_tx, clock, "Evening digest", "Schedule", "daily:18:00")

        result = await _job(session_factory, clock).execute()

        assert (result.evaluated, result.succeeded, result.failed) == (1, 0, 0)
        assert await _instances(in_tx) == []

    async def test_stamps_evaluation_times(self, session_factory, in_tx, clock):
        _, trigger = await _workflow_with_trigger(
            in_tx, clock, "Daily digest", "Schedule", "daily:09:00",
        )
        await _job(session_factory, clock).execute()

        stored = await in_tx(lambda s: TriggerService(s, clock).get_trigger(trigger.trigger_id))
        assert stored.last_evaluated_at == clock.now()
        assert stored.last_fired_at == clock.now()

    async def test_schedule_variables_reach_the_instance(self, session_factory, in_tx, clock):
        wf, _ = await _workflow_with_trigger(
            in_tx, clock, "PAYE run", "Schedule",
            {"schedule": "daily:09:00", "variables": {"tax_type": "PAYE"}},
        )
        await _job(session_factory, clock).execute()

        instances = await _instances(in_tx, wf.workflow_id)
        assert instances[0].variables["tax_type"] == "PAYE"

    async def test_inactive_workflow_fails_only_its_trigger(self, session_factory, in_tx, clock):
        retired, _ = await _workflow_with_trigger(
            in_tx, clock, "Retired", "Schedule", "daily:09:00",
        )
        live, _ = await _workflow_with_trigger(in_tx, clock, "Live", "Schedule", "daily:09:00")
        await in_tx(
            lambda s: WorkflowDefinitionService(s, clock).set_active(retired.workflow_id, False)
        )

        result = await _job(session_factory, clock).execute()

        assert result.status == JobRunStatus.SUCCEEDED_WITH_WARNINGS
        assert (result.evaluated, result.succeeded, result.failed) == (2, 1, 1)
        assert len(await _instances(in_tx, live.workflow_id)) == 1

    async def test_inactive_trigger_never_fires(self, session_factory, in_tx, clock):
        _, trigger = await _workflow_with_trigger(
            in_tx, clock, "Daily digest", "Schedule", "daily:09:00",
        )
        await in_tx(lambda s: TriggerService(s, clock).deactivate_trigger(trigger.trigger_id))

        result = await _job(session_factory, clock).execute()

        assert result.evaluated == 0
        assert await _instances(in_tx) == []

    @pytest.mark.parametrize("trigger_type,configuration", [
        ("Manual", None),
        ("Webhook", {"path": "/hooks/filing"}),
        ("FileWatch", {"pattern": "*.csv"}),
    ])
    async def test_externally_started_types_never_fire(
        self, session_factory, in_tx, clock, trigger_type, configuration,
    ):
        await _workflow_with_trigger(in_tx, clock, "Inbound", trigger_type, configuration)

        result = await _job(session_factory, clock).execute()

        assert (result.evaluated, result.succeeded, result.failed) == (1, 0, 0)
        assert await _instances(in_tx) == []


class TestMalformedTriggers:
    async def _raw_trigger(self, in_tx, clock, workflow_id, trigger_type, configuration):
        async def work(session):
            model = WorkflowTriggerModel(
                workflow_id=workflow_id,
                trigger_type=trigger_type,
                configuration=configuration,
                is_active=True,
            )
            model.touch(clock.now())
            session.add(model)
            await session.flush()
            return model.id

        return await in_tx(work)

    async def test_bad_config_fails_alone(self, session_factory, in_tx, clock, captured_logs):
        wf, _ = await _workflow_with_trigger(in_tx, clock, "Daily digest", "Schedule", "daily:09:00")
        bad_id = await self._raw_trigger(in_tx, clock, wf.workflow_id, "schedule", "at nine-ish")

        result = await _job(session_factory, clock).execute()

        assert result.status == JobRunStatus.SUCCEEDED_WITH_WARNINGS
        assert (result.evaluated, result.succeeded, result.failed) == (2, 1, 1)
        assert len(await _instances(in_tx, wf.workflow_id)) == 1

        failures = [r for r in captured_logs() if r["message"] == "job_item_failed"]
        assert failures[0]["trigger_id"] == str(bad_id)
        assert failures[0]["error_code"] == "INVALID_TRIGGER_CONFIG"

    async def test_unknown_type_is_skipped(self, session_factory, in_tx, clock):
        wf, _ = await _workflow_with_trigger(in_tx, clock, "Daily digest", "Manual", None)
        await self._raw_trigger(in_tx, clock, wf.workflow_id, "cron", "0 9 * * *")

        result = await _job(session_factory, clock).execute()

        assert result.status == JobRunStatus.SUCCEEDED
        assert (result.evaluated, result.succeeded, result.failed) == (2, 0, 0)


class TestEventTriggers:
    async def test_event_trigger_not_fired_by_schedule(self, session_factory, in_tx, clock):
        await _workflow_with_trigger(
            in_tx, clock, "On submission", "Event", {"event": "filing.submitted"},
        )
        result = await _job(session_factory, clock).execute()
        assert result.succeeded == 0
        assert await _instances(in_tx) == []

    async def test_fire_event_starts_matching_workflows(self, session_factory, in_tx, clock):
        match, _ = await _workflow_with_trigger(
            in_tx, clock, "On submission", "Event",
            {"event": "filing.submitted", "variables": {"source": "portal"}},
        )
        await _workflow_with_trigger(
            in_tx, clock, "On approval", "Event", {"event": "filing.approved"},
        )

        started = await _job(session_factory, clock).fire_event_triggers(
            "filing.submitted", {"filing_reference": "GST-1"},
        )

        assert [i.workflow_id for i in started] == [match.workflow_id]
        assert started[0].variables["source"] == "portal"
        assert started[0].variables["filing_reference"] == "GST-1"

    async def test_event_opens_payment_approval(
        self, session_factory, in_tx, clock, notifier, directory,
    ):
        await _workflow_with_trigger(
            in_tx, clock, "Payment on invoice", "Event", {"event": "invoice.received"},
            category=WorkflowCategory.APPROVAL,
        )
        job = _job(
            session_factory, clock,
            handlers=default_handler_registry(notifier=notifier, clock=clock, directory=directory),
        )

        started = await job.fire_event_triggers(
            "invoice.received", {"payment_reference": "INV-7", "amount": "500"},
        )

        assert "approval_id" in started[0].context
        assert notifier.sent[0].recipient == "associate@practice.test"


class TestSingleFlight:
    async def test_skipped_while_lease_held_elsewhere(self, session_factory, in_tx, clock):
        await _workflow_with_trigger(in_tx, clock, "Daily digest", "Schedule", "daily:09:00")
        other = JobLeaseService(session_factory, clock)
        await other.acquire("trigger_evaluation", "other-host", 600)

        result = await _job(session_factory, clock).execute()

        assert result.status == JobRunStatus.SKIPPED
        assert result.evaluated == 0
        assert await _instances(in_tx) == []
