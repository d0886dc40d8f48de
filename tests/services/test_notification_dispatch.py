"""
Tests for the notification seam and the workflow handler variables.
"""

import pytest

from taxflow_kernel.domain.approval import Role
from taxflow_kernel.domain.notification import Notification, Severity
from taxflow_kernel.domain.workflow import WorkflowCategory
from taxflow_kernel.exceptions import WorkflowVariablesError
from taxflow_kernel.services.workflow_instance_service import WorkflowInstanceService
from taxflow_services.notifications import (
    LoggingNotifier,
    Notifier,
    RecordingNotifier,
    StaticHandlerDirectory,
    dispatch_notification,
)
from taxflow_services.workflow_definitions import WorkflowDefinitionService
from taxflow_services.workflow_handlers import default_handler_registry


class FailingNotifier:
    async def notify(self, recipient, title, message, severity=Severity.INFO):
        raise RuntimeError("gateway timeout")


class TestDispatch:
    async def test_success(self):
        notifier = RecordingNotifier()
        ok = await dispatch_notification(notifier, Notification("a@b.test", "Hi", "Body"))
        assert ok
        assert notifier.to("a@b.test")[0].title == "Hi"

    async def test_failure_is_logged_not_raised(self, captured_logs):
        ok = await dispatch_notification(
            FailingNotifier(), Notification("a@b.test", "Hi", "Body", Severity.CRITICAL),
        )
        assert ok is False
        failures = [r for r in captured_logs() if r["message"] == "notification_failed"]
        assert len(failures) == 1
        assert failures[0]["recipient"] == "a@b.test"
        assert failures[0]["level"] == "WARNING"

    async def test_logging_notifier(self, captured_logs):
        await LoggingNotifier().notify("a@b.test", "Hi", "Body", Severity.WARNING)
        sent = [r for r in captured_logs() if r["message"] == "notification_sent"]
        assert sent[0]["severity"] == "warning"
        assert sent[0]["body"] == "Body"

    def test_implementations_satisfy_protocol(self):
        assert isinstance(RecordingNotifier(), Notifier)
        assert isinstance(LoggingNotifier(), Notifier)


class TestHandlerDirectory:
    def test_configured_role(self):
        directory = StaticHandlerDirectory({"Manager": "m@practice.test"})
        assert directory.handler_for(Role.MANAGER) == "m@practice.test"

    def test_unconfigured_role_uses_queue(self):
        assert StaticHandlerDirectory().handler_for(Role.DIRECTOR) == "queue:director"


class TestHandlerVariables:
    @pytest.fixture
    async def start(self, session, clock, notifier):
        definitions = WorkflowDefinitionService(session, clock)
        service = WorkflowInstanceService(
            session, clock, default_handler_registry(notifier=notifier, clock=clock),
        )

        async def _start(category, variables):
            wf = await definitions.create_definition(f"{category.value} flow", category)
            return await service.start_instance(wf.workflow_id, variables)

        return _start

    @pytest.mark.parametrize("variables", [
        {"amount": "10"},
        {"payment_reference": "PAY-1"},
        {"payment_reference": "PAY-1", "amount": ""},
        {"payment_reference": "PAY-1", "amount": "ten"},
    ])
    async def test_payment_variables(self, start, variables):
        with pytest.raises(WorkflowVariablesError):
            await start(WorkflowCategory.APPROVAL, variables)

    @pytest.mark.parametrize("variables", [
        {"client_reference": "c", "subject": "s"},
        {"conversation_reference": "x", "client_reference": "c", "subject": "s",
         "priority": "critical"},
    ])
    async def test_communication_variables(self, start, variables):
        with pytest.raises(WorkflowVariablesError):
            await start(WorkflowCategory.COMMUNICATION, variables)

    async def test_priority_defaults_to_medium(self, start, notifier):
        await start(WorkflowCategory.COMMUNICATION, {
            "conversation_reference": "x", "client_reference": "c", "subject": "s",
        })
        assert notifier.sent[0].recipient == "queue:associate"
