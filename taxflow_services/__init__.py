"""
taxflow_services -- Package init and public API.

Responsibility:
    Stateful workflow services that compose the pure decision engines
    (taxflow_engines/) with database sessions, the clock and the
    notification channel.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

    Dependency direction (enforced by tests/architecture/test_layer_boundaries.py):
        taxflow_services/ -> taxflow_engines/  (allowed)
        taxflow_services/ -> taxflow_kernel/   (allowed)
        taxflow_engines/  -> taxflow_services/ (FORBIDDEN)
        taxflow_kernel/   -> taxflow_services/ (FORBIDDEN)
"""

from taxflow_services.communication_routing import CommunicationRoutingWorkflow
from taxflow_services.compliance_monitoring import (
    ComplianceMonitoringWorkflow,
    MonitorOutcome,
)
from taxflow_services.document_management import DocumentManagementWorkflow
from taxflow_services.notifications import (
    HandlerDirectory,
    LoggingNotifier,
    Notifier,
    RecordingNotifier,
    StaticHandlerDirectory,
    dispatch_notification,
)
from taxflow_services.payment_approval import PaymentApprovalWorkflow
from taxflow_services.triggers import TriggerService
from taxflow_services.workflow_definitions import WorkflowDefinitionService
from taxflow_services.workflow_handlers import (
    CommunicationRoutingHandler,
    ComplianceFilingHandler,
    DocumentSubmissionHandler,
    PaymentApprovalHandler,
    default_handler_registry,
)

__all__ = [
    "CommunicationRoutingHandler",
    "CommunicationRoutingWorkflow",
    "ComplianceFilingHandler",
    "ComplianceMonitoringWorkflow",
    "DocumentManagementWorkflow",
    "DocumentSubmissionHandler",
    "HandlerDirectory",
    "LoggingNotifier",
    "MonitorOutcome",
    "Notifier",
    "PaymentApprovalHandler",
    "PaymentApprovalWorkflow",
    "RecordingNotifier",
    "StaticHandlerDirectory",
    "TriggerService",
    "WorkflowDefinitionService",
    "default_handler_registry",
    "dispatch_notification",
]
