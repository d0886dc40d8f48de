"""
taxflow_batch.jobs -- The periodic workflow jobs.

Each job subclasses ``BaseWorkflowJob`` and is registered by name in a
``JobRegistry``; the orchestrator builds the default registry.
"""

from taxflow_batch.jobs.base import BaseWorkflowJob, JobRegistry, WorkflowJob, default_holder
from taxflow_batch.jobs.cleanup import ARCHIVABLE_KINDS, ArchivableKind, CleanupJob
from taxflow_batch.jobs.compliance_monitoring import ComplianceMonitoringJob
from taxflow_batch.jobs.escalation import EscalationJob
from taxflow_batch.jobs.trigger_evaluation import TriggerEvaluationJob

__all__ = [
    "ARCHIVABLE_KINDS",
    "ArchivableKind",
    "BaseWorkflowJob",
    "CleanupJob",
    "ComplianceMonitoringJob",
    "EscalationJob",
    "JobRegistry",
    "TriggerEvaluationJob",
    "WorkflowJob",
    "default_holder",
]
