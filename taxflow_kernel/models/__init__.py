"""ORM models for the workflow core."""

from taxflow_kernel.models.approval import (
    PaymentApprovalRequestModel,
    PaymentApprovalStepModel,
)
from taxflow_kernel.models.communication import (
    ConversationRoutingModel,
    RoutingStepModel,
)
from taxflow_kernel.models.compliance import (
    ComplianceAlertModel,
    FilingDeadlineModel,
    PenaltyCalculationModel,
)
from taxflow_kernel.models.document import DocumentSubmissionModel
from taxflow_kernel.models.lease import JobLeaseModel
from taxflow_kernel.models.workflow import (
    WorkflowDefinitionModel,
    WorkflowInstanceModel,
    WorkflowTriggerModel,
)

__all__ = [
    "ComplianceAlertModel",
    "ConversationRoutingModel",
    "DocumentSubmissionModel",
    "FilingDeadlineModel",
    "JobLeaseModel",
    "PaymentApprovalRequestModel",
    "PaymentApprovalStepModel",
    "PenaltyCalculationModel",
    "RoutingStepModel",
    "WorkflowDefinitionModel",
    "WorkflowInstanceModel",
    "WorkflowTriggerModel",
    "import_all_models",
]


def import_all_models() -> None:
    """Ensure every model is registered on Base.metadata.

    Importing this package already does so; the function gives callers an
    explicit hook before create_all().
    """
