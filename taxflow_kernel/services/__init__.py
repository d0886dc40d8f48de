"""Services for the workflow kernel (write side)."""

from taxflow_kernel.services.workflow_instance_service import (
    WorkflowHandler,
    WorkflowHandlerRegistry,
    WorkflowInstanceService,
    to_json_safe,
)

__all__ = [
    "WorkflowHandler",
    "WorkflowHandlerRegistry",
    "WorkflowInstanceService",
    "to_json_safe",
]
