"""
Typed exception hierarchy for the workflow core.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from TaxflowError:

    TaxflowError (base)
    |
    +-- WorkflowError
    |   +-- WorkflowNotFoundError
    |   +-- WorkflowInactiveError
    |   +-- WorkflowInstanceNotFoundError
    |   +-- TriggerNotFoundError
    |   +-- InvalidTriggerConfigError
    |   +-- UnknownTriggerTypeError
    |   +-- WorkflowVariablesError
    |
    +-- InvalidStateError
    |
    +-- ApprovalError
    |   +-- ApprovalNotFoundError
    |   +-- NoApprovalChainError
    |   +-- UnauthorizedApproverError
    |
    +-- FilingNotFoundError
    +-- ConversationNotFoundError
    +-- DocumentNotFoundError
    +-- ImmutabilityViolationError
    |
    +-- JobError
    |   +-- JobNotRegisteredError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Workflow        | WORKFLOW_NOT_FOUND          | Definition ID doesn't exist
                | WORKFLOW_INACTIVE           | Definition has been deactivated
                | WORKFLOW_INSTANCE_NOT_FOUND | Instance ID doesn't exist
                | TRIGGER_NOT_FOUND           | Trigger ID doesn't exist
                | INVALID_TRIGGER_CONFIG      | Configuration blob can't be decoded
                | UNKNOWN_TRIGGER_TYPE        | Trigger type outside the closed set
                | INVALID_WORKFLOW_VARIABLES  | Start variables missing or malformed
----------------|-----------------------------|-----------------------------------------
State           | INVALID_STATE               | Transition out of a terminal state
----------------|-----------------------------|-----------------------------------------
Approval        | APPROVAL_NOT_FOUND          | Approval request ID doesn't exist
                | NO_APPROVAL_CHAIN           | No threshold band covers the amount
                | UNAUTHORIZED_APPROVER       | Caller may not decide or delegate the step
----------------|-----------------------------|-----------------------------------------
Compliance      | FILING_NOT_FOUND            | Filing deadline ID doesn't exist
Communication   | CONVERSATION_NOT_FOUND      | Conversation routing ID doesn't exist
Documents       | DOCUMENT_NOT_FOUND          | Document submission ID doesn't exist
Audit           | IMMUTABILITY_VIOLATION      | Append-only record modified/deleted
----------------|-----------------------------|-----------------------------------------
Jobs            | JOB_NOT_REGISTERED          | Job name not in the registry
Config          | INVALID_CONFIGURATION       | Policy file is malformed

===============================================================================
HANDLING PATTERNS
===============================================================================

Jobs treat every TaxflowError raised while processing a single record as a
business-rule failure: it is logged as a warning with the record id and the
record is skipped.  Anything else is an infrastructure failure and is logged
with a traceback.  Callers of the services catch specific classes:

    try:
        await approvals.approve(approval_id, approver_id="u-42")
    except InvalidStateError as e:
        return {"error": e.code, "status": e.current_status}
"""


class TaxflowError(Exception):
    """
    Base exception for all workflow core errors.

    All subclasses carry a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "TAXFLOW_ERROR"


# Workflow and trigger exceptions


class WorkflowError(TaxflowError):
    """Base exception for workflow definition, instance and trigger errors."""

    code: str = "WORKFLOW_ERROR"


class WorkflowNotFoundError(WorkflowError):
    """Workflow definition with given ID was not found."""

    code: str = "WORKFLOW_NOT_FOUND"

    def __init__(self, workflow_id: str):
        self.workflow_id = workflow_id
        super().__init__(f"Workflow not found: {workflow_id}")


class WorkflowInactiveError(WorkflowError):
    """Workflow definition exists but is deactivated."""

    code: str = "WORKFLOW_INACTIVE"

    def __init__(self, workflow_id: str):
        self.workflow_id = workflow_id
        super().__init__(f"Workflow is inactive: {workflow_id}")


class WorkflowInstanceNotFoundError(WorkflowError):
    """Workflow instance with given ID was not found."""

    code: str = "WORKFLOW_INSTANCE_NOT_FOUND"

    def __init__(self, instance_id: str):
        self.instance_id = instance_id
        super().__init__(f"Workflow instance not found: {instance_id}")


class TriggerNotFoundError(WorkflowError):
    """Trigger with given ID was not found."""

    code: str = "TRIGGER_NOT_FOUND"

    def __init__(self, trigger_id: str):
        self.trigger_id = trigger_id
        super().__init__(f"Trigger not found: {trigger_id}")


class InvalidTriggerConfigError(WorkflowError):
    """Trigger configuration blob does not decode to a known shape."""

    code: str = "INVALID_TRIGGER_CONFIG"

    def __init__(self, trigger_type: str, configuration: object, reason: str):
        self.trigger_type = trigger_type
        self.configuration = configuration
        self.reason = reason
        super().__init__(
            f"Invalid {trigger_type} trigger configuration {configuration!r}: {reason}"
        )


class UnknownTriggerTypeError(WorkflowError):
    """Trigger type is outside the supported set."""

    code: str = "UNKNOWN_TRIGGER_TYPE"

    def __init__(self, trigger_type: str):
        self.trigger_type = trigger_type
        super().__init__(f"Unknown trigger type: {trigger_type}")


class WorkflowVariablesError(WorkflowError):
    """Variables passed to a workflow start are missing or malformed."""

    code: str = "INVALID_WORKFLOW_VARIABLES"

    def __init__(self, category: str, reason: str):
        self.category = category
        self.reason = reason
        super().__init__(f"Invalid variables for {category} workflow: {reason}")


# State machine exceptions


class InvalidStateError(TaxflowError):
    """
    Operation is not allowed from the entity's current status.

    Raised for every attempt to move a record out of a terminal state,
    e.g. approving a request that was already rejected.
    """

    code: str = "INVALID_STATE"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        current_status: str,
        attempted: str,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.current_status = current_status
        self.attempted = attempted
        super().__init__(
            f"Cannot {attempted} {entity_type} {entity_id}: "
            f"status is '{current_status}'"
        )


# Approval exceptions


class ApprovalError(TaxflowError):
    """Base exception for payment approval errors."""

    code: str = "APPROVAL_ERROR"


class ApprovalNotFoundError(ApprovalError):
    """Payment approval request with given ID was not found."""

    code: str = "APPROVAL_NOT_FOUND"

    def __init__(self, approval_id: str):
        self.approval_id = approval_id
        super().__init__(f"Approval request not found: {approval_id}")


class NoApprovalChainError(ApprovalError):
    """No configured threshold band covers the requested amount."""

    code: str = "NO_APPROVAL_CHAIN"

    def __init__(self, amount: str):
        self.amount = amount
        super().__init__(f"No approval chain configured for amount {amount}")


class UnauthorizedApproverError(ApprovalError):
    """Caller may not decide the current step of an approval request.

    Raised when the caller is neither the current approver nor acting in
    the role the step requires, when a caller tries to decide a second
    step of the same request, and when someone other than the current
    approver tries to delegate.
    """

    code: str = "UNAUTHORIZED_APPROVER"

    def __init__(self, approval_id: str, approver_id: str, required_role: str):
        self.approval_id = approval_id
        self.approver_id = approver_id
        self.required_role = required_role
        super().__init__(
            f"{approver_id} is not the current approver for {approval_id} "
            f"(requires {required_role})"
        )


# Record lookup exceptions


class FilingNotFoundError(TaxflowError):
    """Filing deadline with given ID was not found."""

    code: str = "FILING_NOT_FOUND"

    def __init__(self, filing_id: str):
        self.filing_id = filing_id
        super().__init__(f"Filing not found: {filing_id}")


class ConversationNotFoundError(TaxflowError):
    """Conversation routing record with given ID was not found."""

    code: str = "CONVERSATION_NOT_FOUND"

    def __init__(self, conversation_id: str):
        self.conversation_id = conversation_id
        super().__init__(f"Conversation not found: {conversation_id}")


class DocumentNotFoundError(TaxflowError):
    """Document submission with given ID was not found."""

    code: str = "DOCUMENT_NOT_FOUND"

    def __init__(self, submission_id: str):
        self.submission_id = submission_id
        super().__init__(f"Document submission not found: {submission_id}")


# Audit trail exceptions


class ImmutabilityViolationError(TaxflowError):
    """Attempt to modify or delete an append-only audit record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"{entity_type} {entity_id}: {reason}")


# Job exceptions


class JobError(TaxflowError):
    """Base exception for periodic job errors."""

    code: str = "JOB_ERROR"


class JobNotRegisteredError(JobError):
    """Job name is not in the registry."""

    code: str = "JOB_NOT_REGISTERED"

    def __init__(self, job_name: str, available: list[str]):
        self.job_name = job_name
        self.available = available
        super().__init__(
            f"Job not registered: {job_name}. Available: {', '.join(available)}"
        )


# Configuration exceptions


class ConfigurationError(TaxflowError):
    """Policy configuration is malformed."""

    code: str = "INVALID_CONFIGURATION"

    def __init__(self, section: str, reason: str):
        self.section = section
        self.reason = reason
        super().__init__(f"Invalid configuration in '{section}': {reason}")
