"""
taxflow_services.document_management -- Client document submissions.

Responsibility:
    Take in a client document, have an Associate verify it and a Manager
    sign it off, and tell each of them (and the submitter) when it is
    their turn.

Architecture position:
    Services -- stateful orchestration over kernel models.  Session-scoped;
    the caller owns the transaction.

Invariants enforced:
    - Lifecycle follows DOCUMENT_TRANSITIONS: Submitted -> UnderReview ->
      Approved | Rejected, with rejection also allowed straight from
      Submitted.  Terminal submissions never change state.
    - ``completed_at`` and ``completed_by`` are set exactly once, when the
      submission becomes terminal.
    - A linked workflow instance is completed when the submission is
      approved or rejected.

Failure modes:
    - DocumentNotFoundError for an unknown submission id.
    - InvalidStateError for an out-of-order status change.
    - Notification failures are logged and never raised.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taxflow_kernel.domain.approval import Role
from taxflow_kernel.domain.clock import Clock, SystemClock
from taxflow_kernel.domain.document import (
    DOCUMENT_TRANSITIONS,
    DocumentStatus,
    DocumentSubmission,
)
from taxflow_kernel.domain.notification import Notification, Severity
from taxflow_kernel.exceptions import DocumentNotFoundError, InvalidStateError
from taxflow_kernel.logging_config import get_logger
from taxflow_kernel.models.document import DocumentSubmissionModel
from taxflow_kernel.services.workflow_instance_service import WorkflowInstanceService
from taxflow_services.notifications import (
    HandlerDirectory,
    LoggingNotifier,
    Notifier,
    StaticHandlerDirectory,
    dispatch_notification,
)

logger = get_logger("services.document_management")

VERIFIER_ROLE = Role.ASSOCIATE
APPROVER_ROLE = Role.MANAGER


class DocumentManagementWorkflow:
    def __init__(
        self,
        session: AsyncSession,
        notifier: Notifier | None = None,
        clock: Clock | None = None,
        directory: HandlerDirectory | None = None,
    ):
        self._session = session
        self._notifier = notifier or LoggingNotifier()
        self._clock = clock or SystemClock()
        self._directory = directory or StaticHandlerDirectory()

    # =========================================================================
    # Commands
    # =========================================================================

    async def submit_document(
        self,
        document_reference: str,
        client_reference: str,
        document_type: str,
        submitted_by: str,
        workflow_instance_id: UUID | None = None,
    ) -> DocumentSubmission:
        """Record a new submission and ask a verifier to look at it."""
        now = self._clock.now()
        model = DocumentSubmissionModel(
            document_reference=document_reference,
            client_reference=client_reference,
            document_type=document_type,
            status=DocumentStatus.SUBMITTED.value,
            submitted_by=submitted_by,
            submitted_at=now,
            workflow_instance_id=workflow_instance_id,
        )
        model.touch(now)
        self._session.add(model)
        await self._session.flush()

        logger.info(
            "document_submitted",
            extra={
                "submission_id": str(model.id),
                "document_reference": document_reference,
                "client_reference": client_reference,
                "document_type": document_type,
                "submitted_by": submitted_by,
            },
        )
        await self._notify(
            self._directory.handler_for(VERIFIER_ROLE),
            title="Document awaiting verification",
            message=(
                f"{document_type} {document_reference} from client "
                f"{client_reference} was submitted by {submitted_by}."
            ),
        )
        return model.to_dto()

    async def verify(
        self,
        submission_id: UUID,
        verified_by: str,
        notes: str | None = None,
    ) -> DocumentSubmission:
        """Mark the document verified; it now awaits sign-off."""
        model = await self._load(submission_id)
        self._transition(model, DocumentStatus.UNDER_REVIEW, "verify")

        now = self._clock.now()
        model.verified_by = verified_by
        model.verified_at = now
        model.verification_notes = notes
        model.touch(now)
        await self._session.flush()

        logger.info(
            "document_verified",
            extra={"submission_id": str(model.id), "verified_by": verified_by},
        )
        await self._notify(
            self._directory.handler_for(APPROVER_ROLE),
            title="Document awaiting approval",
            message=(
                f"{model.document_type} {model.document_reference} was verified "
                f"by {verified_by} and awaits approval."
            ),
        )
        return model.to_dto()

    async def approve(
        self,
        submission_id: UUID,
        approved_by: str,
        comments: str | None = None,
    ) -> DocumentSubmission:
        model = await self._load(submission_id)
        self._transition(model, DocumentStatus.APPROVED, "approve")
        self._complete(model, approved_by)
        await self._session.flush()

        logger.info(
            "document_approved",
            extra={
                "submission_id": str(model.id),
                "approved_by": approved_by,
                "comments": comments,
            },
        )
        await self._complete_linked_instance(model, approved_by)
        await self._notify_submitter(
            model,
            title="Document approved",
            message=f"{model.document_type} {model.document_reference} has been approved.",
        )
        return model.to_dto()

    async def reject(
        self,
        submission_id: UUID,
        rejected_by: str,
        reason: str,
    ) -> DocumentSubmission:
        """Reject the document at whichever stage it is in."""
        model = await self._load(submission_id)
        self._transition(model, DocumentStatus.REJECTED, "reject")
        model.rejection_reason = reason
        self._complete(model, rejected_by)
        await self._session.flush()

        logger.info(
            "document_rejected",
            extra={
                "submission_id": str(model.id),
                "rejected_by": rejected_by,
                "reason": reason,
            },
        )
        await self._complete_linked_instance(model, rejected_by)
        await self._notify_submitter(
            model,
            title="Document rejected",
            message=(
                f"{model.document_type} {model.document_reference} was "
                f"rejected: {reason}"
            ),
            severity=Severity.WARNING,
        )
        return model.to_dto()

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_submission(self, submission_id: UUID) -> DocumentSubmission:
        return (await self._load(submission_id)).to_dto()

    async def list_client_submissions(self, client_reference: str) -> list[DocumentSubmission]:
        """Newest first."""
        result = await self._session.execute(
            select(DocumentSubmissionModel)
            .where(DocumentSubmissionModel.client_reference == client_reference)
            .order_by(DocumentSubmissionModel.submitted_at.desc())
        )
        return [m.to_dto() for m in result.scalars().all()]

    async def list_pending_verification(self) -> list[DocumentSubmission]:
        return await self._list_by_status(DocumentStatus.SUBMITTED)

    async def list_pending_approval(self) -> list[DocumentSubmission]:
        return await self._list_by_status(DocumentStatus.UNDER_REVIEW)

    # =========================================================================
    # Internal
    # =========================================================================

    async def _list_by_status(self, status: DocumentStatus) -> list[DocumentSubmission]:
        result = await self._session.execute(
            select(DocumentSubmissionModel)
            .where(DocumentSubmissionModel.status == status.value)
            .order_by(DocumentSubmissionModel.submitted_at)
        )
        return [m.to_dto() for m in result.scalars().all()]

    async def _load(self, submission_id: UUID) -> DocumentSubmissionModel:
        model = await self._session.get(DocumentSubmissionModel, submission_id)
        if model is None:
            raise DocumentNotFoundError(str(submission_id))
        return model

    @staticmethod
    def _transition(
        model: DocumentSubmissionModel,
        new_status: DocumentStatus,
        attempted: str,
    ) -> None:
        current = DocumentStatus(model.status)
        if new_status not in DOCUMENT_TRANSITIONS[current]:
            raise InvalidStateError(
                entity_type="DocumentSubmission",
                entity_id=str(model.id),
                current_status=current.value,
                attempted=attempted,
            )
        model.status = new_status.value

    def _complete(self, model: DocumentSubmissionModel, actor: str) -> None:
        now = self._clock.now()
        model.completed_at = now
        model.completed_by = actor
        model.touch(now)

    async def _complete_linked_instance(
        self,
        model: DocumentSubmissionModel,
        actor: str,
    ) -> None:
        if model.workflow_instance_id is None:
            return
        instances = WorkflowInstanceService(self._session, clock=self._clock)
        instance = await instances.get_instance(model.workflow_instance_id)
        if not instance.is_terminal:
            await instances.complete_instance(
                instance.instance_id,
                completed_by=actor,
                result={"document_status": model.status},
            )

    async def _notify_submitter(
        self,
        model: DocumentSubmissionModel,
        title: str,
        message: str,
        severity: Severity = Severity.INFO,
    ) -> None:
        if model.submitted_by is None:
            return
        await self._notify(model.submitted_by, title, message, severity)

    async def _notify(
        self,
        recipient: str,
        title: str,
        message: str,
        severity: Severity = Severity.INFO,
    ) -> None:
        await dispatch_notification(
            self._notifier,
            Notification(recipient=recipient, title=title, message=message, severity=severity),
        )
