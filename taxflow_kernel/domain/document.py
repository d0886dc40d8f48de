"""
Document submission domain types (``taxflow_kernel.domain.document``).

A client document is submitted, verified by a reviewer (which moves it to
``under_review`` while it awaits sign-off) and then approved or rejected.
Rejection is possible from either open state.

Pure value objects.  ZERO I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID


class DocumentStatus(str, Enum):
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"


DOCUMENT_TRANSITIONS: dict[DocumentStatus, frozenset[DocumentStatus]] = {
    DocumentStatus.SUBMITTED: frozenset({
        DocumentStatus.UNDER_REVIEW,
        DocumentStatus.REJECTED,
    }),
    DocumentStatus.UNDER_REVIEW: frozenset({
        DocumentStatus.APPROVED,
        DocumentStatus.REJECTED,
    }),
    DocumentStatus.APPROVED: frozenset(),
    DocumentStatus.REJECTED: frozenset(),
}

TERMINAL_DOCUMENT_STATUSES: frozenset[DocumentStatus] = frozenset({
    DocumentStatus.APPROVED,
    DocumentStatus.REJECTED,
})


@dataclass(frozen=True)
class DocumentSubmission:
    """Snapshot of a document submission."""

    submission_id: UUID
    document_reference: str
    client_reference: str
    document_type: str
    status: DocumentStatus
    submitted_by: str | None = None
    submitted_at: datetime | None = None
    verified_by: str | None = None
    verified_at: datetime | None = None
    verification_notes: str | None = None
    completed_at: datetime | None = None
    completed_by: str | None = None
    rejection_reason: str | None = None
    workflow_instance_id: UUID | None = None
    archived_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_DOCUMENT_STATUSES
