"""
Module: taxflow_kernel.models.document
Responsibility: ORM persistence for client document submissions and their
    verification and sign-off.

Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Status values limited by check constraint; the service layer
      enforces DOCUMENT_TRANSITIONS.
    - ``completed_at`` is set exactly when the submission becomes
      terminal; the archival job keys off it.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from taxflow_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from taxflow_kernel.domain.document import DocumentSubmission


class DocumentSubmissionModel(TrackedBase):
    __tablename__ = "document_submissions"

    __table_args__ = (
        CheckConstraint(
            "status IN ('submitted', 'under_review', 'approved', 'rejected')",
            name="ck_document_submissions_status",
        ),
        Index("ix_document_submissions_status_completed", "status", "completed_at"),
        Index("ix_document_submissions_client", "client_reference"),
    )

    document_reference: Mapped[str] = mapped_column(String(100), nullable=False)
    client_reference: Mapped[str] = mapped_column(String(100), nullable=False)
    document_type: Mapped[str] = mapped_column(String(100), nullable=False, default="general")
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="submitted")
    submitted_by: Mapped[str | None] = mapped_column(String(200), nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    verified_by: Mapped[str | None] = mapped_column(String(200), nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(nullable=True)
    verification_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_by: Mapped[str | None] = mapped_column(String(200), nullable=True)
    workflow_instance_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    archived_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<DocumentSubmission {self.document_reference} status={self.status}>"

    def to_dto(self) -> DocumentSubmission:
        from taxflow_kernel.domain.document import (
            DocumentStatus,
            DocumentSubmission as DocumentSubmissionDTO,
        )

        return DocumentSubmissionDTO(
            submission_id=self.id,
            document_reference=self.document_reference,
            client_reference=self.client_reference,
            document_type=self.document_type,
            status=DocumentStatus(self.status),
            submitted_by=self.submitted_by,
            submitted_at=self.submitted_at,
            verified_by=self.verified_by,
            verified_at=self.verified_at,
            verification_notes=self.verification_notes,
            completed_at=self.completed_at,
            completed_by=self.completed_by,
            rejection_reason=self.rejection_reason,
            workflow_instance_id=self.workflow_instance_id,
            archived_at=self.archived_at,
        )
