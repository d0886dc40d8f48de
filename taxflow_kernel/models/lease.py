"""
Module: taxflow_kernel.models.lease
Responsibility: Per-job single-flight lease rows.

Invariants enforced:
    - UNIQUE(job_name) -- at most one lease row, hence one live holder, per job.
    - A lease whose ``expires_at`` has passed may be taken over by any holder.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from taxflow_kernel.db.base import Base


class JobLeaseModel(Base):
    __tablename__ = "job_leases"

    job_name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    holder: Mapped[str] = mapped_column(String(200), nullable=False)
    acquired_at: Mapped[datetime] = mapped_column(nullable=False)
    expires_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<JobLease {self.job_name} holder={self.holder} expires={self.expires_at}>"
