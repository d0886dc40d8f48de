"""
JobLeaseService -- Single-flight guard for periodic jobs.

Contract:
    ``hold(job_name, holder, ttl_seconds)`` is an async context manager
    yielding True when this caller may run the job and False when a run
    is already in progress here or in another process.

Architecture: taxflow_batch/services.  Owns its own short transactions.

Invariants enforced:
    - At most one live lease row per job (UNIQUE job_name).
    - A lease is taken over only once it has expired, so a crashed
      holder blocks the job for at most ``ttl_seconds``.
    - Within one process an asyncio.Lock per job rejects overlap without
      a database round trip.

Failure modes:
    - Losing an INSERT race surfaces as IntegrityError and is reported as
      "not acquired".  Other database errors propagate.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import AsyncIterator

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from taxflow_kernel.db.engine import session_scope
from taxflow_kernel.domain.clock import Clock, SystemClock
from taxflow_kernel.logging_config import get_logger
from taxflow_kernel.models.lease import JobLeaseModel

logger = get_logger("batch.lease")


class JobLeaseService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._locks: dict[str, asyncio.Lock] = {}

    async def acquire(self, job_name: str, holder: str, ttl_seconds: int) -> bool:
        """Take the lease if it is free, expired, or already ours."""
        now = self._clock.now()
        expires_at = now + timedelta(seconds=ttl_seconds)

        try:
            async with session_scope(self._session_factory) as session:
                result = await session.execute(
                    update(JobLeaseModel)
                    .where(JobLeaseModel.job_name == job_name)
                    .where(or_(
                        JobLeaseModel.expires_at <= now,
                        JobLeaseModel.holder == holder,
                    ))
                    .values(holder=holder, acquired_at=now, expires_at=expires_at)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 1:
                    acquired = True
                else:
                    existing = await session.scalar(
                        select(JobLeaseModel.id).where(JobLeaseModel.job_name == job_name)
                    )
                    acquired = existing is None
                    if acquired:
                        session.add(JobLeaseModel(
                            job_name=job_name,
                            holder=holder,
                            acquired_at=now,
                            expires_at=expires_at,
                        ))
                        await session.flush()
        except IntegrityError:
            acquired = False

        logger.debug(
            "job_lease_acquire",
            extra={"lease_job": job_name, "holder": holder, "acquired": acquired},
        )
        return acquired

    async def release(self, job_name: str, holder: str) -> None:
        async with session_scope(self._session_factory) as session:
            await session.execute(
                delete(JobLeaseModel)
                .where(JobLeaseModel.job_name == job_name)
                .where(JobLeaseModel.holder == holder)
                .execution_options(synchronize_session=False)
            )

    @asynccontextmanager
    async def hold(
        self,
        job_name: str,
        holder: str,
        ttl_seconds: int,
    ) -> AsyncIterator[bool]:
        lock = self._locks.setdefault(job_name, asyncio.Lock())
        if lock.locked():
            yield False
            return

        async with lock:
            acquired = await self.acquire(job_name, holder, ttl_seconds)
            try:
                yield acquired
            finally:
                if acquired:
                    await self.release(job_name, holder)
