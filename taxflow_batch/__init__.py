"""
taxflow_batch -- Periodic workflow jobs and their scheduling.

Provides the four background jobs of the workflow core (trigger
evaluation, compliance monitoring, communication escalation, archival),
a per-job single-flight lease, and an in-process asyncio scheduler that
runs each job on its cadence.

Architecture:
    taxflow_batch/ is a top-level package.  Nothing in kernel/, engines/
    or services/ imports from taxflow_batch.

Invariants:
    - Per-item isolation: each record is processed in its own session and
      committed on its own; one failure never rolls back another record.
    - Single flight: at most one run of a job at a time, across processes.
    - Clock injection: no job reads the wall clock directly.
    - Graceful shutdown: the scheduler finishes the current tick on stop.
"""
