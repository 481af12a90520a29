# src/chunksync/engine/runtime.py
"""In-memory job runtime.

A single-process implementation of the JobRuntime contract. Production
deployments plug in their own queue; this one backs the test suite and
small local runs.

Execution order for one job:
    1. status -> running, before_execute(job_id) to listeners
    2. handler(job)
    3. status -> complete | failed, then completed(job_id) / failed(job_id, error)

Status is always written before the event is dispatched, so a listener
asking "how many jobs of this group are still open?" never counts the
job that just finished.
"""

from __future__ import annotations

import itertools
from collections.abc import Sequence
from dataclasses import replace
from typing import Any

import structlog

from chunksync.contracts import JobDescriptor, JobListener, JobStatus, RegistryError
from chunksync.core.clock import DEFAULT_CLOCK, Clock
from chunksync.engine.registry import HandlerRegistry

logger = structlog.get_logger(__name__)

DEFAULT_MAX_JOBS = 100_000


class InMemoryJobRuntime:
    """FIFO job queue with delayed jobs and lifecycle events."""

    def __init__(self, registry: HandlerRegistry, clock: Clock = DEFAULT_CLOCK) -> None:
        self._registry = registry
        self._clock = clock
        self._ids = itertools.count(1)
        self._jobs: dict[str, JobDescriptor] = {}
        self._order: list[str] = []
        self._logs: dict[str, list[str]] = {}
        self._listeners: list[JobListener] = []

    # === JobRuntime contract ===

    def schedule(self, hook: str, args: dict[str, Any], group: str) -> str:
        return self._enqueue(hook, args, group, scheduled_at=None)

    def schedule_delayed(self, timestamp: float, hook: str, args: dict[str, Any], group: str) -> str:
        return self._enqueue(hook, args, group, scheduled_at=timestamp)

    def query_jobs(self, group: str, statuses: Sequence[JobStatus], limit: int | None = None) -> list[str]:
        matches = [job_id for job_id in self._order if self._jobs[job_id].group == group and self._jobs[job_id].status in statuses]
        return matches if limit is None else matches[:limit]

    def fetch_job(self, job_id: str) -> JobDescriptor:
        return self._jobs[job_id]

    def fetch_logs(self, job_id: str) -> list[str]:
        return list(self._logs.get(job_id, []))

    def log(self, job_id: str, message: str) -> None:
        self._logs.setdefault(job_id, []).append(message)

    def subscribe(self, listener: JobListener) -> None:
        self._listeners.append(listener)

    # === Execution ===

    def _enqueue(self, hook: str, args: dict[str, Any], group: str, scheduled_at: float | None) -> str:
        job_id = str(next(self._ids))
        self._jobs[job_id] = JobDescriptor(
            job_id=job_id,
            hook=hook,
            group=group,
            args=dict(args),
            scheduled_at=scheduled_at,
        )
        self._order.append(job_id)
        self.log(job_id, "action created")
        logger.debug("Job scheduled", job_id=job_id, hook=hook, group=group, scheduled_at=scheduled_at)
        return job_id

    def _set_status(self, job_id: str, status: JobStatus) -> None:
        self._jobs[job_id] = replace(self._jobs[job_id], status=status)

    def pending(self) -> list[JobDescriptor]:
        """All pending jobs in scheduling order, due or not."""
        return [self._jobs[job_id] for job_id in self._order if self._jobs[job_id].status == JobStatus.PENDING]

    def _next_due(self) -> JobDescriptor | None:
        now = self._clock.time()
        for job in self.pending():
            if job.scheduled_at is None or job.scheduled_at <= now:
                return job
        return None

    def run_next(self) -> JobDescriptor | None:
        """Execute the oldest due job.

        Handler errors fail the job and are reported to listeners; they do
        not propagate. Errors raised by listeners on completion/failure do.

        Returns:
            The executed job (with its final status), or None if nothing is due

        Raises:
            RegistryError: If the registry has not been frozen
        """
        if not self._registry.frozen:
            raise RegistryError("Handler registry must be frozen before jobs run")

        job = self._next_due()
        if job is None:
            return None

        self._set_status(job.job_id, JobStatus.RUNNING)
        self.log(job.job_id, "action started")
        try:
            for listener in list(self._listeners):
                listener.before_execute(job.job_id)
            handler = self._registry.resolve(job.hook)
            handler(self._jobs[job.job_id])
        except Exception as e:
            self._set_status(job.job_id, JobStatus.FAILED)
            self.log(job.job_id, f"action failed: {type(e).__name__}: {e}")
            logger.warning("Job failed", job_id=job.job_id, hook=job.hook, group=job.group, error=str(e), error_type=type(e).__name__)
            for listener in list(self._listeners):
                listener.failed(job.job_id, e)
        else:
            self._set_status(job.job_id, JobStatus.COMPLETE)
            self.log(job.job_id, "action complete")
            for listener in list(self._listeners):
                listener.completed(job.job_id)

        return self._jobs[job.job_id]

    def run_until_idle(self, *, wait_for_delayed: bool = False, max_jobs: int = DEFAULT_MAX_JOBS) -> int:
        """Run jobs until none are due.

        Args:
            wait_for_delayed: When only delayed jobs remain, sleep on the
                clock until the earliest one is due and keep going
            max_jobs: Safety stop for runaway job chains

        Returns:
            Number of jobs executed

        Raises:
            RuntimeError: If max_jobs is exceeded
        """
        executed = 0
        while True:
            if self._next_due() is not None:
                # Only a job due after max_jobs have run counts as runaway
                if executed >= max_jobs:
                    raise RuntimeError(f"run_until_idle exceeded max_jobs={max_jobs}")
                self.run_next()
                executed += 1
                continue
            if not wait_for_delayed:
                return executed
            delayed = [job.scheduled_at for job in self.pending() if job.scheduled_at is not None]
            if not delayed:
                return executed
            self._clock.sleep(min(delayed) - self._clock.time())
