# src/chunksync/engine/tracker.py
"""LifecycleTracker: bridges job runtime events to chunk state.

One tracker per sync. It listens to every runtime event, ignores jobs
that do not belong to its sync, and:

    before_execute  -> chunk scheduled -> started (job id, start time)
    completed       -> chunk running -> finished (end time), then group check
    failed          -> chunk -> failed (end time), failure handler, group check

The group check asks the runtime whether any job of the group is still
pending or running. When none is, the sync's complete hook is scheduled
as an empty-argument job in the same group. Two workers finishing at the
same instant can both see "zero remaining"; the complete handler is
idempotent. This tracker enqueues once per group among the last
SIGNALLED_GROUPS_KEPT groups it signalled, so a long-lived worker does not
remember every group it ever saw.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Callable

import structlog

from chunksync.contracts import (
    OPEN_JOB_STATUSES,
    ChunkHandlerFailureError,
    ChunkNotFoundError,
    ChunkStatus,
    JobDescriptor,
    JobPhase,
    JobRuntime,
)
from chunksync.core.chunks import ChunkStore
from chunksync.engine.registry import hook_name

logger = structlog.get_logger(__name__)

# Receives the failed job and the exception raised by the sync handler
FailureHandler = Callable[[JobDescriptor, BaseException], None]

# Phases whose completion can leave a group without open work
_WORK_PHASES = (JobPhase.SPLIT, JobPhase.PROCESS_CHUNK, JobPhase.FETCH)

# Most recent groups whose complete hook this worker already enqueued
SIGNALLED_GROUPS_KEPT = 256


class LifecycleTracker:
    """Runtime listener that owns the chunk lifecycle of one sync."""

    def __init__(
        self,
        sync_name: str,
        store: ChunkStore,
        runtime: JobRuntime,
        on_fail: FailureHandler | None = None,
    ) -> None:
        self._name = sync_name
        self._store = store
        self._runtime = runtime
        self._on_fail = on_fail
        self._group: str | None = None
        self._signalled: deque[str] = deque(maxlen=SIGNALLED_GROUPS_KEPT)
        self._chunk_hook = hook_name(sync_name, JobPhase.PROCESS_CHUNK)
        self._complete_hook = hook_name(sync_name, JobPhase.COMPLETE)
        self._work_hooks = frozenset(hook_name(sync_name, phase) for phase in _WORK_PHASES)

    @property
    def group(self) -> str | None:
        """Group adopted from the first job of this sync seen since the last reset."""
        return self._group

    def reset(self) -> None:
        """Forget the adopted group so the next observed job sets it."""
        self._group = None

    def belongs(self, job: JobDescriptor) -> bool:
        """A job belongs to this sync iff its hook contains the sync name."""
        return self._name in job.hook

    def _observe(self, job_id: str) -> JobDescriptor | None:
        job = self._runtime.fetch_job(job_id)
        if not self.belongs(job):
            return None
        if self._group is None:
            self._group = job.group
        return job

    # === JobListener ===

    def before_execute(self, job_id: str) -> None:
        job = self._observe(job_id)
        if job is None or job.hook != self._chunk_hook or job.chunk_id is None:
            return

        chunk = self._store.get(job.chunk_id)
        if chunk.status != ChunkStatus.SCHEDULED:
            # Runtime redelivery: the chunk already left 'scheduled'
            logger.warning("Chunk job redelivered", chunk_id=chunk.id, job_id=job_id, status=chunk.status.value)
            return
        self._store.mark_started(chunk.id, job_id)

    def completed(self, job_id: str) -> None:
        job = self._observe(job_id)
        if job is None or job.hook not in self._work_hooks:
            return

        if job.hook == self._chunk_hook and job.chunk_id is not None:
            if self._store.get(job.chunk_id).status == ChunkStatus.FINISHED:
                logger.debug("Duplicate completion ignored", chunk_id=job.chunk_id, job_id=job_id)
            else:
                self._store.mark_finished(job.chunk_id)
        self._maybe_complete_group(job.group)

    def failed(self, job_id: str, error: BaseException) -> None:
        job = self._observe(job_id)
        if job is None or job.hook not in self._work_hooks:
            return

        if job.hook == self._chunk_hook and job.chunk_id is not None:
            self._fail_chunk(job.chunk_id, job_id)

        original = error.original if isinstance(error, ChunkHandlerFailureError) else error
        logger.error(
            "Sync job failed",
            sync=self._name,
            job_id=job_id,
            hook=job.hook,
            group=job.group,
            chunk_id=job.chunk_id,
            error=str(original),
            error_type=type(original).__name__,
        )
        if self._on_fail is not None:
            self._on_fail(job, original)
        self._maybe_complete_group(job.group)

    def _fail_chunk(self, chunk_id: int, job_id: str) -> None:
        try:
            chunk = self._store.get(chunk_id)
        except ChunkNotFoundError:
            # Purged while its job was still queued; nothing left to stamp
            logger.warning("Failed job references a missing chunk", chunk_id=chunk_id, job_id=job_id)
            return
        if chunk.status.is_terminal:
            return
        if chunk.status == ChunkStatus.SCHEDULED:
            # Failed before it was stamped started; keep job_id and start set
            self._store.mark_started(chunk_id, job_id)
        self._store.mark_failed(chunk_id)

    def _maybe_complete_group(self, group: str) -> None:
        if group in self._signalled:
            return
        if self._runtime.query_jobs(group, OPEN_JOB_STATUSES, limit=1):
            return

        self._signalled.append(group)
        job_id = self._runtime.schedule(self._complete_hook, {}, group)
        logger.info("Group complete", sync=self._name, group=group, job_id=job_id)
