"""Status codes and phase names used across subsystem boundaries."""

from enum import StrEnum


class ChunkStatus(StrEnum):
    """Status of a chunk.

    Stored in the database (chunks.status).

    Transitions:
        scheduled -> started -> running -> finished
        started | running -> failed
    """

    SCHEDULED = "scheduled"
    STARTED = "started"
    RUNNING = "running"
    FINISHED = "finished"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ChunkStatus.FINISHED, ChunkStatus.FAILED)


class JobStatus(StrEnum):
    """Status of a job inside the job runtime.

    Owned by the runtime, never stored by chunksync.
    """

    PENDING = "pending"
    RUNNING = "running"
    COMPLETE = "complete"
    FAILED = "failed"


class JobPhase(StrEnum):
    """Phase suffix of a hook name ("{sync_name}/{phase}").

    Values:
        SPLIT: Read the source and split it into chunks
        PROCESS_CHUNK: Feed one chunk's records to the sync handler
        FETCH: One paginated fetch call
        COMPLETE: Group-complete signal
        CLEANUP: Retention sweep over old chunks
    """

    SPLIT = "split"
    PROCESS_CHUNK = "process_chunk"
    FETCH = "fetch"
    COMPLETE = "complete"
    CLEANUP = "cleanup"


# Job states that count as "not yet done" for group completion.
OPEN_JOB_STATUSES: tuple[JobStatus, ...] = (JobStatus.PENDING, JobStatus.RUNNING)
