"""Exception taxonomy for chunksync.

Chunk-local failures (a handler raising) are recorded on the chunk and
never cancel sibling chunks. Orchestration-level failures (scheduling,
lock exhaustion, empty fetches) are fatal to the run.
"""

from __future__ import annotations


class ChunkSyncError(Exception):
    """Base class for all chunksync errors."""


class SourceUnavailableError(ChunkSyncError):
    """Raised when a record source is missing or unreadable."""


class SchedulingFailureError(ChunkSyncError):
    """Raised when a chunk could not be persisted or its job not enqueued.

    Fatal to the run. A job is never scheduled for a chunk that failed
    to persist.
    """


class LockedError(ChunkSyncError):
    """Raised by a non-blocking lock attempt when the lock is held."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Shared state '{key}' is locked")


class LockTimeoutError(ChunkSyncError):
    """Raised when a lock could not be acquired within the retry budget."""

    def __init__(self, key: str, attempts: int) -> None:
        self.key = key
        self.attempts = attempts
        super().__init__(f"Could not lock shared state '{key}' after {attempts} attempts")


class ChunkHandlerFailureError(ChunkSyncError):
    """Raised when a sync handler fails while consuming a chunk.

    Attributes:
        chunk_id: Chunk whose processing failed
        original: The exception raised by the handler
    """

    def __init__(self, chunk_id: int, original: BaseException) -> None:
        self.chunk_id = chunk_id
        self.original = original
        super().__init__(f"Handler failed for chunk {chunk_id}: {type(original).__name__}: {original}")


class EmptyFetchError(ChunkSyncError):
    """Raised when a paginated fetch returns no records."""


class ChunkNotFoundError(ChunkSyncError):
    """Raised when a chunk id does not exist in the store."""

    def __init__(self, chunk_id: int) -> None:
        self.chunk_id = chunk_id
        super().__init__(f"Chunk {chunk_id} not found")


class InvalidChunkTransitionError(ChunkSyncError):
    """Raised when a status change is not allowed by the chunk state machine."""

    def __init__(self, chunk_id: int, current: str, target: str) -> None:
        self.chunk_id = chunk_id
        self.current = current
        self.target = target
        super().__init__(f"Chunk {chunk_id} cannot move from '{current}' to '{target}'")


class SequenceInProgressError(ChunkSyncError):
    """Raised when a sequential run is started while another is running."""


class RegistryError(ChunkSyncError):
    """Raised on invalid handler registration."""


class UnknownHookError(ChunkSyncError):
    """Raised when a job's hook has no registered handler."""

    def __init__(self, hook: str) -> None:
        self.hook = hook
        super().__init__(f"No handler registered for hook '{hook}'")


class SchemaCompatibilityError(ChunkSyncError):
    """Raised when the database schema is incompatible with current code."""
