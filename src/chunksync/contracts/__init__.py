"""Shared contracts: status enums, errors, chunk and job records, protocols.

Everything that crosses a subsystem boundary is defined here so that
core/ and engine/ depend on contracts, never on each other's internals.
"""

from chunksync.contracts.chunk import Chunk, ChunkPayload, encode_records
from chunksync.contracts.enums import OPEN_JOB_STATUSES, ChunkStatus, JobPhase, JobStatus
from chunksync.contracts.errors import (
    ChunkHandlerFailureError,
    ChunkNotFoundError,
    ChunkSyncError,
    EmptyFetchError,
    InvalidChunkTransitionError,
    LockedError,
    LockTimeoutError,
    RegistryError,
    SchedulingFailureError,
    SchemaCompatibilityError,
    SequenceInProgressError,
    SourceUnavailableError,
    UnknownHookError,
)
from chunksync.contracts.jobs import JobDescriptor, JobHandler, JobListener, JobRuntime
from chunksync.contracts.sources import FileSource, IterableSource, RecordSource

__all__ = [
    "OPEN_JOB_STATUSES",
    "Chunk",
    "ChunkHandlerFailureError",
    "ChunkNotFoundError",
    "ChunkPayload",
    "ChunkStatus",
    "ChunkSyncError",
    "EmptyFetchError",
    "FileSource",
    "InvalidChunkTransitionError",
    "IterableSource",
    "JobDescriptor",
    "JobHandler",
    "JobListener",
    "JobPhase",
    "JobRuntime",
    "JobStatus",
    "LockTimeoutError",
    "LockedError",
    "RecordSource",
    "RegistryError",
    "SchedulingFailureError",
    "SchemaCompatibilityError",
    "SequenceInProgressError",
    "SourceUnavailableError",
    "UnknownHookError",
    "encode_records",
]
