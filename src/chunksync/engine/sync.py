# src/chunksync/engine/sync.py
"""Sync definitions and the ChunkedSync that runs them.

A sync definition names a dataset, says how big a chunk is and what to
do with one. ChunkedSync wires it to the chunk store, the shared state,
the runtime and a lifecycle tracker, and registers three phases:

    {name}/split          read the source, persist and schedule chunks
    {name}/process_chunk  feed one chunk's records to the handler
    {name}/complete       run once per group after all work is done
"""

from __future__ import annotations

import secrets
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

import structlog

from chunksync.contracts import (
    Chunk,
    ChunkHandlerFailureError,
    ChunkPayload,
    JobDescriptor,
    JobHandler,
    JobPhase,
    JobRuntime,
    LockedError,
    RecordSource,
    SourceUnavailableError,
)
from chunksync.core.chunks import ChunkStore
from chunksync.core.clock import DEFAULT_CLOCK, Clock
from chunksync.core.state import SharedStateStore
from chunksync.engine.registry import HOOK_SEPARATOR, HandlerRegistry, hook_name
from chunksync.engine.splitter import ChunkSplitter
from chunksync.engine.tracker import FailureHandler, LifecycleTracker

logger = structlog.get_logger(__name__)

# Consumes one chunk. Records are yielded lazily, in arrival order.
ChunkHandler = Callable[[ChunkPayload, Chunk], None]
SourceFactory = Callable[[], RecordSource | Iterable[Any]]
CompletionHandler = Callable[[str], None]

COMPLETED_MARKER_SUFFIX = "_completed"
DATA_SUFFIX = "_data"


@dataclass(frozen=True)
class SyncDefinition:
    """What a sync processes and how.

    Attributes:
        name: Deterministic sync name, stable across runs
        chunk_size: Maximum records per chunk
        handler: Called once per chunk
        source: Builds the record source read by the split phase
        on_fail: Called with the failed job and the handler's exception
        on_complete: Called with the group once all of its work is done
        chunk_limit: Maximum chunks per run (0 = unlimited)
    """

    name: str
    chunk_size: int
    handler: ChunkHandler
    source: SourceFactory | None = None
    on_fail: FailureHandler | None = None
    on_complete: CompletionHandler | None = None
    chunk_limit: int = 0

    def __post_init__(self) -> None:
        if not self.name or HOOK_SEPARATOR in self.name:
            raise ValueError(f"Invalid sync name {self.name!r}: must be non-empty and must not contain '{HOOK_SEPARATOR}'")
        if self.chunk_size < 1:
            raise ValueError(f"chunk_size must be at least 1, got {self.chunk_size}")
        if self.chunk_limit < 0:
            raise ValueError(f"chunk_limit must be non-negative, got {self.chunk_limit}")


class ChunkedSync:
    """Runs one SyncDefinition on a job runtime."""

    def __init__(
        self,
        definition: SyncDefinition,
        store: ChunkStore,
        state: SharedStateStore,
        runtime: JobRuntime,
        clock: Clock = DEFAULT_CLOCK,
    ) -> None:
        self.definition = definition
        self._store = store
        self._state = state
        self._runtime = runtime
        self._clock = clock
        self._splitter = ChunkSplitter(store, runtime)
        self.tracker = LifecycleTracker(definition.name, store, runtime, on_fail=definition.on_fail)

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def group(self) -> str | None:
        """Group of the run currently observed by the tracker."""
        return self.tracker.group

    def phase_handlers(self) -> dict[JobPhase, JobHandler]:
        """Phase -> handler map registered by register()."""
        return {
            JobPhase.SPLIT: self.handle_split,
            JobPhase.PROCESS_CHUNK: self.handle_process_chunk,
            JobPhase.COMPLETE: self.handle_complete,
        }

    def register(self, registry: HandlerRegistry) -> None:
        """Register this sync's phase handlers and subscribe its tracker."""
        for phase, handler in self.phase_handlers().items():
            registry.register(self.name, phase, handler)
        self._runtime.subscribe(self.tracker)

    # === Runs ===

    def new_group(self) -> str:
        """Fresh group name: "{name}_{epoch}_{suffix}"."""
        return f"{self.name}_{int(self._clock.time())}_{secrets.token_hex(3)}"

    def start(self, group: str | None = None) -> str:
        """Begin a new run by scheduling its split job.

        Args:
            group: Group to run under (default: a fresh new_group())

        Returns:
            The group of the new run
        """
        self.tracker.reset()
        group = group or self.new_group()
        job_id = self._runtime.schedule(hook_name(self.name, JobPhase.SPLIT), {}, group)
        logger.info("Sync run started", sync=self.name, group=group, job_id=job_id)
        return group

    def split(self, source: RecordSource | Iterable[Any], group: str) -> list[Chunk]:
        """Split `source` into chunks of `group` and schedule one job per chunk."""
        return self._splitter.split(
            source,
            name=self.name,
            group=group,
            chunk_size=self.definition.chunk_size,
            chunk_limit=self.definition.chunk_limit,
        )

    # === Phase handlers ===

    def handle_split(self, job: JobDescriptor) -> None:
        if self.definition.source is None:
            raise SourceUnavailableError(f"Sync '{self.name}' has no record source")
        self.split(self.definition.source(), job.group)

    def handle_process_chunk(self, job: JobDescriptor) -> None:
        chunk_id = job.chunk_id
        if chunk_id is None:
            raise ValueError(f"Job {job.job_id} carries no chunk_id")
        chunk = self._store.get(chunk_id)
        self._store.mark_running(chunk_id)
        try:
            self.definition.handler(chunk.payload, chunk)
        except Exception as e:
            raise ChunkHandlerFailureError(chunk_id, e) from e

    def handle_complete(self, job: JobDescriptor) -> None:
        """Post-completion for a group; runs at most once per group."""
        marker = job.group + COMPLETED_MARKER_SUFFIX
        try:
            self._state.acquire(marker, ttl=self._state.settings.default_ttl_seconds)
        except LockedError:
            logger.info("Duplicate group completion skipped", sync=self.name, group=job.group, job_id=job.job_id)
            return

        logger.info("Sync run complete", sync=self.name, group=job.group)
        if self.definition.on_complete is not None:
            self.definition.on_complete(job.group)

    # === Per-run data ===

    def data(self, group: str, default: Any = None) -> Any:
        """Data accumulated for `group` by chunk handlers."""
        return self._state.get(group + DATA_SUFFIX, default)

    def update_data(
        self,
        group: str,
        patch: Mapping[str, Any],
        *,
        deep_merge: bool = False,
        concat_arrays: bool = False,
    ) -> dict[str, Any]:
        """Merge `patch` into the run's data under the shared-state lock."""
        return self._state.update(group + DATA_SUFFIX, patch, deep_merge=deep_merge, concat_arrays=concat_arrays)

    def delete_data(self, group: str) -> None:
        self._state.delete(group + DATA_SUFFIX)
