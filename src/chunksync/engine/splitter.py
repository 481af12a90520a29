# src/chunksync/engine/splitter.py
"""ChunkSplitter: turns a record source into persisted, scheduled chunks.

For each consecutive group of at most chunk_size records:
    1. persist the chunk (status 'scheduled')
    2. schedule exactly one process_chunk job carrying only the chunk id

A chunk that failed to persist is never scheduled. The source is
released once, after the last chunk has been scheduled; a failed split
leaves the source in place so the run can be retried.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from itertools import islice
from typing import Any

import structlog
from sqlalchemy.exc import SQLAlchemyError

from chunksync.contracts import Chunk, IterableSource, JobPhase, JobRuntime, RecordSource, SchedulingFailureError
from chunksync.core.chunks import ChunkStore
from chunksync.engine.registry import hook_name

logger = structlog.get_logger(__name__)


def batched(records: Iterable[Any], size: int) -> Iterator[list[Any]]:
    """Consecutive lists of at most `size` records, in arrival order."""
    if size < 1:
        raise ValueError(f"chunk size must be at least 1, got {size}")
    iterator = iter(records)
    while batch := list(islice(iterator, size)):
        yield batch


class ChunkSplitter:
    """Persists and schedules chunks for one store/runtime pair."""

    def __init__(self, store: ChunkStore, runtime: JobRuntime) -> None:
        self._store = store
        self._runtime = runtime

    def schedule_chunk(self, name: str, group: str, records: Iterable[Any]) -> Chunk:
        """Persist one chunk and schedule its process_chunk job.

        Raises:
            SchedulingFailureError: If persisting or enqueueing failed
        """
        try:
            chunk = self._store.create(name, group, records)
        except (SQLAlchemyError, ValueError, TypeError) as e:
            raise SchedulingFailureError(f"Could not persist chunk for '{name}' in group '{group}': {e}") from e

        try:
            job_id = self._runtime.schedule(hook_name(name, JobPhase.PROCESS_CHUNK), {"chunk_id": chunk.id}, group)
        except Exception as e:
            raise SchedulingFailureError(f"Could not schedule chunk {chunk.id} for '{name}': {e}") from e

        logger.debug("Chunk scheduled", chunk_id=chunk.id, job_id=job_id, group=group, sync=name)
        return chunk

    def split(
        self,
        source: RecordSource | Iterable[Any],
        *,
        name: str,
        group: str,
        chunk_size: int,
        chunk_limit: int = 0,
    ) -> list[Chunk]:
        """Split `source` into chunks and schedule one job per chunk.

        Args:
            source: RecordSource, or any iterable of records
            name: Owning sync's name
            group: Run the chunks belong to
            chunk_size: Maximum records per chunk
            chunk_limit: Stop after this many chunks (0 = no limit)

        Returns:
            Scheduled chunks in scheduling order

        Raises:
            SchedulingFailureError: If a chunk could not be persisted or scheduled
            SourceUnavailableError: If the source cannot be read
        """
        if not isinstance(source, RecordSource):
            source = IterableSource(source)

        chunks: list[Chunk] = []
        for batch in batched(source.records(), chunk_size):
            if chunk_limit and len(chunks) >= chunk_limit:
                logger.info("Chunk limit reached, remaining records skipped", sync=name, group=group, chunk_limit=chunk_limit)
                break
            chunks.append(self.schedule_chunk(name, group, batch))

        source.release()
        logger.info(
            "Source split into chunks",
            sync=name,
            group=group,
            chunks=len(chunks),
            records=sum(len(chunk.payload) for chunk in chunks),
        )
        return chunks
