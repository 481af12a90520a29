# src/chunksync/engine/stats.py
"""Read-side statistics over the chunks of a group.

Nothing here writes. Durations are None whenever a timestamp they need
is missing; a duration is never derived from partial data.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from chunksync.contracts import Chunk, ChunkStatus, JobRuntime
from chunksync.core.chunks import ChunkStore

# Durations are reported in seconds, rounded to this many decimals
DURATION_PRECISION = 4


def _rounded(value: float | None) -> float | None:
    return round(value, DURATION_PRECISION) if value is not None else None


@dataclass(frozen=True)
class ChunkTiming:
    chunk_id: int
    duration: float


@dataclass(frozen=True)
class GroupStats:
    """Status breakdown and timings of one group.

    Attributes:
        group: Group the numbers describe
        total: Number of chunks in the group
        counts: Chunks per status (every status present)
        average_duration: Mean duration of chunks with both timestamps
        slowest: Longest chunk, if any chunk has a duration
        fastest: Shortest chunk, if any chunk has a duration
        duration: max(end) - min(start) over the group
    """

    group: str
    total: int
    counts: dict[ChunkStatus, int] = field(default_factory=dict)
    average_duration: float | None = None
    slowest: ChunkTiming | None = None
    fastest: ChunkTiming | None = None
    duration: float | None = None

    @property
    def finished(self) -> int:
        return self.counts.get(ChunkStatus.FINISHED, 0)

    @property
    def failed(self) -> int:
        return self.counts.get(ChunkStatus.FAILED, 0)

    def to_dict(self) -> dict[str, Any]:
        """JSON-compatible representation."""

        def timing(value: ChunkTiming | None) -> dict[str, Any] | None:
            return {"chunk_id": value.chunk_id, "duration": value.duration} if value is not None else None

        return {
            "group": self.group,
            "total": self.total,
            "counts": {status.value: count for status, count in self.counts.items()},
            "average_duration": self.average_duration,
            "slowest": timing(self.slowest),
            "fastest": timing(self.fastest),
            "duration": self.duration,
        }


class StatsAggregator:
    """Computes GroupStats from the chunk store."""

    def __init__(self, store: ChunkStore, runtime: JobRuntime | None = None) -> None:
        self._store = store
        self._runtime = runtime

    @staticmethod
    def chunk_duration(chunk: Chunk) -> float | None:
        """end - start of one chunk, None if either is missing."""
        return _rounded(chunk.duration)

    def group_duration(self, group: str) -> float | None:
        """max(end) - min(start) over the group, None if any chunk lacks a timestamp."""
        return self._group_duration(self._store.query(group=group))

    @staticmethod
    def _group_duration(chunks: list[Chunk]) -> float | None:
        if not chunks or any(chunk.start is None or chunk.end is None for chunk in chunks):
            return None
        start = min(chunk.start for chunk in chunks if chunk.start is not None)
        end = max(chunk.end for chunk in chunks if chunk.end is not None)
        return _rounded(end - start)

    def summary(self, group: str) -> GroupStats:
        chunks = self._store.query(group=group)
        counts = dict.fromkeys(ChunkStatus, 0)
        timings: list[ChunkTiming] = []
        for chunk in chunks:
            counts[chunk.status] += 1
            duration = self.chunk_duration(chunk)
            if duration is not None:
                timings.append(ChunkTiming(chunk.id, duration))

        average = _rounded(sum(t.duration for t in timings) / len(timings)) if timings else None
        return GroupStats(
            group=group,
            total=len(chunks),
            counts=counts,
            average_duration=average,
            slowest=max(timings, key=lambda t: t.duration) if timings else None,
            fastest=min(timings, key=lambda t: t.duration) if timings else None,
            duration=self._group_duration(chunks),
        )

    def failed_chunks(self, group: str) -> list[Chunk]:
        return self._store.query(group=group, statuses=[ChunkStatus.FAILED])

    def logs(self, chunk_id: int) -> list[str]:
        """Execution log of the job that ran a chunk (empty if none recorded).

        Raises:
            ChunkNotFoundError: If no chunk has this id
        """
        chunk = self._store.get(chunk_id)
        if self._runtime is None or chunk.job_id is None:
            return []
        return self._runtime.fetch_logs(chunk.job_id)
