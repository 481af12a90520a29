"""Chunk record and its serialized payload."""

from __future__ import annotations

import json
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Any

from chunksync.contracts.enums import ChunkStatus


def encode_records(records: Iterable[Any]) -> str:
    """Serialize records as JSON lines, one record per line.

    NaN and Infinity are rejected: they do not survive a JSON round trip.

    Raises:
        ValueError: If a record contains NaN/Infinity
        TypeError: If a record is not JSON serializable
    """
    return "\n".join(json.dumps(record, allow_nan=False, separators=(",", ":")) for record in records)


class ChunkPayload:
    """Finite lazy sequence of the records in one chunk.

    Records are decoded one line at a time while iterating. Iterating
    again starts over from the first record. No random access.
    """

    __slots__ = ("_blob",)

    def __init__(self, blob: str) -> None:
        self._blob = blob

    @classmethod
    def from_records(cls, records: Iterable[Any]) -> ChunkPayload:
        return cls(encode_records(records))

    @property
    def blob(self) -> str:
        """Serialized form as stored in the chunks table."""
        return self._blob

    def __iter__(self) -> Iterator[Any]:
        start = 0
        blob = self._blob
        while start < len(blob):
            end = blob.find("\n", start)
            if end == -1:
                end = len(blob)
            line = blob[start:end]
            start = end + 1
            if line.strip():
                yield json.loads(line)

    def __len__(self) -> int:
        if not self._blob:
            return 0
        return sum(1 for line in self._blob.split("\n") if line.strip())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ChunkPayload):
            return NotImplemented
        return self._blob == other._blob

    def __hash__(self) -> int:
        return hash(self._blob)

    def __repr__(self) -> str:
        return f"ChunkPayload(records={len(self)})"


@dataclass(frozen=True)
class Chunk:
    """One persisted, independently schedulable unit of a run's data.

    Snapshot of a chunks row at read time. Status and timestamps change
    in the store; re-read with ChunkStore.get() to observe them.

    Timestamps are epoch seconds with sub-millisecond precision.
    """

    id: int
    name: str
    group: str
    status: ChunkStatus
    payload: ChunkPayload
    job_id: str | None = None
    start: float | None = None
    end: float | None = None
    created_at: float | None = None

    @property
    def duration(self) -> float | None:
        """Seconds between start and end, or None if either is missing."""
        if self.start is None or self.end is None:
            return None
        return self.end - self.start
