# src/chunksync/core/chunks.py
"""ChunkStore: durable CRUD and the chunk status state machine.

Every transition is one guarded UPDATE keyed by chunk id:

    UPDATE chunks SET status = :target, ... WHERE id = :id AND status IN (:allowed)

so two workers can never both move the same chunk out of the same state.
Reads always hit the database; there is no cache in front of it.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any

import structlog
from sqlalchemy import Row, case, delete, func, select, update

from chunksync.contracts import (
    Chunk,
    ChunkNotFoundError,
    ChunkPayload,
    ChunkStatus,
    InvalidChunkTransitionError,
)
from chunksync.core.clock import DEFAULT_CLOCK, Clock
from chunksync.core.database import ChunkSyncDB
from chunksync.core.schema import chunks_table

logger = structlog.get_logger(__name__)

# target status -> statuses it may be entered from
_ALLOWED_FROM: dict[ChunkStatus, tuple[ChunkStatus, ...]] = {
    ChunkStatus.STARTED: (ChunkStatus.SCHEDULED,),
    ChunkStatus.RUNNING: (ChunkStatus.STARTED,),
    ChunkStatus.FINISHED: (ChunkStatus.RUNNING,),
    ChunkStatus.FAILED: (ChunkStatus.STARTED, ChunkStatus.RUNNING),
}


def _row_to_chunk(row: Row[Any]) -> Chunk:
    return Chunk(
        id=row.id,
        name=row.name,
        group=row.group_name,
        status=ChunkStatus(row.status),
        payload=ChunkPayload(row.payload),
        job_id=row.job_id,
        start=row.start,
        end=row.end,
        created_at=row.created_at,
    )


class ChunkStore:
    """Durable storage for Chunk records."""

    def __init__(self, db: ChunkSyncDB, clock: Clock = DEFAULT_CLOCK) -> None:
        self._db = db
        self._clock = clock

    def create(self, name: str, group: str, records: Iterable[Any]) -> Chunk:
        """Persist a new chunk in status 'scheduled'.

        Args:
            name: Owning sync's deterministic name
            group: Run the chunk belongs to
            records: Records of the chunk, in order

        Returns:
            The persisted chunk with its store-assigned id

        Raises:
            ValueError/TypeError: If a record is not JSON serializable
            sqlalchemy.exc.SQLAlchemyError: If the insert fails
        """
        payload = ChunkPayload.from_records(records)
        created_at = self._clock.time()
        with self._db.connection() as conn:
            result = conn.execute(
                chunks_table.insert().values(
                    name=name,
                    group_name=group,
                    status=ChunkStatus.SCHEDULED.value,
                    payload=payload.blob,
                    created_at=created_at,
                )
            )
            chunk_id = result.inserted_primary_key[0]

        return Chunk(
            id=chunk_id,
            name=name,
            group=group,
            status=ChunkStatus.SCHEDULED,
            payload=payload,
            created_at=created_at,
        )

    def get(self, chunk_id: int) -> Chunk:
        """Read the latest persisted state of a chunk.

        Raises:
            ChunkNotFoundError: If no chunk has this id
        """
        with self._db.engine.connect() as conn:
            row = conn.execute(select(chunks_table).where(chunks_table.c.id == chunk_id)).fetchone()
        if row is None:
            raise ChunkNotFoundError(chunk_id)
        return _row_to_chunk(row)

    def query(
        self,
        *,
        group: str | None = None,
        name: str | None = None,
        statuses: Sequence[ChunkStatus] | None = None,
    ) -> list[Chunk]:
        """Chunks matching all given filters, ordered by id (scheduling order)."""
        query = select(chunks_table).order_by(chunks_table.c.id)
        if group is not None:
            query = query.where(chunks_table.c.group_name == group)
        if name is not None:
            query = query.where(chunks_table.c.name == name)
        if statuses is not None:
            query = query.where(chunks_table.c.status.in_([s.value for s in statuses]))
        with self._db.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_chunk(row) for row in rows]

    def count_by_status(self, group: str) -> dict[ChunkStatus, int]:
        """Number of chunks of `group` in each status (all statuses present, zero-filled)."""
        query = (
            select(chunks_table.c.status, func.count())
            .where(chunks_table.c.group_name == group)
            .group_by(chunks_table.c.status)
        )
        with self._db.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        counts = dict.fromkeys(ChunkStatus, 0)
        for status, count in rows:
            counts[ChunkStatus(status)] = count
        return counts

    # === Transitions ===

    def mark_started(self, chunk_id: int, job_id: str) -> bool:
        """scheduled -> started; records the job id and start time."""
        return self._transition(
            chunk_id,
            ChunkStatus.STARTED,
            {"job_id": job_id, "start": self._clock.time()},
        )

    def mark_running(self, chunk_id: int) -> bool:
        """started -> running; the handler began consuming the payload."""
        return self._transition(chunk_id, ChunkStatus.RUNNING, {})

    def mark_finished(self, chunk_id: int) -> bool:
        """running -> finished; records the end time."""
        return self._transition(chunk_id, ChunkStatus.FINISHED, self._end_values())

    def mark_failed(self, chunk_id: int) -> bool:
        """started | running -> failed; records the end time."""
        return self._transition(chunk_id, ChunkStatus.FAILED, self._end_values())

    def _end_values(self) -> dict[str, Any]:
        now = self._clock.time()
        # Wall clocks can step backwards; end must never precede start.
        return {"end": case((chunks_table.c.start > now, chunks_table.c.start), else_=now)}

    def _transition(self, chunk_id: int, target: ChunkStatus, values: dict[str, Any]) -> bool:
        """Apply one guarded status change.

        Returns:
            True if the row changed, False if the chunk was already in `target`

        Raises:
            ChunkNotFoundError: If no chunk has this id
            InvalidChunkTransitionError: If the current status does not allow `target`
        """
        allowed = [s.value for s in _ALLOWED_FROM[target]]
        with self._db.connection() as conn:
            result = conn.execute(
                update(chunks_table)
                .where(chunks_table.c.id == chunk_id, chunks_table.c.status.in_(allowed))
                .values(status=target.value, **values)
            )
            if result.rowcount == 1:
                logger.debug("Chunk status changed", chunk_id=chunk_id, status=target.value)
                return True

            current = conn.execute(select(chunks_table.c.status).where(chunks_table.c.id == chunk_id)).scalar_one_or_none()

        if current is None:
            raise ChunkNotFoundError(chunk_id)
        if current == target.value:
            logger.debug("Chunk already in target status", chunk_id=chunk_id, status=current)
            return False
        raise InvalidChunkTransitionError(chunk_id, current, target.value)

    # === Retention ===

    def delete_older_than(self, cutoff: float, statuses: Sequence[ChunkStatus] | None = None) -> int:
        """Delete chunks created at or before `cutoff` (epoch seconds).

        Args:
            cutoff: Chunks created at or before this are deleted
            statuses: Optional status filter

        Returns:
            Number of deleted rows
        """
        stmt = delete(chunks_table).where(chunks_table.c.created_at <= cutoff)
        if statuses is not None:
            stmt = stmt.where(chunks_table.c.status.in_([s.value for s in statuses]))
        with self._db.connection() as conn:
            result = conn.execute(stmt)
        return result.rowcount
