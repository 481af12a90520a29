# src/chunksync/core/retention/purge.py
"""Retention sweep over chunk rows and expired shared state.

Chunk rows are kept for a configurable window (default 14 days) so the
stats of recent runs stay queryable, then deleted.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from time import perf_counter

import structlog

from chunksync.contracts import ChunkStatus
from chunksync.core.chunks import ChunkStore
from chunksync.core.clock import DEFAULT_CLOCK, Clock
from chunksync.core.state import SharedStateStore

logger = structlog.get_logger(__name__)

DEFAULT_RETENTION_DAYS = 14


@dataclass
class PurgeResult:
    """Result of a purge operation."""

    deleted_count: int
    expired_state_count: int
    cutoff: float
    duration_seconds: float


class ChunkPurger:
    """Deletes chunks older than the retention window."""

    def __init__(
        self,
        store: ChunkStore,
        state: SharedStateStore | None = None,
        clock: Clock = DEFAULT_CLOCK,
    ) -> None:
        """Initialize ChunkPurger.

        Args:
            store: Chunk store to sweep
            state: Optional shared-state store whose expired entries are swept too
            clock: Time source for the cutoff
        """
        self._store = store
        self._state = state
        self._clock = clock

    def purge(
        self,
        retention_days: int = DEFAULT_RETENTION_DAYS,
        statuses: Sequence[ChunkStatus] | None = None,
        as_of: datetime | None = None,
    ) -> PurgeResult:
        """Delete chunks at least `retention_days` old.

        Args:
            retention_days: Age in days at which chunks become eligible
            statuses: Only delete chunks in these statuses (None = all)
            as_of: Reference time for the cutoff (defaults to now)

        Returns:
            PurgeResult with counts and timing
        """
        if retention_days < 0:
            raise ValueError(f"retention_days must be non-negative, got {retention_days}")

        start_time = perf_counter()
        reference = as_of.timestamp() if as_of is not None else self._clock.time()
        cutoff = reference - timedelta(days=retention_days).total_seconds()

        deleted = self._store.delete_older_than(cutoff, statuses)
        expired = self._state.purge_expired() if self._state is not None else 0

        result = PurgeResult(
            deleted_count=deleted,
            expired_state_count=expired,
            cutoff=cutoff,
            duration_seconds=perf_counter() - start_time,
        )
        logger.info(
            "Chunk retention sweep finished",
            deleted=deleted,
            expired_state=expired,
            retention_days=retention_days,
            statuses=[s.value for s in statuses] if statuses is not None else None,
        )
        return result
