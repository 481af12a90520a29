# src/chunksync/engine/pagination.py
"""Paginated fetch loops that feed the chunk splitter.

Each invocation of the {name}/fetch job:

    1. waits until min_interval has passed since the previous call
    2. fetches one page at the job's cursor
    3. appends the page to the buffered records of the group
    4. cuts off as many full chunks as the buffer holds
    5. on the last page, chunks what is left; otherwise persists the
       cursor and buffer and schedules the next fetch

The cursor lives in shared state under the group key as
{index, next, buffer, last_call}, so consecutive fetches may run in
different processes.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

import structlog

from chunksync.contracts import EmptyFetchError, JobDescriptor, JobHandler, JobPhase, JobRuntime
from chunksync.core.chunks import ChunkStore
from chunksync.core.clock import DEFAULT_CLOCK, Clock
from chunksync.core.config import PaginationSettings
from chunksync.core.state import SharedStateStore
from chunksync.engine.registry import hook_name
from chunksync.engine.sync import ChunkedSync, SyncDefinition

logger = structlog.get_logger(__name__)

Cursor = int | str


@dataclass(frozen=True)
class FetchResult:
    """One fetched page.

    Attributes:
        records: Records of the page, in order
        next: Cursor of the following page, None on the last page
    """

    records: Sequence[Any] = field(default_factory=list)
    next: Cursor | None = None


Fetcher = Callable[[Cursor], FetchResult]


def next_page(index: int, total_pages: int) -> int | None:
    """Cursor after page `index` of `total_pages`."""
    return index + 1 if index < total_pages else None


def next_offset(index: int, total: int, per_page: int) -> int | None:
    """Cursor after the page starting at offset `index`."""
    return index + per_page if index + per_page < total else None


def next_url(url: str | None) -> str | None:
    """Cursor from a "next" link; empty means last page."""
    return url or None


class PaginatedSync(ChunkedSync):
    """ChunkedSync whose records come from a rate-limited paginated fetch.

    Example:
        def fetch(page):
            body = client.get("/products", params={"page": page}).json()
            return FetchResult(body["items"], next_page(page, body["pages"]))

        sync = PaginatedSync(definition, fetch, store, state, runtime)
    """

    def __init__(
        self,
        definition: SyncDefinition,
        fetcher: Fetcher,
        store: ChunkStore,
        state: SharedStateStore,
        runtime: JobRuntime,
        clock: Clock = DEFAULT_CLOCK,
        *,
        settings: PaginationSettings | None = None,
        initial_index: Cursor = 0,
    ) -> None:
        super().__init__(definition, store, state, runtime, clock)
        self._fetcher = fetcher
        self._settings = settings or PaginationSettings()
        self.initial_index = initial_index

    @property
    def min_interval(self) -> float:
        return self._settings.min_interval_seconds

    def phase_handlers(self) -> dict[JobPhase, JobHandler]:
        return {
            JobPhase.FETCH: self.handle_fetch,
            JobPhase.PROCESS_CHUNK: self.handle_process_chunk,
            JobPhase.COMPLETE: self.handle_complete,
        }

    def start(self, group: str | None = None) -> str:
        """Begin a new run by scheduling the first fetch."""
        self.tracker.reset()
        group = group or self.new_group()
        job_id = self._runtime.schedule(hook_name(self.name, JobPhase.FETCH), {"index": self.initial_index}, group)
        logger.info("Paginated sync run started", sync=self.name, group=group, job_id=job_id, index=self.initial_index)
        return group

    def cursor(self, group: str) -> dict[str, Any]:
        """Persisted {index, next, buffer, last_call} of `group` ({} if none)."""
        value = self._state.get(group)
        return value if isinstance(value, dict) else {}

    def handle_fetch(self, job: JobDescriptor) -> None:
        self.fetch(job.group, job.args.get("index", self.initial_index))

    def fetch(self, group: str, index: Cursor) -> None:
        """Fetch the page at `index` and advance the loop.

        Raises:
            EmptyFetchError: If the page holds no records
            SchedulingFailureError: If a chunk could not be scheduled
            LockTimeoutError: If the cursor could not be written
        """
        cursor = self.cursor(group)

        previous_call = cursor.get("last_call")
        if previous_call is not None:
            wait = previous_call + self.min_interval - self._clock.time()
            if wait > 0:
                logger.debug("Fetch rate limited", sync=self.name, group=group, wait=wait)
                self._clock.sleep(wait)

        result = self._fetcher(index)
        # The interval runs from the end of this call, however long it took
        last_call = self._clock.time()
        records = list(result.records)
        if not records:
            raise EmptyFetchError(f"Fetch for '{self.name}' returned no records at index {index!r}")

        chunk_size = self.definition.chunk_size
        buffer = list(cursor.get("buffer", [])) + records
        while len(buffer) >= chunk_size:
            self._splitter.schedule_chunk(self.name, group, buffer[:chunk_size])
            buffer = buffer[chunk_size:]

        if result.next is None:
            if buffer:
                self._splitter.schedule_chunk(self.name, group, buffer)
            self._state.delete(group)
            logger.info("Pagination finished", sync=self.name, group=group, index=index)
            return

        self._state.update(group, {"index": index, "next": result.next, "buffer": buffer, "last_call": last_call})
        self._schedule_fetch(group, result.next, last_call)

    def _schedule_fetch(self, group: str, index: Cursor, last_call: float) -> None:
        hook = hook_name(self.name, JobPhase.FETCH)
        if self.min_interval >= self._settings.delay_threshold_seconds:
            # Long waits become delayed jobs instead of sleeping workers
            due = math.ceil(last_call + self.min_interval)
            self._runtime.schedule_delayed(due, hook, {"index": index}, group)
            logger.debug("Next fetch delayed", sync=self.name, group=group, index=index, due=due)
        else:
            self._runtime.schedule(hook, {"index": index}, group)
