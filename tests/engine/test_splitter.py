"""Tests for ChunkSplitter."""

from collections.abc import Iterator
from typing import Any
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from chunksync.contracts import ChunkStatus, JobStatus, SchedulingFailureError
from chunksync.core.chunks import ChunkStore
from chunksync.engine.runtime import InMemoryJobRuntime
from chunksync.engine.splitter import ChunkSplitter, batched


class TrackingSource:
    """RecordSource that records when it is released."""

    def __init__(self, records: list[Any]) -> None:
        self._records = records
        self.release_calls = 0

    def records(self) -> Iterator[Any]:
        yield from self._records

    def release(self) -> None:
        self.release_calls += 1


class TestBatched:
    def test_final_batch_may_be_smaller(self) -> None:
        assert list(batched(range(7), 3)) == [[0, 1, 2], [3, 4, 5], [6]]

    def test_empty_input(self) -> None:
        assert list(batched([], 3)) == []

    def test_size_must_be_positive(self) -> None:
        with pytest.raises(ValueError, match="at least 1"):
            list(batched([1], 0))


class TestSplit:
    def test_twenty_three_records_into_chunks_of_ten(
        self, store: ChunkStore, runtime: InMemoryJobRuntime
    ) -> None:
        records = [{"n": n} for n in range(23)]

        chunks = ChunkSplitter(store, runtime).split(records, name="products", group="g", chunk_size=10)

        assert [len(chunk.payload) for chunk in chunks] == [10, 10, 3]
        assert all(store.get(chunk.id).status == ChunkStatus.SCHEDULED for chunk in chunks)
        assert [record for chunk in chunks for record in chunk.payload] == records

    def test_one_job_per_chunk_carrying_only_the_id(
        self, store: ChunkStore, runtime: InMemoryJobRuntime
    ) -> None:
        chunks = ChunkSplitter(store, runtime).split(range(5), name="products", group="g", chunk_size=2)

        jobs = [runtime.fetch_job(job_id) for job_id in runtime.query_jobs("g", [JobStatus.PENDING])]
        assert [job.args for job in jobs] == [{"chunk_id": chunk.id} for chunk in chunks]
        assert {job.hook for job in jobs} == {"products/process_chunk"}

    def test_chunk_limit(self, store: ChunkStore, runtime: InMemoryJobRuntime) -> None:
        chunks = ChunkSplitter(store, runtime).split(
            range(100), name="products", group="g", chunk_size=10, chunk_limit=2
        )

        assert len(chunks) == 2
        assert len(store.query(group="g")) == 2

    def test_empty_source_schedules_nothing(self, store: ChunkStore, runtime: InMemoryJobRuntime) -> None:
        source = TrackingSource([])

        chunks = ChunkSplitter(store, runtime).split(source, name="products", group="g", chunk_size=10)

        assert chunks == []
        assert source.release_calls == 1


class TestSourceRelease:
    def test_released_once_after_last_chunk(self, store: ChunkStore, runtime: InMemoryJobRuntime) -> None:
        source = TrackingSource(list(range(25)))

        ChunkSplitter(store, runtime).split(source, name="products", group="g", chunk_size=10)

        assert source.release_calls == 1

    def test_not_released_when_scheduling_fails(self, store: ChunkStore) -> None:
        runtime = MagicMock()
        runtime.schedule.side_effect = ["1", ConnectionError("queue down")]
        source = TrackingSource(list(range(25)))

        with pytest.raises(SchedulingFailureError, match="queue down"):
            ChunkSplitter(store, runtime).split(source, name="products", group="g", chunk_size=10)

        assert source.release_calls == 0


class TestPersistFailure:
    def test_no_job_for_unpersisted_chunk(self, runtime: InMemoryJobRuntime) -> None:
        failing_store = MagicMock(spec=ChunkStore)
        failing_store.create.side_effect = OperationalError("INSERT", {}, Exception("disk full"))

        with pytest.raises(SchedulingFailureError, match="Could not persist"):
            ChunkSplitter(failing_store, runtime).split([1, 2], name="products", group="g", chunk_size=1)

        assert runtime.pending() == []

    def test_unserializable_record(self, store: ChunkStore, runtime: InMemoryJobRuntime) -> None:
        with pytest.raises(SchedulingFailureError):
            ChunkSplitter(store, runtime).split([object()], name="products", group="g", chunk_size=1)

        assert runtime.pending() == []
        assert store.query(group="g") == []
