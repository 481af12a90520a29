"""Tests for LifecycleTracker: chunk stamping and group completion."""

from collections.abc import Callable
from typing import Any

import pytest

from chunksync.contracts import ChunkNotFoundError, ChunkStatus, JobDescriptor, JobStatus
from chunksync.core.chunks import ChunkStore
from chunksync.core.clock import MockClock
from chunksync.engine import tracker as tracker_module
from chunksync.engine.registry import HandlerRegistry
from chunksync.engine.runtime import InMemoryJobRuntime
from chunksync.engine.sync import ChunkedSync
from tests.engine.conftest import CollectingHandler


def _complete_jobs(runtime: InMemoryJobRuntime, group: str) -> list[str]:
    return [
        job_id
        for job_id in runtime.query_jobs(group, list(JobStatus))
        if runtime.fetch_job(job_id).hook == "products/complete"
    ]


def _chunk_job(runtime: InMemoryJobRuntime, group: str) -> str:
    return next(
        job_id
        for job_id in runtime.query_jobs(group, list(JobStatus))
        if runtime.fetch_job(job_id).hook == "products/process_chunk"
    )


class TestGroupCompletion:
    """23 records, chunk_size=10."""

    def test_group_completes_only_after_third_chunk(
        self,
        make_sync: Callable[..., ChunkedSync],
        registry: HandlerRegistry,
        runtime: InMemoryJobRuntime,
        store: ChunkStore,
    ) -> None:
        handler = CollectingHandler()
        records = [{"n": n} for n in range(23)]
        sync = make_sync(handler=handler, source=lambda: records)
        registry.freeze()

        group = sync.start()
        runtime.run_next()  # split

        chunks = store.query(group=group)
        assert [len(c.payload) for c in chunks] == [10, 10, 3]
        assert all(c.status == ChunkStatus.SCHEDULED for c in chunks)

        for done, chunk in enumerate(chunks, start=1):
            runtime.run_next()
            assert store.get(chunk.id).status == ChunkStatus.FINISHED
            assert len(_complete_jobs(runtime, group)) == (1 if done == 3 else 0)

        assert handler.records == records

    def test_chunk_stamped_with_job_and_times(
        self,
        make_sync: Callable[..., ChunkedSync],
        registry: HandlerRegistry,
        runtime: InMemoryJobRuntime,
        store: ChunkStore,
        clock: MockClock,
    ) -> None:
        def slow(payload: Any, chunk: Any) -> None:
            clock.advance(1.5)

        sync = make_sync(handler=slow, source=lambda: [1])
        registry.freeze()
        group = sync.start()
        runtime.run_next()
        chunk_job = runtime.run_next()

        assert chunk_job is not None
        chunk = store.query(group=group)[0]
        assert chunk.job_id == chunk_job.job_id
        assert chunk.duration == 1.5

    def test_group_adopted_from_first_job(
        self,
        make_sync: Callable[..., ChunkedSync],
        registry: HandlerRegistry,
        runtime: InMemoryJobRuntime,
    ) -> None:
        sync = make_sync(source=lambda: [1])
        registry.freeze()

        group = sync.start()
        assert sync.group is None

        runtime.run_next()
        assert sync.group == group

    def test_empty_source_completes_immediately(
        self,
        make_sync: Callable[..., ChunkedSync],
        registry: HandlerRegistry,
        runtime: InMemoryJobRuntime,
    ) -> None:
        completed: list[str] = []
        sync = make_sync(source=lambda: [], on_complete=completed.append)
        registry.freeze()

        group = sync.start()
        runtime.run_until_idle()

        assert completed == [group]

    def test_completion_signal_does_not_retrigger(
        self,
        make_sync: Callable[..., ChunkedSync],
        registry: HandlerRegistry,
        runtime: InMemoryJobRuntime,
    ) -> None:
        sync = make_sync(source=lambda: range(5))
        registry.freeze()

        group = sync.start()
        runtime.run_until_idle()

        assert len(_complete_jobs(runtime, group)) == 1


class TestIdempotence:
    def test_duplicate_completed_event_is_noop(
        self,
        make_sync: Callable[..., ChunkedSync],
        registry: HandlerRegistry,
        runtime: InMemoryJobRuntime,
        store: ChunkStore,
    ) -> None:
        sync = make_sync(source=lambda: [1])
        registry.freeze()
        group = sync.start()
        runtime.run_next()
        chunk_job = runtime.run_next()
        assert chunk_job is not None
        chunk_id = store.query(group=group)[0].id
        end = store.get(chunk_id).end

        sync.tracker.completed(chunk_job.job_id)

        chunk = store.get(chunk_id)
        assert chunk.status == ChunkStatus.FINISHED
        assert chunk.end == end
        assert len(_complete_jobs(runtime, group)) == 1

    def test_redelivered_job_does_not_restart_chunk(
        self,
        make_sync: Callable[..., ChunkedSync],
        registry: HandlerRegistry,
        runtime: InMemoryJobRuntime,
        store: ChunkStore,
    ) -> None:
        sync = make_sync(source=lambda: [1])
        registry.freeze()
        group = sync.start()
        runtime.run_next()
        chunk_job = runtime.run_next()
        assert chunk_job is not None
        chunk_id = store.query(group=group)[0].id

        sync.tracker.before_execute(chunk_job.job_id)

        assert store.get(chunk_id).status == ChunkStatus.FINISHED

    def test_duplicate_completion_signal_runs_handler_once(
        self,
        make_sync: Callable[..., ChunkedSync],
        registry: HandlerRegistry,
        runtime: InMemoryJobRuntime,
    ) -> None:
        """A second worker that also saw zero remaining jobs enqueues the complete hook again."""
        completed: list[str] = []
        sync = make_sync(source=lambda: [1], on_complete=completed.append)
        registry.freeze()

        group = sync.start()
        runtime.run_until_idle()
        runtime.schedule("products/complete", {}, group)
        runtime.run_until_idle()

        assert len(_complete_jobs(runtime, group)) == 2
        assert completed == [group]

    def test_only_recent_groups_are_remembered(
        self,
        monkeypatch: pytest.MonkeyPatch,
        make_sync: Callable[..., ChunkedSync],
        registry: HandlerRegistry,
        runtime: InMemoryJobRuntime,
    ) -> None:
        """A forgotten group may be signalled again; the completed marker still runs the hook once."""
        monkeypatch.setattr(tracker_module, "SIGNALLED_GROUPS_KEPT", 1)
        completed: list[str] = []
        sync = make_sync(source=lambda: [1], on_complete=completed.append)
        registry.freeze()

        first = sync.start()
        runtime.run_until_idle()
        second = sync.start()
        runtime.run_until_idle()
        first_job = _chunk_job(runtime, first)
        second_job = _chunk_job(runtime, second)

        sync.tracker.completed(second_job)
        sync.tracker.completed(first_job)
        runtime.run_until_idle()

        assert len(_complete_jobs(runtime, second)) == 1
        assert len(_complete_jobs(runtime, first)) == 2
        assert completed == [first, second]


class TestFailures:
    def test_failed_chunk_recorded_and_forwarded(
        self,
        make_sync: Callable[..., ChunkedSync],
        registry: HandlerRegistry,
        runtime: InMemoryJobRuntime,
        store: ChunkStore,
    ) -> None:
        failures: list[tuple[JobDescriptor, BaseException]] = []
        completed: list[str] = []
        handler = CollectingHandler(fail_on=lambda record: record == 13)
        sync = make_sync(
            handler=handler,
            chunk_size=10,
            source=lambda: range(25),
            on_fail=lambda job, error: failures.append((job, error)),
            on_complete=completed.append,
        )
        registry.freeze()

        group = sync.start()
        runtime.run_until_idle()

        statuses = [chunk.status for chunk in store.query(group=group)]
        assert statuses == [ChunkStatus.FINISHED, ChunkStatus.FAILED, ChunkStatus.FINISHED]
        assert store.query(group=group)[1].end is not None

        assert len(failures) == 1
        job, error = failures[0]
        assert job.hook == "products/process_chunk"
        assert isinstance(error, ValueError)
        assert "13" in str(error)

        # Siblings keep running and the run still completes
        assert completed == [group]

    def test_failure_before_start_still_marks_chunk(
        self,
        make_sync: Callable[..., ChunkedSync],
        registry: HandlerRegistry,
        runtime: InMemoryJobRuntime,
        store: ChunkStore,
    ) -> None:
        sync = make_sync(source=lambda: [1])
        registry.freeze()
        group = sync.start()
        runtime.run_next()
        chunk = store.query(group=group)[0]
        job_id = runtime.query_jobs(group, [JobStatus.PENDING])[0]

        sync.tracker.failed(job_id, RuntimeError("worker lost"))

        failed = store.get(chunk.id)
        assert failed.status == ChunkStatus.FAILED
        assert failed.job_id == job_id
        assert failed.start is not None
        assert failed.end is not None

    def test_other_syncs_jobs_ignored(
        self,
        make_sync: Callable[..., ChunkedSync],
        registry: HandlerRegistry,
        runtime: InMemoryJobRuntime,
        store: ChunkStore,
    ) -> None:
        products = make_sync(name="products", source=lambda: [1])
        orders = make_sync(name="orders", source=lambda: [2])
        registry.freeze()

        products_group = products.start()
        orders_group = orders.start()
        runtime.run_until_idle()

        assert products.group == products_group
        assert orders.group == orders_group
        assert [c.status for c in store.query(group=products_group)] == [ChunkStatus.FINISHED]
        assert [c.status for c in store.query(group=orders_group)] == [ChunkStatus.FINISHED]

    def test_chunk_purged_before_its_job_runs(
        self,
        make_sync: Callable[..., ChunkedSync],
        registry: HandlerRegistry,
        runtime: InMemoryJobRuntime,
        store: ChunkStore,
        clock: MockClock,
    ) -> None:
        failures: list[tuple[JobDescriptor, BaseException]] = []
        completed: list[str] = []
        sync = make_sync(
            source=lambda: [1],
            on_fail=lambda job, error: failures.append((job, error)),
            on_complete=completed.append,
        )
        registry.freeze()
        group = sync.start()
        runtime.run_next()
        assert store.delete_older_than(clock.time() + 1) == 1

        chunk_job = runtime.run_next()

        assert chunk_job is not None
        assert chunk_job.status == JobStatus.FAILED
        assert len(failures) == 1
        assert isinstance(failures[0][1], ChunkNotFoundError)
        runtime.run_until_idle()
        assert completed == [group]
