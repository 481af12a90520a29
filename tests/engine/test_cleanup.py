"""Tests for the chunksync/cleanup hook."""

from chunksync.core.chunks import ChunkStore
from chunksync.core.clock import MockClock
from chunksync.core.config import RetentionSettings
from chunksync.core.retention import ChunkPurger
from chunksync.engine.cleanup import register_cleanup
from chunksync.engine.registry import HandlerRegistry
from chunksync.engine.runtime import InMemoryJobRuntime

DAY = 24 * 60 * 60


class TestCleanupHook:
    def test_registered_under_namespace(self, registry: HandlerRegistry, store: ChunkStore) -> None:
        hook = register_cleanup(registry, ChunkPurger(store))
        assert hook == "chunksync/cleanup"

    def test_job_purges_with_configured_window(
        self,
        registry: HandlerRegistry,
        runtime: InMemoryJobRuntime,
        store: ChunkStore,
        clock: MockClock,
    ) -> None:
        store.create("products", "g", [1])
        clock.advance(3 * DAY)
        kept = store.create("products", "g", [2])
        hook = register_cleanup(registry, ChunkPurger(store, clock=clock), RetentionSettings(retention_days=2))
        registry.freeze()

        runtime.schedule(hook, {}, "maintenance")
        runtime.run_until_idle()

        assert [c.id for c in store.query()] == [kept.id]

    def test_job_args_override_settings(
        self,
        registry: HandlerRegistry,
        runtime: InMemoryJobRuntime,
        store: ChunkStore,
        clock: MockClock,
    ) -> None:
        store.create("products", "g", [1])
        clock.advance(3 * DAY)
        hook = register_cleanup(registry, ChunkPurger(store, clock=clock), RetentionSettings(retention_days=2))
        registry.freeze()

        runtime.schedule(hook, {"retention_days": 5, "statuses": ["scheduled"]}, "maintenance")
        runtime.run_until_idle()

        assert len(store.query()) == 1
