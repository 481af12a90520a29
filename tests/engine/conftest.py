"""Fixtures for engine tests: wiring syncs onto the in-memory runtime."""

from collections.abc import Callable
from typing import Any

import pytest

from chunksync.contracts import Chunk, ChunkPayload
from chunksync.core.chunks import ChunkStore
from chunksync.core.clock import MockClock
from chunksync.core.state import SharedStateStore
from chunksync.engine.registry import HandlerRegistry
from chunksync.engine.runtime import InMemoryJobRuntime
from chunksync.engine.sync import ChunkedSync, SyncDefinition


class CollectingHandler:
    """Chunk handler that keeps every record it was given."""

    def __init__(self, fail_on: Callable[[Any], bool] | None = None) -> None:
        self.records: list[Any] = []
        self.chunk_ids: list[int] = []
        self._fail_on = fail_on

    def __call__(self, payload: ChunkPayload, chunk: Chunk) -> None:
        self.chunk_ids.append(chunk.id)
        for record in payload:
            if self._fail_on is not None and self._fail_on(record):
                raise ValueError(f"cannot import {record!r}")
            self.records.append(record)


@pytest.fixture
def make_sync(
    store: ChunkStore,
    state: SharedStateStore,
    registry: HandlerRegistry,
    runtime: InMemoryJobRuntime,
    clock: MockClock,
) -> Callable[..., ChunkedSync]:
    """Build and register a ChunkedSync; the caller freezes the registry."""

    def factory(**fields: Any) -> ChunkedSync:
        fields.setdefault("name", "products")
        fields.setdefault("chunk_size", 10)
        fields.setdefault("handler", CollectingHandler())
        sync = ChunkedSync(SyncDefinition(**fields), store, state, runtime, clock)
        sync.register(registry)
        return sync

    return factory
