"""Core infrastructure: configuration, logging, persistence, shared state."""

from chunksync.core.chunks import ChunkStore
from chunksync.core.clock import DEFAULT_CLOCK, Clock, MockClock, SystemClock
from chunksync.core.config import ChunkSyncSettings, load_settings
from chunksync.core.database import ChunkSyncDB
from chunksync.core.logging import configure_logging
from chunksync.core.retention import ChunkPurger, PurgeResult
from chunksync.core.state import SharedStateStore, merge_values

__all__ = [
    "DEFAULT_CLOCK",
    "ChunkPurger",
    "ChunkStore",
    "ChunkSyncDB",
    "ChunkSyncSettings",
    "Clock",
    "MockClock",
    "PurgeResult",
    "SharedStateStore",
    "SystemClock",
    "configure_logging",
    "load_settings",
    "merge_values",
]
