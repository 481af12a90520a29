"""Orchestration engine: handler registry, runtime, splitting, lifecycle
tracking, pagination, sequential runs and statistics."""

from chunksync.engine.cleanup import register_cleanup
from chunksync.engine.pagination import FetchResult, Fetcher, PaginatedSync, next_offset, next_page, next_url
from chunksync.engine.registry import HandlerRegistry, hook_name
from chunksync.engine.runtime import InMemoryJobRuntime
from chunksync.engine.sequential import SequentialOrchestrator, StartableSync
from chunksync.engine.splitter import ChunkSplitter, batched
from chunksync.engine.stats import ChunkTiming, GroupStats, StatsAggregator
from chunksync.engine.sync import ChunkedSync, SyncDefinition
from chunksync.engine.tracker import LifecycleTracker

__all__ = [
    "ChunkSplitter",
    "ChunkTiming",
    "ChunkedSync",
    "FetchResult",
    "Fetcher",
    "GroupStats",
    "HandlerRegistry",
    "InMemoryJobRuntime",
    "LifecycleTracker",
    "PaginatedSync",
    "SequentialOrchestrator",
    "StartableSync",
    "StatsAggregator",
    "SyncDefinition",
    "batched",
    "hook_name",
    "next_offset",
    "next_page",
    "next_url",
    "register_cleanup",
]
