"""Retention sweep for chunk rows."""

from chunksync.core.retention.purge import DEFAULT_RETENTION_DAYS, ChunkPurger, PurgeResult

__all__ = ["DEFAULT_RETENTION_DAYS", "ChunkPurger", "PurgeResult"]
