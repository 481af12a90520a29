# src/chunksync/engine/cleanup.py
"""The chunksync/cleanup hook: retention sweep as a runtime job."""

from __future__ import annotations

from chunksync.contracts import ChunkStatus, JobDescriptor, JobPhase
from chunksync.core.config import RetentionSettings
from chunksync.core.retention import ChunkPurger
from chunksync.engine.registry import HandlerRegistry

CLEANUP_NAMESPACE = "chunksync"


def register_cleanup(
    registry: HandlerRegistry,
    purger: ChunkPurger,
    settings: RetentionSettings | None = None,
) -> str:
    """Register the retention sweep under "chunksync/cleanup".

    Job args may override the configured window with "retention_days"
    and the status filter with "statuses".

    Returns:
        The hook name to schedule periodically
    """
    settings = settings or RetentionSettings()

    def handle_cleanup(job: JobDescriptor) -> None:
        retention_days = int(job.args.get("retention_days", settings.retention_days))
        raw_statuses = job.args.get("statuses")
        statuses = [ChunkStatus(s) for s in raw_statuses] if raw_statuses is not None else settings.statuses
        purger.purge(retention_days=retention_days, statuses=statuses)

    return registry.register(CLEANUP_NAMESPACE, JobPhase.CLEANUP, handle_cleanup)
