# src/chunksync/engine/sequential.py
"""SequentialOrchestrator: run several chunked syncs one after another.

All decisions are taken from durable state. The entry "{name}_sequence"
holds:

    queue          names of runs not yet started, in order
    current        name of the run in progress (None when idle)
    current_group  group of the run in progress
    jobs_data      per-run data collected when each run completed

A run is finished when its "{run}/complete" job has executed in
`current_group`. The orchestrator listens for that event and calls
next(). When the queue is empty, next() schedules the orchestrator's
own "{name}/complete" job, whose handler hands jobs_data to
on_complete and deletes the sequence state.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any, Protocol

import structlog

from chunksync.contracts import (
    JobDescriptor,
    JobPhase,
    JobRuntime,
    RegistryError,
    SequenceInProgressError,
)
from chunksync.core.state import SharedStateStore
from chunksync.engine.registry import HandlerRegistry, hook_name
from chunksync.engine.sync import DATA_SUFFIX

logger = structlog.get_logger(__name__)

SEQUENCE_SUFFIX = "_sequence"


class StartableSync(Protocol):
    """Anything the orchestrator can run.

    new_group() names the next run; start(group) schedules its first job
    under that group.
    """

    @property
    def name(self) -> str: ...

    def new_group(self) -> str: ...

    def start(self, group: str | None = None) -> str: ...


SequenceCompletionHandler = Callable[[dict[str, Any]], None]


class SequentialOrchestrator:
    """Runs an ordered list of syncs, one group at a time."""

    def __init__(
        self,
        name: str,
        runs: Sequence[StartableSync],
        state: SharedStateStore,
        runtime: JobRuntime,
        on_complete: SequenceCompletionHandler | None = None,
    ) -> None:
        if not runs:
            raise ValueError("SequentialOrchestrator needs at least one run")
        self.name = name
        self._runs = {run.name: run for run in runs}
        if len(self._runs) != len(runs):
            raise ValueError("Run names must be unique")
        self._order = [run.name for run in runs]
        self._state = state
        self._runtime = runtime
        self._on_complete = on_complete

    @property
    def state_key(self) -> str:
        return self.name + SEQUENCE_SUFFIX

    def register(self, registry: HandlerRegistry) -> None:
        """Register the orchestrator's complete hook and subscribe to runtime events."""
        for run_name in self._order:
            if hook_name(run_name, JobPhase.COMPLETE) not in registry:
                raise RegistryError(f"Run '{run_name}' must be registered before the orchestrator")
        registry.register(self.name, JobPhase.COMPLETE, self.handle_complete)
        self._runtime.subscribe(self)

    def sequence(self) -> dict[str, Any]:
        """Persisted sequence state, with defaults for missing fields."""
        value = self._state.get(self.state_key)
        value = value if isinstance(value, dict) else {}
        return {
            "queue": list(value.get("queue", [])),
            "current": value.get("current"),
            "current_group": value.get("current_group"),
            "jobs_data": dict(value.get("jobs_data", {})),
        }

    @property
    def in_progress(self) -> bool:
        return self.sequence()["current"] is not None

    def start(self) -> None:
        """Queue every run and start the first.

        Raises:
            SequenceInProgressError: If a sequence is already running
        """
        if self.in_progress:
            raise SequenceInProgressError(f"Sequence '{self.name}' is already running")
        self._state.set(
            self.state_key,
            {"queue": list(self._order), "current": None, "current_group": None, "jobs_data": {}},
        )
        logger.info("Sequence started", sequence=self.name, runs=self._order)
        self.next()

    def next(self, group: str | None = None) -> None:
        """Record the finished run's data and start the next run.

        Args:
            group: Group of the run that just completed (None when called from start())
        """
        sequence = self.sequence()
        current = sequence["current"]

        patch: dict[str, Any] = {}
        if current is not None and group is not None:
            patch["jobs_data"] = {current: {"group": group, "data": self._state.get(group + DATA_SUFFIX)}}

        if sequence["queue"]:
            run_name, *remaining = sequence["queue"]
            run = self._runs[run_name]
            run_group = run.new_group()
            # Position and group are durable before any job of the run exists
            self._state.update(
                self.state_key,
                {**patch, "queue": remaining, "current": run_name, "current_group": run_group},
                deep_merge=True,
            )
            logger.info("Sequence run started", sequence=self.name, run=run_name, group=run_group)
            try:
                run.start(run_group)
            except Exception:
                if self.sequence()["current_group"] == run_group:
                    # Back to idle with the run still queued, so start() can retry
                    self._state.update(self.state_key, {"queue": sequence["queue"], "current": None, "current_group": None})
                logger.error("Sequence run could not be started", sequence=self.name, run=run_name, group=run_group)
                raise
            return

        self._state.update(self.state_key, {**patch, "current": None, "current_group": None}, deep_merge=True)
        job_id = self._runtime.schedule(hook_name(self.name, JobPhase.COMPLETE), {}, self.state_key)
        logger.info("Sequence finished", sequence=self.name, job_id=job_id)

    def handle_complete(self, job: JobDescriptor) -> None:
        jobs_data = self.sequence()["jobs_data"]
        if self._on_complete is not None:
            self._on_complete(jobs_data)
        self._state.delete(self.state_key)

    # === JobListener ===

    def before_execute(self, job_id: str) -> None:
        pass

    def completed(self, job_id: str) -> None:
        self._advance(self._runtime.fetch_job(job_id))

    def failed(self, job_id: str, error: BaseException) -> None:
        job = self._runtime.fetch_job(job_id)
        if self._is_current_completion(job):
            # A failed post-completion still ends the run; the sequence moves on
            logger.error("Sequence run completion failed", sequence=self.name, group=job.group, error=str(error))
        self._advance(job)

    def _is_current_completion(self, job: JobDescriptor) -> bool:
        sequence = self.sequence()
        current = sequence["current"]
        return (
            current is not None
            and job.hook == hook_name(current, JobPhase.COMPLETE)
            and job.group == sequence["current_group"]
        )

    def _advance(self, job: JobDescriptor) -> None:
        if self._is_current_completion(job):
            self.next(job.group)
