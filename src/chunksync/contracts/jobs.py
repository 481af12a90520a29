"""Job runtime contracts.

chunksync never runs jobs itself. It talks to an external asynchronous
job runtime through the JobRuntime protocol and listens to its lifecycle
events through JobListener. Jobs reference chunks by id only.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from chunksync.contracts.enums import JobStatus


@dataclass(frozen=True)
class JobDescriptor:
    """What the runtime knows about one job.

    Attributes:
        job_id: Runtime-assigned identifier
        hook: Hook name the runtime dispatches on ("{sync_name}/{phase}")
        group: Group (run) the job belongs to
        args: JSON-compatible keyword arguments for the handler
        status: Current runtime status
        scheduled_at: Epoch seconds the job becomes due (None = immediately)
    """

    job_id: str
    hook: str
    group: str
    args: dict[str, Any] = field(default_factory=dict)
    status: JobStatus = JobStatus.PENDING
    scheduled_at: float | None = None

    @property
    def chunk_id(self) -> int | None:
        """Chunk referenced by this job, if any."""
        value = self.args.get("chunk_id")
        return int(value) if value is not None else None


# Handlers receive the job being executed.
JobHandler = Callable[[JobDescriptor], None]


class JobListener(Protocol):
    """Receives runtime lifecycle events.

    The runtime updates the job's status before dispatching each event,
    so a listener querying the runtime sees the post-event state.
    """

    def before_execute(self, job_id: str) -> None: ...

    def completed(self, job_id: str) -> None: ...

    def failed(self, job_id: str, error: BaseException) -> None: ...


class JobRuntime(Protocol):
    """Operations consumed from the job runtime."""

    def schedule(self, hook: str, args: dict[str, Any], group: str) -> str:
        """Enqueue a job for immediate execution. Returns the job id."""
        ...

    def schedule_delayed(self, timestamp: float, hook: str, args: dict[str, Any], group: str) -> str:
        """Enqueue a job that becomes due at `timestamp` (epoch seconds)."""
        ...

    def query_jobs(self, group: str, statuses: Sequence[JobStatus], limit: int | None = None) -> list[str]:
        """Ids of jobs in `group` whose status is one of `statuses`."""
        ...

    def fetch_job(self, job_id: str) -> JobDescriptor:
        """Look up a job. Raises KeyError for unknown ids."""
        ...

    def fetch_logs(self, job_id: str) -> list[str]:
        """Ordered execution log messages of a job."""
        ...

    def log(self, job_id: str, message: str) -> None:
        """Append a message to a job's execution log."""
        ...

    def subscribe(self, listener: JobListener) -> None:
        """Register a lifecycle listener."""
        ...
