"""Analysis job storage.

``AnalysisJobStore`` is the boundary between the pipeline and whatever holds
job records. The pipeline only needs:

- ``update`` to be atomic per job id (a concurrent ``get`` never sees a
  half-applied update)
- status changes to be monotonic, with terminal states final
- a ``get`` after a terminal ``update`` to return the terminal state

``InMemoryJobStore`` satisfies this with a single lock around a dict and
hands out copies so callers never alias stored records.
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import UTC, datetime
from typing import Any

from codeinsight.errors import InvalidTransitionError, JobNotFoundError
from codeinsight.models.job import AnalysisJob, JobStatus, can_transition

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset(
    {
        "status",
        "started_at",
        "completed_at",
        "insights",
        "error_message",
        "warnings",
        "chunk_count",
    }
)


def _copy(job: AnalysisJob) -> AnalysisJob:
    return replace(job, insights=list(job.insights), warnings=list(job.warnings))


class AnalysisJobStore(ABC):
    """Abstract job store."""

    @abstractmethod
    def create(self, job: AnalysisJob) -> AnalysisJob:
        """Store a new job.

        Raises:
            ValueError: If a job with the same id exists
        """

    @abstractmethod
    def get(self, job_id: str) -> AnalysisJob:
        """Return a snapshot of a job.

        Raises:
            JobNotFoundError: If no such job exists
        """

    @abstractmethod
    def update(self, job_id: str, **fields: Any) -> AnalysisJob:
        """Atomically apply a partial update and return the new snapshot.

        Raises:
            JobNotFoundError: If no such job exists
            InvalidTransitionError: If the job is terminal or the status
                change would move backwards
            ValueError: If a field is not updatable
        """

    @abstractmethod
    def list_jobs(self, limit: int = 50, offset: int = 0) -> list[AnalysisJob]:
        """Return jobs newest first."""

    @abstractmethod
    def delete(self, job_id: str) -> None:
        """Remove a job.

        Raises:
            JobNotFoundError: If no such job exists
        """

    def wait_for(self, job_id: str, timeout: float | None = None) -> AnalysisJob:
        """Block until a job is terminal or the timeout elapses.

        The default implementation returns the current snapshot immediately;
        stores that can signal completion override it.
        """
        return self.get(job_id)


class InMemoryJobStore(AnalysisJobStore):
    """Thread-safe in-process job store."""

    def __init__(self) -> None:
        self._jobs: dict[str, AnalysisJob] = {}
        self._lock = threading.Lock()
        self._changed = threading.Condition(self._lock)

    def create(self, job: AnalysisJob) -> AnalysisJob:
        with self._lock:
            if job.id in self._jobs:
                raise ValueError(f"Job already exists: {job.id}")
            self._jobs[job.id] = _copy(job)
            logger.debug(f"Created job {job.id} for {job.repository_ref.full_name}")
            return _copy(job)

    def get(self, job_id: str) -> AnalysisJob:
        with self._lock:
            return _copy(self._require(job_id))

    def update(self, job_id: str, **fields: Any) -> AnalysisJob:
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be updated: {sorted(unknown)}")

        with self._changed:
            current = self._require(job_id)

            if current.status.is_terminal:
                raise InvalidTransitionError(
                    f"Job {job_id} is already {current.status.value}; it cannot be updated"
                )

            target = fields.get("status", current.status)
            if not isinstance(target, JobStatus):
                target = JobStatus(target)
                fields["status"] = target
            if not can_transition(current.status, target):
                raise InvalidTransitionError(
                    f"Job {job_id} cannot move from {current.status.value} to {target.value}"
                )

            now = datetime.now(UTC)
            if target == JobStatus.PROCESSING and current.started_at is None:
                fields.setdefault("started_at", now)
            if target.is_terminal:
                fields.setdefault("completed_at", now)
            if "insights" in fields:
                fields["insights"] = list(fields["insights"])
            if "warnings" in fields:
                fields["warnings"] = list(fields["warnings"])

            updated = replace(current, **fields)
            self._jobs[job_id] = updated
            if target != current.status:
                logger.debug(f"Job {job_id}: {current.status.value} -> {target.value}")
            self._changed.notify_all()
            return _copy(updated)

    def list_jobs(self, limit: int = 50, offset: int = 0) -> list[AnalysisJob]:
        if limit < 0 or offset < 0:
            raise ValueError("limit and offset must be non-negative")
        with self._lock:
            ordered = sorted(self._jobs.values(), key=lambda j: j.created_at, reverse=True)
            return [_copy(j) for j in ordered[offset : offset + limit]]

    def delete(self, job_id: str) -> None:
        with self._changed:
            self._require(job_id)
            del self._jobs[job_id]
            self._changed.notify_all()

    def wait_for(self, job_id: str, timeout: float | None = None) -> AnalysisJob:
        with self._changed:
            self._changed.wait_for(
                lambda: job_id not in self._jobs or self._jobs[job_id].status.is_terminal,
                timeout=timeout,
            )
            return _copy(self._require(job_id))

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def _require(self, job_id: str) -> AnalysisJob:
        try:
            return self._jobs[job_id]
        except KeyError:
            raise JobNotFoundError(job_id) from None
