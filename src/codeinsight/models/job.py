"""Analysis job entity and its status state machine.

Jobs move strictly forward::

    pending -> processing -> completed
                          -> failed

``pending`` may also go straight to ``failed`` (e.g. the worker could not
start). ``completed`` and ``failed`` are terminal.
"""

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from codeinsight.models.insight import Insight
from codeinsight.models.repository import RepositoryRef


class JobStatus(Enum):
    """Status of an analysis job."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """Return True for completed and failed."""
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)

    @property
    def rank(self) -> int:
        """Position in the state machine; terminal states share a rank."""
        return _STATUS_RANK[self]


_STATUS_RANK = {
    JobStatus.PENDING: 0,
    JobStatus.PROCESSING: 1,
    JobStatus.COMPLETED: 2,
    JobStatus.FAILED: 2,
}


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    """Check whether a status change keeps the job moving forward.

    Args:
        current: Status currently stored
        target: Requested status

    Returns:
        True if the change is allowed (same non-terminal status is allowed)
    """
    if current.is_terminal:
        return False
    if current == target:
        return True
    return target.rank > current.rank


def new_job_id() -> str:
    """Generate a new opaque job identifier."""
    return uuid.uuid4().hex


@dataclass
class AnalysisJob:
    """The unit of analysis work and its result.

    Created in ``pending``; mutated only through the job store.

    Attributes:
        id: Opaque identifier
        repository_ref: Repository being analyzed
        status: Current status
        created_at: Creation timestamp (UTC)
        started_at: When processing began
        completed_at: When a terminal state was reached
        insights: Consolidated insights (set on completion)
        error_message: Classified failure message (set on failure)
        warnings: Non-fatal issues, such as skipped chunks
        chunk_count: Number of chunks planned for the job
    """

    repository_ref: RepositoryRef
    id: str = field(default_factory=new_job_id)
    status: JobStatus = JobStatus.PENDING
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    started_at: datetime | None = None
    completed_at: datetime | None = None
    insights: list[Insight] = field(default_factory=list)
    error_message: str | None = None
    warnings: list[str] = field(default_factory=list)
    chunk_count: int = 0

    def __post_init__(self) -> None:
        """Ensure timestamps are timezone-aware UTC."""
        if self.created_at.tzinfo is None:
            self.created_at = self.created_at.replace(tzinfo=UTC)

    @property
    def is_terminal(self) -> bool:
        """Return True once the job has completed or failed."""
        return self.status.is_terminal

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "repository": self.repository_ref.to_dict(),
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "insights": [i.to_dict() for i in self.insights],
            "error_message": self.error_message,
            "warnings": list(self.warnings),
            "chunk_count": self.chunk_count,
        }
