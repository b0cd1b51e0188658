"""Unit tests for the in-memory job store."""

import threading

import pytest

from codeinsight.errors import InvalidTransitionError, JobNotFoundError
from codeinsight.jobs.store import InMemoryJobStore
from codeinsight.models.job import AnalysisJob, JobStatus, can_transition
from codeinsight.models.repository import RepositoryRef
from tests.helpers import make_insight


@pytest.fixture
def store() -> InMemoryJobStore:
    return InMemoryJobStore()


@pytest.fixture
def job(store: InMemoryJobStore, ref: RepositoryRef) -> AnalysisJob:
    return store.create(AnalysisJob(repository_ref=ref))


class TestCanTransition:
    """Tests for the status state machine."""

    @pytest.mark.parametrize(
        ("current", "target", "allowed"),
        [
            (JobStatus.PENDING, JobStatus.PROCESSING, True),
            (JobStatus.PENDING, JobStatus.FAILED, True),
            (JobStatus.PROCESSING, JobStatus.COMPLETED, True),
            (JobStatus.PROCESSING, JobStatus.FAILED, True),
            (JobStatus.PROCESSING, JobStatus.PROCESSING, True),
            (JobStatus.PROCESSING, JobStatus.PENDING, False),
            (JobStatus.COMPLETED, JobStatus.FAILED, False),
            (JobStatus.FAILED, JobStatus.COMPLETED, False),
            (JobStatus.COMPLETED, JobStatus.COMPLETED, False),
        ],
    )
    def test_transitions(self, current: JobStatus, target: JobStatus, allowed: bool) -> None:
        """Test only forward moves out of non-terminal states are allowed."""
        assert can_transition(current, target) is allowed


class TestInMemoryJobStore:
    """Tests for InMemoryJobStore."""

    def test_create_and_get(self, store: InMemoryJobStore, job: AnalysisJob) -> None:
        """Test a created job can be read back in pending state."""
        fetched = store.get(job.id)

        assert fetched.id == job.id
        assert fetched.status == JobStatus.PENDING
        assert len(store) == 1

    def test_duplicate_create_raises(self, store: InMemoryJobStore, job: AnalysisJob) -> None:
        """Test ids are unique."""
        with pytest.raises(ValueError, match="already exists"):
            store.create(job)

    def test_get_unknown_raises(self, store: InMemoryJobStore) -> None:
        """Test unknown ids raise JobNotFoundError."""
        with pytest.raises(JobNotFoundError):
            store.get("nope")

    def test_processing_sets_started_at(self, store: InMemoryJobStore, job: AnalysisJob) -> None:
        """Test moving to processing stamps started_at."""
        updated = store.update(job.id, status=JobStatus.PROCESSING)

        assert updated.started_at is not None
        assert updated.completed_at is None

    def test_terminal_sets_completed_at(self, store: InMemoryJobStore, job: AnalysisJob) -> None:
        """Test completion stamps completed_at and stores insights."""
        store.update(job.id, status=JobStatus.PROCESSING)
        updated = store.update(
            job.id, status=JobStatus.COMPLETED, insights=[make_insight("A finding")]
        )

        assert updated.completed_at is not None
        assert [i.title for i in store.get(job.id).insights] == ["A finding"]

    def test_status_accepts_string_values(
        self, store: InMemoryJobStore, job: AnalysisJob
    ) -> None:
        """Test a status given by value is converted to JobStatus."""
        updated = store.update(job.id, status="processing")

        assert updated.status == JobStatus.PROCESSING

    def test_backward_transition_rejected(
        self, store: InMemoryJobStore, job: AnalysisJob
    ) -> None:
        """Test processing cannot go back to pending."""
        store.update(job.id, status=JobStatus.PROCESSING)

        with pytest.raises(InvalidTransitionError, match="cannot move"):
            store.update(job.id, status=JobStatus.PENDING)

    def test_terminal_job_is_final(self, store: InMemoryJobStore, job: AnalysisJob) -> None:
        """Test nothing can be changed once a job has failed."""
        store.update(job.id, status=JobStatus.FAILED, error_message="boom")

        with pytest.raises(InvalidTransitionError, match="already failed"):
            store.update(job.id, warnings=["late"])
        assert store.get(job.id).error_message == "boom"

    def test_unknown_field_rejected(self, store: InMemoryJobStore, job: AnalysisJob) -> None:
        """Test identity fields cannot be updated."""
        with pytest.raises(ValueError, match="cannot be updated"):
            store.update(job.id, id="other")

    def test_returns_copies(self, store: InMemoryJobStore, job: AnalysisJob) -> None:
        """Test mutating a returned snapshot does not affect the store."""
        snapshot = store.get(job.id)
        snapshot.warnings.append("local only")
        snapshot.status = JobStatus.FAILED

        stored = store.get(job.id)
        assert stored.warnings == []
        assert stored.status == JobStatus.PENDING

    def test_list_jobs_newest_first(self, store: InMemoryJobStore, ref: RepositoryRef) -> None:
        """Test jobs are listed by creation time, newest first, with paging."""
        ids = [store.create(AnalysisJob(repository_ref=ref)).id for _ in range(3)]

        listed = [j.id for j in store.list_jobs()]
        assert set(listed) == set(ids)
        assert listed == sorted(
            listed, key=lambda i: store.get(i).created_at, reverse=True
        )
        assert len(store.list_jobs(limit=2)) == 2
        assert len(store.list_jobs(limit=2, offset=2)) == 1

    def test_delete(self, store: InMemoryJobStore, job: AnalysisJob) -> None:
        """Test deleted jobs are gone."""
        store.delete(job.id)

        with pytest.raises(JobNotFoundError):
            store.get(job.id)
        with pytest.raises(JobNotFoundError):
            store.delete(job.id)

    def test_wait_for_returns_terminal_state(
        self, store: InMemoryJobStore, job: AnalysisJob
    ) -> None:
        """Test wait_for wakes up when another thread finishes the job."""

        def finish() -> None:
            store.update(job.id, status=JobStatus.PROCESSING)
            store.update(job.id, status=JobStatus.COMPLETED)

        worker = threading.Thread(target=finish)
        worker.start()
        result = store.wait_for(job.id, timeout=5)
        worker.join()

        assert result.status == JobStatus.COMPLETED

    def test_wait_for_times_out(self, store: InMemoryJobStore, job: AnalysisJob) -> None:
        """Test wait_for returns the current snapshot after the timeout."""
        assert store.wait_for(job.id, timeout=0.01).status == JobStatus.PENDING

    def test_concurrent_updates_stay_monotonic(
        self, store: InMemoryJobStore, job: AnalysisJob
    ) -> None:
        """Test racing writers never move a terminal job."""
        store.update(job.id, status=JobStatus.PROCESSING)
        outcomes: list[str] = []
        lock = threading.Lock()

        def attempt(status: JobStatus) -> None:
            try:
                store.update(job.id, status=status)
                result = "ok"
            except InvalidTransitionError:
                result = "rejected"
            with lock:
                outcomes.append(result)

        threads = [
            threading.Thread(target=attempt, args=(s,))
            for s in [JobStatus.COMPLETED, JobStatus.FAILED] * 10
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert outcomes.count("ok") == 1
        assert store.get(job.id).status.is_terminal
