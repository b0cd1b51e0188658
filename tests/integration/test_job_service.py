"""Integration tests for JobService.

Runs ingestion against a FakeGitHub host and analysis against a scripted
model, through the real store, orchestrator and worker pool.
"""

from collections.abc import Callable, Iterator

import pytest

from codeinsight.config import CodeInsightConfig
from codeinsight.errors import InvalidRepositoryURL, NotFoundError
from codeinsight.ingest.fetcher import SourceFetcher
from codeinsight.ingest.github import GitHubClient
from codeinsight.jobs.service import JobService
from codeinsight.models.job import JobStatus
from codeinsight.models.repository import RepositoryRef
from tests.helpers import FakeGitHub, ScriptedModel, make_insight

URL = "https://github.com/octocat/Hello-World"


@pytest.fixture
def model() -> ScriptedModel:
    return ScriptedModel(default=[make_insight("Missing input validation")])


@pytest.fixture
def service(
    client_factory: Callable[[str | None], GitHubClient], model: ScriptedModel
) -> Iterator[JobService]:
    """Service over the fake host with a scripted model."""
    config = CodeInsightConfig()
    svc = JobService(
        config,
        fetcher=SourceFetcher(config.github, config.ingestion, client_factory=client_factory),
        model_factory=lambda ref: model,
        max_workers=2,
    )
    yield svc
    svc.shutdown()


class TestSubmit:
    """Tests for JobService.submit()."""

    def test_submit_and_wait(self, service: JobService, model: ScriptedModel) -> None:
        """Test a submitted job runs in the background and completes."""
        submitted = service.submit(URL)

        assert submitted.job.status == JobStatus.PENDING
        assert submitted.repository.ref.default_branch == "master"

        job = service.wait(submitted.job.id, timeout=10)

        assert job.status == JobStatus.COMPLETED
        assert [i.title for i in job.insights] == ["Missing input validation"]
        assert "// File: README.md" in model.calls[0][2]

    def test_invalid_url_creates_no_job(self, service: JobService) -> None:
        """Test URL errors surface before any job exists."""
        with pytest.raises(InvalidRepositoryURL):
            service.submit("https://gitlab.com/octocat/Hello-World")

        assert service.list_jobs() == []

    def test_missing_repository_creates_no_job(
        self, service: JobService, fake_github: FakeGitHub
    ) -> None:
        """Test fetch errors surface before any job exists."""
        fake_github.repo_status = 404

        with pytest.raises(NotFoundError):
            service.submit(URL)

        assert service.list_jobs() == []

    def test_model_factory_error_fails_job(self, service: JobService) -> None:
        """Test a model client that cannot be built fails the job."""

        def broken(ref: RepositoryRef) -> ScriptedModel:
            raise ValueError("No API key configured")

        service.model_factory = broken

        job = service.wait(service.submit(URL).job.id, timeout=10)

        assert job.status == JobStatus.FAILED
        assert job.error_message == "Model configuration error: No API key configured"


class TestJobManagement:
    """Tests for listing and deleting jobs."""

    def test_run_job_synchronously(self, service: JobService) -> None:
        """Test run_job drives a job to its final state in the caller's thread."""
        repository = service.ingest(URL)
        job = service.create_job(repository)

        final = service.run_job(job, repository)

        assert final.status == JobStatus.COMPLETED
        assert service.get_job(job.id).insights == final.insights

    def test_list_and_delete(self, service: JobService) -> None:
        """Test created jobs are listed and can be deleted."""
        repository = service.ingest(URL)
        first = service.create_job(repository)
        second = service.create_job(repository)

        assert len(service.list_jobs()) == 2

        service.delete_job(first.id)

        assert [j.id for j in service.list_jobs()] == [second.id]
