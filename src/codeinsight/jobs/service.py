"""Job submission and background execution.

``JobService.submit`` ingests synchronously, so repository-level failures
(bad URL, not found, access denied, upstream errors) reach the caller before
any job exists. It then creates a ``pending`` job and hands the analysis to
a worker pool; the caller polls ``get_job`` (or blocks on ``wait``) until the
job reaches a terminal state.
"""

import logging
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass

from codeinsight.analysis.orchestrator import AnalysisOrchestrator
from codeinsight.config import CodeInsightConfig
from codeinsight.ingest.fetcher import SourceFetcher
from codeinsight.jobs.store import AnalysisJobStore, InMemoryJobStore
from codeinsight.llm.client import ModelClient, create_model_client
from codeinsight.models.job import AnalysisJob, JobStatus
from codeinsight.models.repository import IngestedRepository, RepositoryRef, parse_repository_url

logger = logging.getLogger(__name__)

ModelFactory = Callable[[RepositoryRef], ModelClient]


@dataclass
class SubmittedJob:
    """Result of a submission.

    Attributes:
        repository: Ingestion artifact the job analyzes
        job: Job snapshot at creation (pending)
    """

    repository: IngestedRepository
    job: AnalysisJob


class JobService:
    """Wires fetcher, store and orchestrator together.

    Args:
        config: Loaded configuration
        store: Job store (in-memory if omitted)
        fetcher: Source fetcher (built from config if omitted)
        model_factory: Builds a model client per repository
        max_workers: Background job concurrency (config value if omitted)
    """

    def __init__(
        self,
        config: CodeInsightConfig | None = None,
        store: AnalysisJobStore | None = None,
        fetcher: SourceFetcher | None = None,
        model_factory: ModelFactory | None = None,
        orchestrator: AnalysisOrchestrator | None = None,
        max_workers: int | None = None,
    ) -> None:
        self.config = config or CodeInsightConfig()
        self.store = store or InMemoryJobStore()
        self.fetcher = fetcher or SourceFetcher(self.config.github, self.config.ingestion)
        self.model_factory = model_factory or self._default_model_factory
        self.orchestrator = orchestrator or AnalysisOrchestrator(
            self.store, self.config.analysis
        )
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers or self.config.service.max_workers,
            thread_name_prefix="codeinsight-job",
        )

    def _default_model_factory(self, ref: RepositoryRef) -> ModelClient:
        return create_model_client(self.config.llm, ref.full_name)

    # =========================================================================
    # Submission
    # =========================================================================

    def ingest(
        self,
        url: str,
        include_all_files: bool = False,
        token: str | None = None,
    ) -> IngestedRepository:
        """Parse a URL and ingest the repository.

        Raises:
            InvalidRepositoryURL: URL is not a GitHub repository URL
            NotFoundError, AccessDeniedError, UpstreamError: Fetch failures
        """
        ref = parse_repository_url(url)
        return self.fetcher.fetch(ref, auth=token, include_all_files=include_all_files)

    def create_job(self, repository: IngestedRepository) -> AnalysisJob:
        """Create a pending job for an ingested repository."""
        return self.store.create(AnalysisJob(repository_ref=repository.ref))

    def submit(
        self,
        url: str,
        include_all_files: bool = False,
        token: str | None = None,
    ) -> SubmittedJob:
        """Ingest a repository and start analyzing it in the background.

        Args:
            url: Repository URL
            include_all_files: Ingest every file, not only code and docs
            token: GitHub token for private repositories

        Returns:
            SubmittedJob with the ingestion artifact and the pending job

        Raises:
            InvalidRepositoryURL, NotFoundError, AccessDeniedError, UpstreamError
        """
        repository = self.ingest(url, include_all_files=include_all_files, token=token)
        job = self.create_job(repository)
        self.dispatch(job, repository)
        logger.info(f"Submitted job {job.id} for {repository.ref.full_name}")
        return SubmittedJob(repository=repository, job=job)

    def dispatch(self, job: AnalysisJob, repository: IngestedRepository) -> Future[None]:
        """Run analysis for a pending job on the worker pool."""
        return self._executor.submit(self.run_job, job, repository)

    def run_job(self, job: AnalysisJob, repository: IngestedRepository) -> AnalysisJob:
        """Run analysis for a job in the current thread and return its final state."""
        try:
            model = self.model_factory(repository.ref)
        except Exception as e:
            logger.error(f"Job {job.id}: could not create model client: {e}")
            self.store.update(
                job.id,
                status=JobStatus.FAILED,
                error_message=f"Model configuration error: {e}",
            )
            return self.store.get(job.id)

        self.orchestrator.analyze(job, repository, model)
        return self.store.get(job.id)

    # =========================================================================
    # Polling
    # =========================================================================

    def get_job(self, job_id: str) -> AnalysisJob:
        """Return the current job snapshot.

        Raises:
            JobNotFoundError: Unknown job id
        """
        return self.store.get(job_id)

    def list_jobs(self, limit: int = 50, offset: int = 0) -> list[AnalysisJob]:
        """Return jobs newest first."""
        return self.store.list_jobs(limit=limit, offset=offset)

    def delete_job(self, job_id: str) -> None:
        """Remove a job record."""
        self.store.delete(job_id)

    def wait(self, job_id: str, timeout: float | None = None) -> AnalysisJob:
        """Block until a job is terminal (or the timeout passes)."""
        return self.store.wait_for(job_id, timeout=timeout)

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work and optionally wait for running jobs."""
        self._executor.shutdown(wait=wait)
