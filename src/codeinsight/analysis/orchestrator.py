"""Per-chunk analysis orchestration.

``AnalysisOrchestrator.analyze`` drives one job through its lifecycle::

    pending -> processing -> completed | failed

1. Mark the job processing and plan chunks over the ingested content.
2. Analyze every chunk (sequentially, or with bounded concurrency). Raw
   results are kept in chunk order.
   - RateLimitedError: retried with exponential backoff, at most
     ``rate_limit_max_retries`` times and within ``retry_budget_s`` of
     total waiting; then the chunk is given up.
   - AuthError: the job fails at once and remaining chunks are skipped.
   - Anything else, including a call exceeding ``chunk_timeout_s``: the
     chunk fails and the others carry on.
3. If no chunk succeeded the job fails. Otherwise the raw insights are
   consolidated, numbered and stored, and the job completes.

``analyze`` never raises; every failure ends in the job's ``failed`` state
with a message.
"""

import logging
import threading
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
)

from codeinsight.analysis.consolidator import InsightConsolidator, assign_insight_ids
from codeinsight.config import AnalysisConfig
from codeinsight.errors import AuthError, InternalError, ModelError, RateLimitedError
from codeinsight.ingest.chunking import plan_chunks
from codeinsight.jobs.store import AnalysisJobStore
from codeinsight.llm.client import ModelClient
from codeinsight.models.chunk import Chunk
from codeinsight.models.insight import Insight
from codeinsight.models.job import AnalysisJob, JobStatus
from codeinsight.models.repository import IngestedRepository
from codeinsight.utils.logging import get_logger

logger = get_logger(__name__)

# Number of chunk errors quoted in a job failure message
MAX_QUOTED_ERRORS = 3


@dataclass
class ChunkOutcome:
    """Result of analyzing one chunk.

    Attributes:
        index: Chunk index
        insights: Insights found, or None if the chunk failed
        error: Failure description when insights is None
        attempts: Model calls made for this chunk
    """

    index: int
    insights: list[Insight] | None = None
    error: str | None = None
    attempts: int = 0

    @property
    def succeeded(self) -> bool:
        return self.insights is not None


@dataclass
class _RunState:
    abort: threading.Event = field(default_factory=threading.Event)
    auth_error: AuthError | None = None


class AnalysisOrchestrator:
    """Runs chunked analysis for jobs and records results in a job store.

    Args:
        store: Job store; the orchestrator is the single writer per job
        settings: Chunking, retry and concurrency settings
        consolidator: Insight consolidator (default thresholds if omitted)
        sleep: Sleep used between rate-limit retries
    """

    def __init__(
        self,
        store: AnalysisJobStore,
        settings: AnalysisConfig | None = None,
        consolidator: InsightConsolidator | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.store = store
        self.settings = settings or AnalysisConfig()
        self.consolidator = consolidator or InsightConsolidator()
        self._sleep = sleep

    # =========================================================================
    # Job Lifecycle
    # =========================================================================

    def analyze(
        self,
        job: AnalysisJob,
        ingested: IngestedRepository,
        model: ModelClient,
        chunk_size_budget: int | None = None,
    ) -> list[Insight]:
        """Analyze an ingested repository and finish the job.

        Args:
            job: Job to drive (must be pending in the store)
            ingested: Ingestion artifact, shared read-only across chunks
            model: Chunk analysis client
            chunk_size_budget: Override for the configured budget

        Returns:
            Consolidated insights (empty if the job failed)
        """
        try:
            return self._run(job, ingested, model, chunk_size_budget)
        except InternalError as e:
            self._fail(job.id, str(e), e.warnings)
            return []
        except Exception as e:
            logger.exception(f"Job {job.id}: unexpected error")
            self._fail(job.id, f"Internal error: {e}")
            return []

    def _run(
        self,
        job: AnalysisJob,
        ingested: IngestedRepository,
        model: ModelClient,
        chunk_size_budget: int | None,
    ) -> list[Insight]:
        budget = chunk_size_budget or self.settings.chunk_size_budget
        self.store.update(job.id, status=JobStatus.PROCESSING)

        chunks = plan_chunks(
            ingested.concatenated_content, budget, snap_to_newline=self.settings.snap_to_newline
        )
        self.store.update(job.id, chunk_count=len(chunks))
        logger.info(
            f"Job {job.id}: analyzing {ingested.ref.full_name} in {len(chunks)} chunk(s)"
        )

        if not ingested.concatenated_content:
            warning = "Repository produced no content to analyze"
            logger.warning(f"Job {job.id}: {warning}")
            self.store.update(
                job.id, status=JobStatus.COMPLETED, insights=[], warnings=[warning]
            )
            return []

        try:
            outcomes = self.run_chunks(chunks, model)
        except AuthError as e:
            self._fail(job.id, f"Authentication failed: {e}")
            return []

        warnings = [
            f"Chunk {o.index + 1}/{len(chunks)} skipped: {o.error}"
            for o in outcomes
            if not o.succeeded
        ]
        succeeded = [o for o in outcomes if o.succeeded]

        if not succeeded:
            quoted = "; ".join(w for w in warnings[:MAX_QUOTED_ERRORS])
            more = len(warnings) - MAX_QUOTED_ERRORS
            if more > 0:
                quoted += f"; and {more} more"
            self._fail(
                job.id, f"Analysis failed: no chunk produced insights ({quoted})", warnings
            )
            return []

        raw: list[Insight] = []
        for outcome in succeeded:
            raw.extend(outcome.insights or [])

        try:
            insights = assign_insight_ids(self.consolidator.consolidate(raw))
            self.store.update(
                job.id,
                status=JobStatus.COMPLETED,
                insights=insights,
                warnings=warnings,
            )
        except Exception as e:
            logger.exception(f"Job {job.id}: failed to store results")
            raise InternalError(f"Failed to finalize analysis: {e}", warnings) from e

        logger.structured(
            logging.INFO,
            f"Job {job.id}: completed with {len(insights)} insights "
            f"({len(raw)} raw, {len(warnings)} chunk(s) skipped)",
            job_id=job.id,
            chunks=len(chunks),
            skipped_chunks=len(warnings),
            raw_insights=len(raw),
            insights=len(insights),
        )
        return insights

    def _fail(self, job_id: str, message: str, warnings: Sequence[str] = ()) -> None:
        logger.structured(
            logging.ERROR, f"Job {job_id}: {message}", job_id=job_id, status="failed"
        )
        try:
            self.store.update(
                job_id, status=JobStatus.FAILED, error_message=message, warnings=list(warnings)
            )
        except Exception:
            logger.exception(f"Job {job_id}: could not record failure")

    # =========================================================================
    # Chunk Dispatch
    # =========================================================================

    def run_chunks(self, chunks: Sequence[Chunk], model: ModelClient) -> list[ChunkOutcome]:
        """Analyze all chunks and return outcomes in chunk order.

        Raises:
            AuthError: If any chunk hit an authentication failure
        """
        state = _RunState()
        total = len(chunks)

        if self.settings.max_concurrency <= 1 or total <= 1:
            outcomes = []
            for chunk in chunks:
                outcomes.append(self._process_chunk(model, chunk, total, state))
                if state.abort.is_set():
                    break
        else:
            with ThreadPoolExecutor(
                max_workers=self.settings.max_concurrency,
                thread_name_prefix="codeinsight-chunk",
            ) as executor:
                futures = [
                    executor.submit(self._process_chunk, model, chunk, total, state)
                    for chunk in chunks
                ]
                outcomes = [f.result() for f in futures]

        if state.auth_error is not None:
            raise state.auth_error

        return sorted(outcomes, key=lambda o: o.index)

    def _process_chunk(
        self,
        model: ModelClient,
        chunk: Chunk,
        total: int,
        state: _RunState,
    ) -> ChunkOutcome:
        outcome = ChunkOutcome(index=chunk.index)
        if state.abort.is_set():
            outcome.error = "not attempted after authentication failure"
            return outcome

        try:
            outcome.insights = self._analyze_with_retry(model, chunk, total, outcome)
            logger.debug(
                f"Chunk {chunk.index + 1}/{total}: {len(outcome.insights)} insights"
            )
        except AuthError as e:
            state.auth_error = state.auth_error or e
            state.abort.set()
            outcome.error = f"authentication failed: {e}"
        except RateLimitedError as e:
            outcome.error = f"rate limited after {outcome.attempts} attempt(s): {e}"
            logger.warning(f"Chunk {chunk.index + 1}/{total}: giving up, {outcome.error}")
        except Exception as e:
            outcome.error = str(e) or type(e).__name__
            logger.warning(f"Chunk {chunk.index + 1}/{total} failed: {outcome.error}")
        return outcome

    # =========================================================================
    # Retry and Timeout
    # =========================================================================

    def _backoff(self, retry_state: RetryCallState) -> float:
        """Exponential backoff honoring Retry-After, clipped to the budget."""
        settings = self.settings
        base = settings.rate_limit_backoff_ms / 1000.0
        cap = settings.rate_limit_max_backoff_ms / 1000.0
        delay = min(base * (2 ** (retry_state.attempt_number - 1)), cap)

        error = retry_state.outcome.exception() if retry_state.outcome else None
        retry_after = getattr(error, "retry_after", None)
        if retry_after:
            delay = min(max(delay, float(retry_after)), cap)

        remaining = settings.retry_budget_s - retry_state.idle_for
        return max(0.0, min(delay, remaining))

    def _budget_spent(self, retry_state: RetryCallState) -> bool:
        return retry_state.idle_for >= self.settings.retry_budget_s

    def _log_retry(self, retry_state: RetryCallState) -> None:
        wait = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            f"Rate limited; retrying in {wait:.1f}s "
            f"(attempt {retry_state.attempt_number + 1} of "
            f"{self.settings.rate_limit_max_retries + 1})"
        )

    def _analyze_with_retry(
        self,
        model: ModelClient,
        chunk: Chunk,
        total: int,
        outcome: ChunkOutcome,
    ) -> list[Insight]:
        retrying = Retrying(
            stop=stop_after_attempt(self.settings.rate_limit_max_retries + 1)
            | self._budget_spent,
            wait=self._backoff,
            retry=retry_if_exception_type(RateLimitedError),
            before_sleep=self._log_retry,
            sleep=self._sleep,
            reraise=True,
        )

        def attempt() -> list[Insight]:
            outcome.attempts += 1
            return self._call_with_timeout(model, chunk, total)

        return retrying(attempt)

    def _call_with_timeout(self, model: ModelClient, chunk: Chunk, total: int) -> list[Insight]:
        """Run one model call under the wall-clock chunk timeout.

        A call that overruns is abandoned on its worker thread.
        """
        timeout = self.settings.chunk_timeout_s
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="codeinsight-call")
        try:
            future = executor.submit(model.analyze_chunk, chunk.index, total, chunk.content)
            try:
                return list(future.result(timeout=timeout))
            except FutureTimeoutError:
                raise ModelError(f"model call timed out after {timeout:g}s") from None
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
