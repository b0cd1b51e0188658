"""Unit tests for chunked analysis orchestration.

Model calls are scripted and sleeps are recorded instead of slept, so retry
schedules can be asserted exactly.
"""

import threading
import time
from unittest.mock import MagicMock

import pytest

from codeinsight.analysis.orchestrator import AnalysisOrchestrator
from codeinsight.config import AnalysisConfig
from codeinsight.errors import AuthError, ModelError, RateLimitedError
from codeinsight.jobs.store import InMemoryJobStore
from codeinsight.models.insight import Insight
from codeinsight.models.job import AnalysisJob, JobStatus
from codeinsight.models.repository import IngestedRepository
from tests.helpers import ScriptedModel, make_ingested, make_insight


class Harness:
    """Store, orchestrator and a pending job wired together."""

    def __init__(self, **settings: object) -> None:
        self.sleeps: list[float] = []
        self.store = InMemoryJobStore()
        self.orchestrator = AnalysisOrchestrator(
            self.store,
            AnalysisConfig(**{"chunk_size_budget": 100, **settings}),
            sleep=self.sleeps.append,
        )

    def run(self, ingested: IngestedRepository, model: object) -> tuple[AnalysisJob, list[Insight]]:
        job = self.store.create(AnalysisJob(repository_ref=ingested.ref))
        insights = self.orchestrator.analyze(job, ingested, model)
        return self.store.get(job.id), insights


def _content(chunks: int) -> str:
    return "x" * (100 * chunks)


class TestJobLifecycle:
    """Tests for job state transitions driven by the orchestrator."""

    def test_single_chunk_completes(self) -> None:
        """Test a one-chunk repository completes with numbered insights."""
        harness = Harness()
        model = ScriptedModel(default=[make_insight("Unused import")])

        job, insights = harness.run(make_ingested(), model)

        assert job.status == JobStatus.COMPLETED
        assert job.chunk_count == 1
        assert job.started_at is not None and job.completed_at is not None
        assert [i.id for i in job.insights] == ["insight-1"]
        assert insights == job.insights
        assert model.calls[0][:2] == (0, 1)

    def test_chunks_receive_their_content(self) -> None:
        """Test each chunk is sent with its index, the total and its slice."""
        harness = Harness()
        model = ScriptedModel()

        harness.run(make_ingested(content="a" * 100 + "b" * 100 + "c" * 50), model)

        assert [(i, n, c[0], len(c)) for i, n, c in model.calls] == [
            (0, 3, "a", 100),
            (1, 3, "b", 100),
            (2, 3, "c", 50),
        ]

    def test_no_findings_completes_empty(self) -> None:
        """Test successful chunks with no findings complete with an empty list."""
        job, _ = Harness().run(make_ingested(content=_content(2)), ScriptedModel())

        assert job.status == JobStatus.COMPLETED
        assert job.insights == []
        assert job.warnings == []

    def test_empty_content_completes_without_model_call(self) -> None:
        """Test a repository with no content completes with a warning."""
        model = ScriptedModel()

        job, _ = Harness().run(make_ingested(content="", files=()), model)

        assert job.status == JobStatus.COMPLETED
        assert model.calls == []
        assert "no content" in job.warnings[0]

    def test_insights_merged_across_chunks(self) -> None:
        """Test near-duplicates reported by different chunks are consolidated."""
        script = {
            0: [[make_insight("Missing null check"), make_insight("Hardcoded secret")]],
            1: [[make_insight("Missing null-check"), make_insight("Slow regex")]],
            2: [[make_insight("SQL injection"), make_insight("Unbounded cache")]],
        }

        job, _ = Harness().run(make_ingested(content=_content(3)), ScriptedModel(script))

        titles = [i.title for i in job.insights]
        assert len(titles) == 5
        assert titles[0].startswith("Missing null")
        assert [i.id for i in job.insights] == [f"insight-{n}" for n in range(1, 6)]

    def test_finalize_error_fails_job(self) -> None:
        """Test an error while consolidating fails the job instead of raising."""
        harness = Harness()
        consolidator = MagicMock()
        consolidator.consolidate.side_effect = RuntimeError("boom")
        harness.orchestrator.consolidator = consolidator

        job, insights = harness.run(make_ingested(), ScriptedModel(default=[make_insight("A")]))

        assert insights == []
        assert job.status == JobStatus.FAILED
        assert "boom" in (job.error_message or "")


class TestChunkFailures:
    """Tests for per-chunk failure handling."""

    def test_partial_failure_completes_with_warning(self) -> None:
        """Test a failing chunk is skipped while the others contribute."""
        script = {1: [ModelError("model exploded")]}
        model = ScriptedModel(script, default=[make_insight("Real finding")])

        job, _ = Harness().run(make_ingested(content=_content(3)), model)

        assert job.status == JobStatus.COMPLETED
        assert len(job.insights) == 2
        assert job.warnings == ["Chunk 2/3 skipped: model exploded"]

    def test_all_chunks_failing_fails_job(self) -> None:
        """Test the job fails when no chunk succeeds, quoting the errors."""
        model = ScriptedModel(default=ModelError("bad gateway"))

        job, _ = Harness().run(make_ingested(content=_content(5)), model)

        assert job.status == JobStatus.FAILED
        assert "no chunk produced insights" in (job.error_message or "")
        assert "bad gateway" in (job.error_message or "")
        assert "and 2 more" in (job.error_message or "")
        assert len(job.warnings) == 5

    def test_auth_error_fails_job_and_stops(self) -> None:
        """Test an authentication failure aborts the remaining chunks."""
        model = ScriptedModel({0: [AuthError("invalid api key")]})

        job, _ = Harness().run(make_ingested(content=_content(3)), model)

        assert job.status == JobStatus.FAILED
        assert job.error_message == "Authentication failed: invalid api key"
        assert [c[0] for c in model.calls] == [0]

    def test_auth_error_is_not_retried(self) -> None:
        """Test authentication failures do not trigger backoff."""
        harness = Harness()

        harness.run(make_ingested(), ScriptedModel({0: [AuthError("nope")]}))

        assert harness.sleeps == []

    def test_timeout_fails_chunk_only(self) -> None:
        """Test a call exceeding the chunk timeout is abandoned."""
        release = threading.Event()

        class SlowFirstChunk:
            def analyze_chunk(self, index: int, total: int, content: str) -> list[Insight]:
                if index == 0:
                    release.wait(5)
                return [make_insight(f"Finding {index}")]

        try:
            job, _ = Harness(chunk_timeout_s=0.05).run(
                make_ingested(content=_content(2)), SlowFirstChunk()
            )
        finally:
            release.set()

        assert job.status == JobStatus.COMPLETED
        assert [i.title for i in job.insights] == ["Finding 1"]
        assert "timed out" in job.warnings[0]


class TestRateLimitRetry:
    """Tests for rate-limit backoff."""

    def test_retry_then_success(self, rate_limited: RateLimitedError) -> None:
        """Test a 429 followed by success completes after one backoff."""
        harness = Harness()
        model = ScriptedModel({0: [rate_limited, [make_insight("Found it")]]})

        job, _ = harness.run(make_ingested(), model)

        assert job.status == JobStatus.COMPLETED
        assert [i.title for i in job.insights] == ["Found it"]
        assert harness.sleeps == [2.0]
        assert len(model.calls) == 2

    def test_exponential_schedule_then_give_up(self, rate_limited: RateLimitedError) -> None:
        """Test backoff doubles and the chunk is skipped after the last retry."""
        harness = Harness()
        model = ScriptedModel({0: [rate_limited]}, default=[make_insight("Other chunk")])

        job, _ = harness.run(make_ingested(content=_content(2)), model)

        assert harness.sleeps == [2.0, 4.0, 8.0]
        assert sum(1 for c in model.calls if c[0] == 0) == 4
        assert job.status == JobStatus.COMPLETED
        assert job.warnings[0].startswith("Chunk 1/2 skipped: rate limited after 4 attempt(s)")

    def test_backoff_is_capped(self, rate_limited: RateLimitedError) -> None:
        """Test a single wait never exceeds the configured maximum."""
        harness = Harness(rate_limit_max_retries=5, rate_limit_max_backoff_ms=5000)

        harness.run(make_ingested(), ScriptedModel({0: [rate_limited]}))

        assert harness.sleeps == [2.0, 4.0, 5.0, 5.0, 5.0]

    def test_retry_after_is_honored(self) -> None:
        """Test a server-provided Retry-After lengthens the wait."""
        harness = Harness()
        error = RateLimitedError("slow down", retry_after=10)
        model = ScriptedModel({0: [error, [make_insight("Ok")]]})

        harness.run(make_ingested(), model)

        assert harness.sleeps == [10.0]

    def test_retry_budget_limits_waiting(self, rate_limited: RateLimitedError) -> None:
        """Test total waiting is clipped to the retry budget."""
        harness = Harness(retry_budget_s=3)
        model = ScriptedModel({0: [rate_limited]})

        job, _ = harness.run(make_ingested(), model)

        assert harness.sleeps == [2.0, 1.0]
        assert len(model.calls) == 3
        assert job.status == JobStatus.FAILED

    def test_zero_retries(self, rate_limited: RateLimitedError) -> None:
        """Test max retries of zero makes a single attempt."""
        harness = Harness(rate_limit_max_retries=0)
        model = ScriptedModel({0: [rate_limited]})

        harness.run(make_ingested(), model)

        assert harness.sleeps == []
        assert len(model.calls) == 1


class TestConcurrency:
    """Tests for bounded concurrent chunk analysis."""

    def test_results_in_chunk_order(self) -> None:
        """Test concurrent runs keep chunk order and respect the bound."""
        lock = threading.Lock()
        active = 0
        peak = 0

        class Tracking:
            def analyze_chunk(self, index: int, total: int, content: str) -> list[Insight]:
                nonlocal active, peak
                with lock:
                    active += 1
                    peak = max(peak, active)
                # later chunks finish first
                time.sleep(0.01 * (total - index))
                with lock:
                    active -= 1
                return [Insight(title=f"Finding {index}", description=f"Chunk {index} only.")]

        job, _ = Harness(max_concurrency=3).run(make_ingested(content=_content(5)), Tracking())

        assert job.status == JobStatus.COMPLETED
        assert [i.title for i in job.insights] == [f"Finding {n}" for n in range(5)]
        assert peak <= 3

    @pytest.mark.parametrize("concurrency", [1, 4])
    def test_auth_error_fails_job_concurrently(self, concurrency: int) -> None:
        """Test authentication failure fails the job in both dispatch modes."""
        model = ScriptedModel({2: [AuthError("expired")]}, default=[make_insight("x")])

        job, _ = Harness(max_concurrency=concurrency).run(
            make_ingested(content=_content(4)), model
        )

        assert job.status == JobStatus.FAILED
        assert job.error_message == "Authentication failed: expired"
