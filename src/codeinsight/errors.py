"""Error taxonomy shared across CodeInsight layers.

Errors are raised by the layer that detects them and mapped once at a
boundary:
- Fetch layer (ingest.github): NotFoundError, AccessDeniedError, UpstreamError
- Model layer (llm.client): RateLimitedError, AuthError, ModelError
- Response parsing (llm.parsing): ParseError, never escapes the orchestrator
- Job store (jobs.store): JobNotFoundError, InvalidTransitionError
- Input validation: InvalidRepositoryURL
- Orchestration: InternalError, recorded as a job failure
"""

from collections.abc import Sequence


class CodeInsightError(Exception):
    """Base class for all CodeInsight errors."""

    pass


# =============================================================================
# Input Validation
# =============================================================================


class InvalidRepositoryURL(CodeInsightError, ValueError):
    """Raised when a repository URL cannot be parsed into owner/name."""

    def __init__(self, url: str, reason: str = "expected https://github.com/<owner>/<repo>") -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"Invalid repository URL '{url}': {reason}")


# =============================================================================
# Fetch Layer
# =============================================================================


class FetchError(CodeInsightError):
    """Base class for source host failures.

    Attributes:
        status_code: HTTP status returned by the host, if any
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(FetchError):
    """Repository, branch or path does not exist on the host."""

    pass


class AccessDeniedError(FetchError):
    """Repository is private or the supplied credentials were rejected."""

    pass


class UpstreamError(FetchError):
    """Transport failure, 5xx, or otherwise unusable host response."""

    pass


# =============================================================================
# Model Layer
# =============================================================================


class LLMError(CodeInsightError):
    """Base class for model backend failures."""

    pass


class RateLimitedError(LLMError):
    """Model backend signalled a rate limit (HTTP 429). Retryable.

    Attributes:
        retry_after: Seconds suggested by the backend, if provided
    """

    def __init__(self, message: str, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class AuthError(LLMError):
    """Model backend rejected the credentials (HTTP 401). Fatal for the job."""

    pass


class ModelError(LLMError):
    """Any other model backend failure. Fatal for the chunk only."""

    pass


class ParseError(CodeInsightError):
    """Model response could not be interpreted as insights."""

    pass


# =============================================================================
# Job Store
# =============================================================================


class JobNotFoundError(CodeInsightError, KeyError):
    """No job exists with the requested id."""

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        super().__init__(f"Analysis job not found: {job_id}")

    def __str__(self) -> str:
        return f"Analysis job not found: {self.job_id}"


class InvalidTransitionError(CodeInsightError):
    """A status update would move a job backwards or out of a terminal state."""

    pass


class InternalError(CodeInsightError):
    """Unexpected failure while finalizing a job.

    Attributes:
        warnings: Chunk warnings gathered before the failure
    """

    def __init__(self, message: str, warnings: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.warnings = list(warnings)
