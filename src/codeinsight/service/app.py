"""FastAPI application exposing ingestion and job polling.

Routes:
- ``POST /ingest`` ``{url, includeAllFiles}`` -> 201 ``{repository, jobId}``
- ``GET /jobs/{id}`` -> 200 ``{id, status, insights?, errorMessage?, ...}``
- ``GET /jobs?limit=&offset=`` -> recent jobs
- ``DELETE /jobs/{id}`` -> 204
- ``GET /health``

Errors map to status codes: malformed URL or ingest body 400, access denied
403, unknown repository or job 404, upstream failure 502. A GitHub token
can be passed as ``Authorization: Bearer <token>`` on ``POST /ingest``.
"""

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, Header, Query, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from codeinsight import __version__
from codeinsight.config import CodeInsightConfig, load_config
from codeinsight.errors import (
    AccessDeniedError,
    InvalidRepositoryURL,
    JobNotFoundError,
    NotFoundError,
    UpstreamError,
)
from codeinsight.jobs.service import JobService
from codeinsight.models.job import AnalysisJob, JobStatus
from codeinsight.models.repository import IngestedRepository

logger = logging.getLogger(__name__)

# =============================================================================
# Request / Response Models
# =============================================================================


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class IngestRequest(_CamelModel):
    url: str
    include_all_files: bool = False


class RepositorySummary(_CamelModel):
    owner: str
    name: str
    url: str
    default_branch: str | None = None
    description: str | None = None
    language: str | None = None
    stars: int = 0
    forks: int = 0
    file_count: int
    total_size_bytes: int
    all_files_included: bool
    tree: str
    summary: str
    skipped_files: list[str] = []
    failed_files: list[str] = []

    @classmethod
    def from_ingested(cls, repo: IngestedRepository) -> "RepositorySummary":
        return cls(
            owner=repo.ref.owner,
            name=repo.ref.name,
            url=repo.ref.url,
            default_branch=repo.ref.default_branch,
            description=repo.metadata.description,
            language=repo.metadata.language,
            stars=repo.metadata.stars,
            forks=repo.metadata.forks,
            file_count=repo.file_count,
            total_size_bytes=repo.total_size_bytes,
            all_files_included=repo.all_files_included,
            tree=repo.tree_text,
            summary=repo.summary,
            skipped_files=list(repo.skipped_files),
            failed_files=list(repo.failed_files),
        )


class IngestResponse(_CamelModel):
    repository: RepositorySummary
    job_id: str


class InsightModel(_CamelModel):
    id: str | None = None
    title: str
    description: str
    severity: str
    category: str


class JobResponse(_CamelModel):
    id: str
    status: str
    repository: str
    created_at: str
    started_at: str | None = None
    completed_at: str | None = None
    insights: list[InsightModel] | None = None
    error_message: str | None = None
    warnings: list[str] = []
    chunk_count: int = 0

    @classmethod
    def from_job(cls, job: AnalysisJob) -> "JobResponse":
        return cls(
            id=job.id,
            status=job.status.value,
            repository=job.repository_ref.full_name,
            created_at=job.created_at.isoformat(),
            started_at=job.started_at.isoformat() if job.started_at else None,
            completed_at=job.completed_at.isoformat() if job.completed_at else None,
            insights=(
                [InsightModel(**i.to_dict()) for i in job.insights]
                if job.status == JobStatus.COMPLETED
                else None
            ),
            error_message=job.error_message,
            warnings=list(job.warnings),
            chunk_count=job.chunk_count,
        )


class JobListResponse(_CamelModel):
    jobs: list[JobResponse]
    limit: int
    offset: int


class HealthResponse(BaseModel):
    status: str
    version: str


# =============================================================================
# Application Factory
# =============================================================================


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() in {"bearer", "token"} and token.strip():
        return token.strip()
    return None


def _error(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


def create_app(
    service_factory: Callable[[], JobService] | None = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        service_factory: Builds the JobService shared by all requests
            (defaults to one built from the discovered config)

    Returns:
        FastAPI application
    """
    service = service_factory() if service_factory else JobService(load_config())

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        service.shutdown(wait=False)

    app = FastAPI(title="CodeInsight", version=__version__, lifespan=lifespan)
    app.state.service = service

    def get_service(request: Request) -> JobService:
        return request.app.state.service

    @app.get("/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse(status="ok", version=__version__)

    @app.post("/ingest", response_model=IngestResponse, status_code=201)
    def ingest(
        payload: IngestRequest,
        authorization: str | None = Header(default=None),
        svc: JobService = Depends(get_service),
    ) -> IngestResponse:
        submitted = svc.submit(
            payload.url,
            include_all_files=payload.include_all_files,
            token=_bearer_token(authorization),
        )
        return IngestResponse(
            repository=RepositorySummary.from_ingested(submitted.repository),
            job_id=submitted.job.id,
        )

    @app.get("/jobs/{job_id}", response_model=JobResponse, response_model_exclude_none=True)
    def get_job(job_id: str, svc: JobService = Depends(get_service)) -> JobResponse:
        return JobResponse.from_job(svc.get_job(job_id))

    @app.get("/jobs", response_model=JobListResponse, response_model_exclude_none=True)
    def list_jobs(
        limit: int = Query(default=20, ge=1, le=100),
        offset: int = Query(default=0, ge=0),
        svc: JobService = Depends(get_service),
    ) -> JobListResponse:
        jobs = svc.list_jobs(limit=limit, offset=offset)
        return JobListResponse(
            jobs=[JobResponse.from_job(j) for j in jobs], limit=limit, offset=offset
        )

    @app.delete("/jobs/{job_id}", status_code=204)
    def delete_job(job_id: str, svc: JobService = Depends(get_service)) -> Response:
        svc.delete_job(job_id)
        return Response(status_code=204)

    @app.exception_handler(RequestValidationError)
    async def validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        # an ingest body without a usable url is a malformed repository URL
        if request.url.path == "/ingest":
            return JSONResponse(
                status_code=400, content={"detail": jsonable_encoder(exc.errors())}
            )
        return await request_validation_exception_handler(request, exc)

    @app.exception_handler(InvalidRepositoryURL)
    async def invalid_url_handler(_: Any, exc: InvalidRepositoryURL) -> JSONResponse:
        return _error(400, exc)

    @app.exception_handler(AccessDeniedError)
    async def access_denied_handler(_: Any, exc: AccessDeniedError) -> JSONResponse:
        return _error(403, exc)

    @app.exception_handler(NotFoundError)
    async def not_found_handler(_: Any, exc: NotFoundError) -> JSONResponse:
        return _error(404, exc)

    @app.exception_handler(JobNotFoundError)
    async def job_not_found_handler(_: Any, exc: JobNotFoundError) -> JSONResponse:
        return _error(404, exc)

    @app.exception_handler(UpstreamError)
    async def upstream_handler(_: Any, exc: UpstreamError) -> JSONResponse:
        logger.warning(f"Upstream failure: {exc}")
        return _error(502, exc)

    return app


def run_service(config: CodeInsightConfig) -> None:
    """Serve the API with uvicorn until interrupted."""
    import uvicorn

    app = create_app(lambda: JobService(config))
    uvicorn.run(app, host=config.service.host, port=config.service.port, log_level="info")
