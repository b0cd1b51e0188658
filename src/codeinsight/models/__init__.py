"""CodeInsight data models.

This module exports all core entities used throughout the application:
- RepositoryRef / RepositoryMetadata: Remote repository identity and metadata
- FileEntry: One node of the remote tree listing
- IngestedRepository: Assembled ingestion artifact
- Chunk: Slice of concatenated content sent to the model
- Insight: One structured finding
- AnalysisJob / JobStatus: Unit of work and its state machine
- LLMConfig: Model provider configuration
"""

from codeinsight.models.chunk import Chunk
from codeinsight.models.insight import Insight, InsightCategory, Severity
from codeinsight.models.job import AnalysisJob, JobStatus, can_transition
from codeinsight.models.llm_config import VALID_PROVIDERS, LLMConfig
from codeinsight.models.repository import (
    FileEntry,
    IngestedRepository,
    RepositoryMetadata,
    RepositoryRef,
    parse_repository_url,
)

__all__ = [
    "AnalysisJob",
    "Chunk",
    "FileEntry",
    "IngestedRepository",
    "Insight",
    "InsightCategory",
    "JobStatus",
    "LLMConfig",
    "RepositoryMetadata",
    "RepositoryRef",
    "Severity",
    "VALID_PROVIDERS",
    "can_transition",
    "parse_repository_url",
]
