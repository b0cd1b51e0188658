"""Analysis jobs: storage and background execution.

- store: AnalysisJobStore interface and the in-memory implementation
- service: JobService (submission, background dispatch, polling)
"""

from codeinsight.jobs.store import AnalysisJobStore, InMemoryJobStore

__all__ = [
    "AnalysisJobStore",
    "InMemoryJobStore",
]
