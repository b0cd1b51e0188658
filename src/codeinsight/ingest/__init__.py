"""Repository ingestion.

- github: GitHub REST client with status-to-error mapping
- patterns: Include/exclude glob matching
- fetcher: SourceFetcher producing IngestedRepository
- tree: Directory tree rendering and statistics
- chunking: Chunk planning over concatenated content
"""

from codeinsight.ingest.chunking import plan_chunks
from codeinsight.ingest.fetcher import SourceFetcher
from codeinsight.ingest.github import GitHubClient
from codeinsight.ingest.patterns import filter_paths, matches
from codeinsight.ingest.tree import compute_stats, format_bytes, render_tree

__all__ = [
    "GitHubClient",
    "SourceFetcher",
    "compute_stats",
    "filter_paths",
    "format_bytes",
    "matches",
    "plan_chunks",
    "render_tree",
]
