"""CodeInsight - repository ingestion and LLM-backed code review.

CodeInsight fetches a GitHub repository, assembles a bounded textual digest
of its source files, splits the digest into model-sized chunks and asks an
LLM for review insights. Per-chunk results are merged into a deduplicated
list that a client collects by polling an asynchronous analysis job.

Pipeline stages:
- Ingestion: tree listing, glob filtering, bounded concurrent body fetches
- Chunk planning: gap-free character windows over the digest
- Orchestration: per-chunk model calls with rate-limit retry and isolation
- Consolidation: similarity clustering of near-duplicate insights
- Jobs: pending -> processing -> completed | failed, polled by clients
"""

__version__ = "0.1.0"
__author__ = "CodeInsight Contributors"
