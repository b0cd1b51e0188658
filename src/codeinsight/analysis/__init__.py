"""Chunked analysis and insight consolidation."""

from codeinsight.analysis.consolidator import (
    InsightConsolidator,
    assign_insight_ids,
    consolidate_insights,
    similarity,
)
from codeinsight.analysis.orchestrator import AnalysisOrchestrator, ChunkOutcome

__all__ = [
    "AnalysisOrchestrator",
    "ChunkOutcome",
    "InsightConsolidator",
    "assign_insight_ids",
    "consolidate_insights",
    "similarity",
]
