"""Cross-chunk insight consolidation.

Chunks analyzed independently tend to report the same finding more than
once with slightly different wording. Consolidation clusters such
near-duplicates and keeps one representative per cluster.

Rules:
- Five or fewer insights are returned unchanged.
- Each insight is compared with the first member of every existing cluster,
  in cluster creation order; the first cluster where the titles are more
  than 80% similar, or the first 100 description characters are more than
  70% similar, takes it. Otherwise it starts a new cluster.
- Similarity is ``1 - levenshtein(a, b) / max(len(a), len(b))`` on
  lowercased strings.
- A cluster is represented by its member with the longest description;
  ties go to the member that arrived first.
- Output keeps cluster creation order.
- Clustering is repeated over the representatives until a pass merges
  nothing, so consolidating a consolidated list is a no-op.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from Levenshtein import distance

from codeinsight.models.insight import Insight

logger = logging.getLogger(__name__)

TITLE_SIMILARITY_THRESHOLD = 0.8
DESCRIPTION_SIMILARITY_THRESHOLD = 0.7
DESCRIPTION_PREFIX_LENGTH = 100
MIN_CONSOLIDATION_SIZE = 6


def similarity(a: str, b: str) -> float:
    """Normalized edit similarity of two strings, case-insensitive.

    Returns:
        1.0 for identical strings (including two empty strings), down to 0.0
    """
    a, b = a.lower(), b.lower()
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1.0 - distance(a, b) / longest


@dataclass
class _Cluster:
    # (insertion index, insight); members[0] is the comparison anchor
    members: list[tuple[int, Insight]] = field(default_factory=list)

    @property
    def anchor(self) -> Insight:
        return self.members[0][1]

    def representative(self) -> Insight:
        # longest description, earliest insertion index on ties
        _, best = min(self.members, key=lambda m: (-len(m[1].description), m[0]))
        return best


class InsightConsolidator:
    """Greedy similarity clustering of insights.

    Args:
        title_threshold: Title similarity that puts two insights together
        description_threshold: Description-prefix similarity that does the same
        description_prefix: Characters of description compared
        min_size: Smallest input that is consolidated at all
    """

    def __init__(
        self,
        title_threshold: float = TITLE_SIMILARITY_THRESHOLD,
        description_threshold: float = DESCRIPTION_SIMILARITY_THRESHOLD,
        description_prefix: int = DESCRIPTION_PREFIX_LENGTH,
        min_size: int = MIN_CONSOLIDATION_SIZE,
    ) -> None:
        self.title_threshold = title_threshold
        self.description_threshold = description_threshold
        self.description_prefix = description_prefix
        self.min_size = min_size

    def is_similar(self, a: Insight, b: Insight) -> bool:
        """Check whether two insights describe the same finding."""
        if similarity(a.title, b.title) > self.title_threshold:
            return True
        prefix = self.description_prefix
        return (
            similarity(a.description[:prefix], b.description[:prefix])
            > self.description_threshold
        )

    def _build_clusters(self, insights: Sequence[Insight]) -> list[_Cluster]:
        clusters: list[_Cluster] = []
        for index, insight in enumerate(insights):
            for existing in clusters:
                if self.is_similar(insight, existing.anchor):
                    existing.members.append((index, insight))
                    break
            else:
                clusters.append(_Cluster(members=[(index, insight)]))
        return clusters

    def cluster(self, insights: Sequence[Insight]) -> list[list[Insight]]:
        """Group insights into clusters (members in arrival order)."""
        return [[insight for _, insight in c.members] for c in self._build_clusters(insights)]

    def consolidate(self, insights: Sequence[Insight]) -> list[Insight]:
        """Merge near-duplicate insights.

        Args:
            insights: Raw insights, typically in chunk order

        Returns:
            One representative per cluster, in cluster creation order
        """
        result = list(insights)
        passes = 0
        # A kept representative need not be its cluster's anchor, so it can
        # still match another cluster's representative. Repeat until a pass
        # merges nothing.
        while len(result) >= self.min_size:
            merged = [c.representative() for c in self._build_clusters(result)]
            passes += 1
            if len(merged) == len(result):
                break
            result = merged

        if passes == 0:
            return result
        logger.info(
            f"Consolidated {len(insights)} insights into {len(result)} ({passes} pass(es))"
        )
        return result


def consolidate_insights(insights: Sequence[Insight]) -> list[Insight]:
    """Consolidate with the default thresholds."""
    return InsightConsolidator().consolidate(insights)


def assign_insight_ids(insights: Sequence[Insight], prefix: str = "insight") -> list[Insight]:
    """Give each insight a sequential synthetic id (``insight-1``, ...)."""
    return [insight.with_id(f"{prefix}-{n}") for n, insight in enumerate(insights, start=1)]
