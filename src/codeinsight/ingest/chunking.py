"""Chunk planning over concatenated repository content.

Content no longer than the budget is returned as one chunk. Longer content
is cut into consecutive windows of ``chunk_size_budget`` characters, the
last window taking the remainder. With ``snap_to_newline`` each cut moves
back to just after the last newline inside its window, when there is one.

Either way the chunks are gap-free, non-overlapping and cover the content
exactly once, so ``"".join(c.content for c in plan) == content``.
"""

import logging
import math

from codeinsight.models.chunk import Chunk

logger = logging.getLogger(__name__)


def expected_chunk_count(content_length: int, chunk_size_budget: int) -> int:
    """Number of chunks a fixed-size plan produces for a content length."""
    if content_length <= chunk_size_budget:
        return 1
    return math.ceil(content_length / chunk_size_budget)


def plan_chunks(
    content: str,
    chunk_size_budget: int,
    snap_to_newline: bool = False,
) -> list[Chunk]:
    """Partition content into ordered, contiguous chunks.

    Args:
        content: Concatenated repository content
        chunk_size_budget: Maximum characters per chunk
        snap_to_newline: Prefer cutting just after a newline

    Returns:
        Chunks in order; a single (possibly empty) chunk for short content

    Raises:
        ValueError: If chunk_size_budget is not positive
    """
    if chunk_size_budget <= 0:
        raise ValueError(f"chunk_size_budget must be positive (got {chunk_size_budget})")

    length = len(content)
    if length <= chunk_size_budget:
        return [Chunk(index=0, start_offset=0, end_offset=length, content=content)]

    chunks: list[Chunk] = []
    start = 0
    while start < length:
        end = min(start + chunk_size_budget, length)
        if snap_to_newline and end < length:
            newline = content.rfind("\n", start, end)
            if newline != -1:
                end = newline + 1
        chunks.append(
            Chunk(index=len(chunks), start_offset=start, end_offset=end, content=content[start:end])
        )
        start = end

    logger.debug(
        f"Planned {len(chunks)} chunks over {length} characters "
        f"(budget {chunk_size_budget}, snap_to_newline={snap_to_newline})"
    )
    return chunks
