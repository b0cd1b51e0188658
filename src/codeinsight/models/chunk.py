"""Chunk entity: a contiguous slice of the concatenated repository content."""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Chunk:
    """A contiguous, non-overlapping slice of concatenated content.

    Offsets are character offsets into the source string; ``content`` is
    exactly ``source[start_offset:end_offset]``.

    Attributes:
        index: Zero-based position in the plan
        start_offset: Inclusive start offset
        end_offset: Exclusive end offset
        content: The slice itself
    """

    index: int
    start_offset: int
    end_offset: int
    content: str

    def __post_init__(self) -> None:
        """Validate offsets against content length."""
        if self.start_offset < 0 or self.end_offset < self.start_offset:
            raise ValueError(
                f"Invalid chunk offsets [{self.start_offset}, {self.end_offset})"
            )
        if self.end_offset - self.start_offset != len(self.content):
            raise ValueError("Chunk content length does not match its offsets")

    @property
    def length(self) -> int:
        """Number of characters in the chunk."""
        return self.end_offset - self.start_offset

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary (without content) for logging and debugging."""
        return {
            "index": self.index,
            "start_offset": self.start_offset,
            "end_offset": self.end_offset,
            "length": self.length,
        }
