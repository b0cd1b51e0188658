"""Directory tree rendering and aggregate statistics.

Pure functions with no I/O: the same file list always renders to the same
text.

Example output::

    docs/
      guide.md
    src/
      app/
        main.py
      util.py
    README.md
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from codeinsight.models.repository import FileEntry

INDENT = "  "


@dataclass
class _Node:
    dirs: dict[str, "_Node"] = field(default_factory=dict)
    files: set[str] = field(default_factory=set)


@dataclass(frozen=True)
class TreeStats:
    """Aggregate statistics for a file list.

    Attributes:
        file_count: Number of blob entries
        total_size_bytes: Sum of blob sizes
    """

    file_count: int
    total_size_bytes: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "file_count": self.file_count,
            "total_size_bytes": self.total_size_bytes,
            "total_size": format_bytes(self.total_size_bytes),
        }


def _split_path(path: str) -> list[str]:
    """Split a path into segments, treating malformed paths as root-level files."""
    segments = path.split("/")
    if any(not s for s in segments):
        # Leading, trailing or doubled slashes: keep the stripped path whole
        stripped = path.strip("/")
        return [stripped] if stripped else []
    return segments


def _build(files: Iterable[FileEntry | str]) -> _Node:
    root = _Node()
    for entry in files:
        path = entry if isinstance(entry, str) else entry.path
        segments = _split_path(path)
        if not segments:
            continue
        node = root
        for directory in segments[:-1]:
            node = node.dirs.setdefault(directory, _Node())
        node.files.add(segments[-1])
    return root


def _render(node: _Node, depth: int, lines: list[str]) -> None:
    prefix = INDENT * depth
    for name in sorted(node.dirs):
        lines.append(f"{prefix}{name}/")
        _render(node.dirs[name], depth + 1, lines)
    for name in sorted(node.files):
        lines.append(f"{prefix}{name}")


def render_tree(files: Iterable[FileEntry | str]) -> str:
    """Render a file list as an indented directory tree.

    At each level directories come first, then files, both in lexical
    order; each level is indented by two spaces and directories carry a
    trailing ``/``.

    Args:
        files: File entries or bare paths

    Returns:
        Tree text (empty string for an empty list)
    """
    lines: list[str] = []
    _render(_build(files), 0, lines)
    return "\n".join(lines)


def compute_stats(files: Iterable[FileEntry]) -> TreeStats:
    """Count blob entries and sum their sizes."""
    count = 0
    total = 0
    for entry in files:
        if entry.is_blob:
            count += 1
            total += entry.size_bytes
    return TreeStats(file_count=count, total_size_bytes=total)


def format_bytes(num_bytes: int, decimals: int = 2) -> str:
    """Format a byte count for humans using 1024-based units.

    Examples:
        >>> format_bytes(0)
        '0 Bytes'
        >>> format_bytes(1536)
        '1.5 KB'
    """
    if num_bytes <= 0:
        return "0 Bytes"

    units = ["Bytes", "KB", "MB", "GB", "TB"]
    value = float(num_bytes)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1

    text = f"{value:.{max(decimals, 0)}f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return f"{text} {units[index]}"
