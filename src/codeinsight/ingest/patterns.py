"""Glob path matching for include/exclude filters.

Patterns use gitignore wildmatch syntax through ``pathspec``:
- ``*`` matches any run of characters within one path segment
- ``?`` matches one character other than ``/``
- ``**`` matches across segments; ``**/`` also matches zero directories,
  so ``**/*.md`` matches both ``README.md`` and ``docs/guide.md``
- ``[abc]`` / ``[!abc]`` character classes within a segment

Unlike ``.gitignore`` lines, patterns are anchored at the repository root:
``*.py`` matches ``main.py`` but not ``src/main.py``.
A pattern that matches a directory also matches everything below it.
"""

from collections.abc import Iterable
from functools import lru_cache

import pathspec


def _anchor(pattern: str) -> str:
    # gitwildmatch floats slash-free patterns to any depth; pin them to the root
    return pattern if pattern.startswith("/") else f"/{pattern}"


@lru_cache(maxsize=512)
def compile_spec(patterns: tuple[str, ...]) -> pathspec.PathSpec:
    """Build a root-anchored PathSpec for a set of glob patterns.

    Args:
        patterns: Glob patterns using ``/`` separators

    Returns:
        PathSpec matching a path if any pattern matches it
    """
    return pathspec.PathSpec.from_lines("gitwildmatch", [_anchor(p) for p in patterns if p])


def matches(path: str, pattern: str) -> bool:
    """Check whether a path matches a glob pattern."""
    return compile_spec((pattern,)).match_file(path)


def matches_any(path: str, patterns: Iterable[str]) -> bool:
    """Check whether a path matches at least one pattern."""
    return compile_spec(tuple(patterns)).match_file(path)


def filter_paths(
    paths: Iterable[str],
    include_patterns: Iterable[str],
    exclude_patterns: Iterable[str] = (),
) -> list[str]:
    """Apply include OR-match then exclude AND-NOT-match, preserving order.

    An empty include list includes nothing.

    Args:
        paths: Candidate paths in tree order
        include_patterns: Path must match at least one
        exclude_patterns: Path must match none

    Returns:
        Paths that pass both filters
    """
    include = compile_spec(tuple(include_patterns))
    exclude = compile_spec(tuple(exclude_patterns))
    return [path for path in paths if include.match_file(path) and not exclude.match_file(path)]
