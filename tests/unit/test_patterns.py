"""Unit tests for glob path matching."""

import pytest

from codeinsight.config import DEFAULT_EXCLUDE_PATTERNS, DEFAULT_INCLUDE_PATTERNS
from codeinsight.ingest.patterns import filter_paths, matches, matches_any


class TestMatches:
    """Tests for single-pattern matching."""

    def test_double_star_slash_matches_root_level(self) -> None:
        """Test **/*.md matches a file at the repository root."""
        assert matches("README.md", "**/*.md")

    def test_double_star_slash_matches_nested(self) -> None:
        """Test **/*.md matches files at any depth."""
        assert matches("docs/guide.md", "**/*.md")
        assert matches("a/b/c/d.md", "**/*.md")

    def test_single_star_stays_in_segment(self) -> None:
        """Test * does not cross a slash."""
        assert matches("main.py", "*.py")
        assert not matches("src/main.py", "*.py")

    def test_trailing_double_star(self) -> None:
        """Test dir/** matches everything below dir."""
        assert matches("node_modules/pkg/index.js", "node_modules/**")
        assert matches("node_modules/a", "node_modules/**")
        assert not matches("src/node_modules.txt", "node_modules/**")

    def test_question_mark(self) -> None:
        """Test ? matches exactly one non-slash character."""
        assert matches("a1.txt", "a?.txt")
        assert not matches("a12.txt", "a?.txt")
        assert not matches("a/.txt", "a?.txt")

    def test_character_class(self) -> None:
        """Test [..] and [!..] classes."""
        assert matches("file.c", "file.[ch]")
        assert matches("file.h", "file.[ch]")
        assert not matches("file.o", "file.[ch]")
        assert matches("file.o", "file.[!ch]")

    def test_literal_dots_are_escaped(self) -> None:
        """Test . in a pattern is not a regex wildcard."""
        assert not matches("mainXpy", "main.py")

    def test_unclosed_bracket_is_literal(self) -> None:
        """Test an unterminated class matches a literal bracket."""
        assert matches("a[b", "a[b")

    def test_match_is_anchored(self) -> None:
        """Test a pattern must cover the whole path."""
        assert not matches("src/app.py.bak", "**/*.py")

    def test_directory_pattern_covers_children(self) -> None:
        """Test a trailing-slash directory pattern matches files below it."""
        assert matches("docs/api/index.txt", "docs/")
        assert not matches("src/docs/index.txt", "docs/")

    def test_combined_spec_is_anchored(self) -> None:
        """Test several slash-free patterns stay anchored when combined."""
        assert matches_any("setup.py", ["*.cfg", "*.py"])
        assert not matches_any("pkg/setup.py", ["*.cfg", "*.py"])


class TestFilterPaths:
    """Tests for include/exclude filtering."""

    PATHS = [
        "README.md",
        "docs/guide.md",
        "src/app.py",
        "src/util.js",
        "assets/logo.png",
        "node_modules/lib/index.js",
    ]

    def test_include_or_semantics(self) -> None:
        """Test a path is kept if any include pattern matches."""
        result = filter_paths(self.PATHS, ["**/*.md", "**/*.py"])

        assert result == ["README.md", "docs/guide.md", "src/app.py"]

    def test_exclude_wins(self) -> None:
        """Test exclude removes paths matched by an include."""
        result = filter_paths(self.PATHS, ["**/*.js"], ["node_modules/**"])

        assert result == ["src/util.js"]

    def test_empty_include_includes_nothing(self) -> None:
        """Test an empty include list yields no paths."""
        assert filter_paths(self.PATHS, []) == []

    def test_preserves_input_order(self) -> None:
        """Test output order follows the input, not the patterns."""
        result = filter_paths(["b.py", "a.md", "c.py"], ["**/*.py", "**/*.md"])

        assert result == ["b.py", "a.md", "c.py"]

    @pytest.mark.parametrize(
        "path",
        ["src/main.py", "lib/index.ts", "README.md", "cmd/server/main.go", "LICENSE"],
    )
    def test_default_includes_source_files(self, path: str) -> None:
        """Test common source and doc files pass the default filters."""
        assert matches_any(path, DEFAULT_INCLUDE_PATTERNS)
        assert not matches_any(path, DEFAULT_EXCLUDE_PATTERNS)

    @pytest.mark.parametrize(
        "path",
        ["node_modules/react/index.js", "dist/bundle.min.js", ".git/config"],
    )
    def test_default_excludes_vendored_and_build_output(self, path: str) -> None:
        """Test vendored and generated files are excluded by default."""
        assert filter_paths([path], DEFAULT_INCLUDE_PATTERNS, DEFAULT_EXCLUDE_PATTERNS) == []
