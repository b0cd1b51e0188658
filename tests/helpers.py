"""Builders shared by unit and integration tests.

- make_insight / make_ingested: model objects without a fetch
- make_response / FakeGitHub: a fake GitHub REST host behind requests mocks
- ScriptedModel: a ModelClient with per-chunk scripted results
"""

import base64
from typing import Any
from unittest.mock import MagicMock

from codeinsight.ingest.tree import render_tree
from codeinsight.models.insight import Insight, InsightCategory, Severity
from codeinsight.models.repository import (
    FileEntry,
    IngestedRepository,
    RepositoryMetadata,
    RepositoryRef,
)

# =============================================================================
# Model Builders
# =============================================================================


def make_insight(
    title: str,
    description: str = "",
    severity: Severity = Severity.MEDIUM,
    category: InsightCategory = InsightCategory.CODE_QUALITY,
) -> Insight:
    """Build an insight with a description derived from the title by default."""
    return Insight(
        title=title,
        description=description or f"Details about {title.lower()}.",
        severity=severity,
        category=category,
    )


def make_ingested(
    content: str = "// File: app.py\nprint('hi')\n\n",
    files: tuple[FileEntry, ...] = (FileEntry("app.py", 12),),
) -> IngestedRepository:
    """Build an IngestedRepository directly, without a fetch."""
    ref = RepositoryRef("octocat", "Hello-World", "https://github.com/octocat/Hello-World", "main")
    return IngestedRepository(
        ref=ref,
        files=files,
        tree_text=render_tree(files),
        concatenated_content=content,
        file_count=len(files),
        total_size_bytes=sum(f.size_bytes for f in files),
        metadata=RepositoryMetadata(default_branch="main"),
    )


# =============================================================================
# Fake GitHub Host
# =============================================================================


def make_response(
    status_code: int = 200,
    json_data: Any = None,
    headers: dict[str, str] | None = None,
    content: bytes = b"",
) -> MagicMock:
    """Build a mock ``requests.Response``."""
    response = MagicMock()
    response.status_code = status_code
    response.headers = headers or {}
    response.content = content
    if json_data is None:
        response.json.side_effect = ValueError("No JSON")
    else:
        response.json.return_value = json_data
    return response


class FakeGitHub:
    """In-memory GitHub REST host for a single repository.

    Attributes:
        files: path -> text content
        repo_status: Status returned by the repository endpoint
        failing_paths: Paths whose contents endpoint returns 500
        truncated: Value of the tree ``truncated`` flag
    """

    API = "https://api.github.com"

    def __init__(
        self,
        owner: str = "octocat",
        name: str = "Hello-World",
        files: dict[str, str] | None = None,
        default_branch: str = "master",
        sizes: dict[str, int] | None = None,
    ) -> None:
        self.owner = owner
        self.name = name
        self.files = dict(files or {})
        self.sizes = dict(sizes or {})
        self.default_branch = default_branch
        self.repo_status = 200
        self.tree_status = 200
        self.failing_paths: set[str] = set()
        self.truncated = False
        self.requested: list[str] = []

    @property
    def base(self) -> str:
        return f"{self.API}/repos/{self.owner}/{self.name}"

    def _tree(self) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        seen_dirs: set[str] = set()
        for path, text in self.files.items():
            parts = path.split("/")
            for depth in range(1, len(parts)):
                directory = "/".join(parts[:depth])
                if directory not in seen_dirs:
                    seen_dirs.add(directory)
                    items.append({"path": directory, "type": "tree"})
            items.append(
                {
                    "path": path,
                    "type": "blob",
                    "size": self.sizes.get(path, len(text.encode("utf-8"))),
                }
            )
        return items

    def get(self, url: str, **kwargs: Any) -> MagicMock:
        self.requested.append(url)
        if url == self.base:
            if self.repo_status != 200:
                return make_response(self.repo_status, {"message": "error"})
            return make_response(
                200,
                {
                    "full_name": f"{self.owner}/{self.name}",
                    "description": "My first repository on GitHub!",
                    "language": "Python",
                    "stargazers_count": 42,
                    "forks_count": 7,
                    "private": False,
                    "default_branch": self.default_branch,
                },
            )
        if url.startswith(f"{self.base}/git/trees/"):
            if self.tree_status != 200:
                return make_response(self.tree_status, {"message": "error"})
            return make_response(200, {"tree": self._tree(), "truncated": self.truncated})
        if url.startswith(f"{self.base}/contents/"):
            path = url[len(f"{self.base}/contents/"):]
            if path in self.failing_paths:
                return make_response(500, {"message": "boom"})
            if path not in self.files:
                return make_response(404, {"message": "Not Found"})
            encoded = base64.b64encode(self.files[path].encode("utf-8")).decode("ascii")
            return make_response(200, {"content": encoded, "encoding": "base64"})
        return make_response(404, {"message": "Not Found"})


# =============================================================================
# Model Clients
# =============================================================================


class ScriptedModel:
    """ModelClient returning scripted results per chunk.

    ``script`` maps chunk index to a list of steps; each step is either a
    list of insights (returned) or an exception (raised). The last step
    repeats once the script runs out.
    """

    def __init__(self, script: dict[int, list[Any]] | None = None, default: Any = None) -> None:
        self.script = {k: list(v) for k, v in (script or {}).items()}
        self.default = default if default is not None else []
        self.calls: list[tuple[int, int, str]] = []

    def analyze_chunk(self, chunk_index: int, total_chunks: int, content: str) -> list[Insight]:
        self.calls.append((chunk_index, total_chunks, content))
        steps = self.script.get(chunk_index)
        if steps:
            step = steps.pop(0) if len(steps) > 1 else steps[0]
        else:
            step = self.default
        if isinstance(step, BaseException):
            raise step
        return list(step)

