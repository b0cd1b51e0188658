"""Repository entities produced by the ingestion step.

This module contains:
- RepositoryRef: Identifies a remote repository (owner/name on the host)
- RepositoryMetadata: Descriptive fields reported by the host
- FileEntry: One node of the remote tree listing
- IngestedRepository: The assembled, read-only ingestion artifact
"""

import re
from dataclasses import dataclass, field, replace
from typing import Any

from codeinsight.errors import InvalidRepositoryURL

# owner and repo name characters accepted by GitHub
_NAME_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


@dataclass(frozen=True)
class RepositoryRef:
    """Identifies a remote repository.

    Immutable once resolved. ``default_branch`` is ``None`` until the host
    has been asked for it (see ``with_branch``).

    Attributes:
        owner: Account or organization that owns the repository
        name: Repository name
        url: Canonical https URL of the repository
        default_branch: Branch to read from, once resolved
    """

    owner: str
    name: str
    url: str
    default_branch: str | None = None

    @property
    def full_name(self) -> str:
        """Return ``owner/name``."""
        return f"{self.owner}/{self.name}"

    def with_branch(self, branch: str) -> "RepositoryRef":
        """Return a copy with the default branch resolved."""
        return replace(self, default_branch=branch)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "owner": self.owner,
            "name": self.name,
            "url": self.url,
            "default_branch": self.default_branch,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RepositoryRef":
        """Create a RepositoryRef from a dictionary."""
        return cls(
            owner=data["owner"],
            name=data["name"],
            url=data.get("url") or f"https://github.com/{data['owner']}/{data['name']}",
            default_branch=data.get("default_branch"),
        )


def parse_repository_url(url: str) -> RepositoryRef:
    """Parse a GitHub repository URL into a RepositoryRef.

    Accepted forms::

        https://github.com/owner/repo
        https://github.com/owner/repo.git
        https://github.com/owner/repo/tree/main/src
        github.com/owner/repo
        git@github.com:owner/repo.git

    Args:
        url: Repository URL as typed by a user

    Returns:
        RepositoryRef with the branch left unresolved

    Raises:
        InvalidRepositoryURL: If the URL is not a GitHub repository URL
    """
    if not isinstance(url, str) or not url.strip():
        raise InvalidRepositoryURL(str(url), "URL is empty")

    text = url.strip()

    if text.startswith("git@"):
        host, _, path = text[len("git@"):].partition(":")
    else:
        text = re.sub(r"^[a-zA-Z][a-zA-Z0-9+.-]*://", "", text)
        host, _, path = text.partition("/")

    host = host.split("@")[-1].lower()
    if host not in {"github.com", "www.github.com"}:
        raise InvalidRepositoryURL(url, f"unsupported host '{host}'")

    path = path.split("?", 1)[0].split("#", 1)[0]
    parts = [p for p in path.split("/") if p]
    if len(parts) < 2:
        raise InvalidRepositoryURL(url, "missing owner or repository name")

    owner, name = parts[0], parts[1]
    if name.endswith(".git"):
        name = name[: -len(".git")]

    if not _NAME_RE.match(owner) or not _NAME_RE.match(name):
        raise InvalidRepositoryURL(url, "owner or repository name contains invalid characters")

    return RepositoryRef(
        owner=owner,
        name=name,
        url=f"https://github.com/{owner}/{name}",
    )


@dataclass
class RepositoryMetadata:
    """Descriptive repository fields reported by the host.

    Attributes:
        description: Repository description, if any
        language: Primary language detected by the host
        stars: Stargazer count
        forks: Fork count
        is_private: Whether the repository is private
        default_branch: Default branch name
    """

    description: str | None = None
    language: str | None = None
    stars: int = 0
    forks: int = 0
    is_private: bool = False
    default_branch: str = "main"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "description": self.description,
            "language": self.language,
            "stars": self.stars,
            "forks": self.forks,
            "is_private": self.is_private,
            "default_branch": self.default_branch,
        }

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "RepositoryMetadata":
        """Build metadata from a host ``/repos/{owner}/{repo}`` payload."""
        return cls(
            description=data.get("description"),
            language=data.get("language"),
            stars=int(data.get("stargazers_count") or 0),
            forks=int(data.get("forks_count") or 0),
            is_private=bool(data.get("private", False)),
            default_branch=data.get("default_branch") or "main",
        )


@dataclass(frozen=True)
class FileEntry:
    """One node of the remote tree listing.

    Attributes:
        path: Slash-delimited path relative to the repository root
        size_bytes: Size reported by the host (0 for trees)
        is_blob: True for files, False for directories and submodules
    """

    path: str
    size_bytes: int = 0
    is_blob: bool = True

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {"path": self.path, "size_bytes": self.size_bytes, "is_blob": self.is_blob}

    @classmethod
    def from_tree_item(cls, item: dict[str, Any]) -> "FileEntry":
        """Build an entry from a host ``git/trees`` item."""
        return cls(
            path=str(item.get("path", "")),
            size_bytes=int(item.get("size") or 0),
            is_blob=item.get("type") == "blob",
        )


@dataclass(frozen=True)
class IngestedRepository:
    """The assembled ingestion artifact.

    Owned by the pipeline invocation that produced it and never mutated
    afterwards, so it can be shared across concurrent chunk analyses.

    Invariants:
        - ``file_count == len(files)``
        - ``total_size_bytes == sum(f.size_bytes for f in files)``
        - every entry in ``files`` had its body appended to
          ``concatenated_content``

    Attributes:
        ref: Resolved repository reference
        files: Included files in tree order
        tree_text: Rendered directory tree of ``files``
        concatenated_content: ``// File: path`` headed bodies, in order
        file_count: Number of included files
        total_size_bytes: Sum of included file sizes
        all_files_included: False when the file-count cap truncated the set
        metadata: Host-reported repository metadata
        summary: Markdown summary block
        readme: Root README content, if one was fetched
        skipped_files: Paths rejected for exceeding the size cap
        failed_files: Paths whose body could not be fetched (placeholder used)
        truncated_tree: True if the host truncated the tree listing
    """

    ref: RepositoryRef
    files: tuple[FileEntry, ...]
    tree_text: str
    concatenated_content: str
    file_count: int
    total_size_bytes: int
    all_files_included: bool = True
    metadata: RepositoryMetadata = field(default_factory=RepositoryMetadata)
    summary: str = ""
    readme: str | None = None
    skipped_files: tuple[str, ...] = ()
    failed_files: tuple[str, ...] = ()
    truncated_tree: bool = False

    def __post_init__(self) -> None:
        """Validate the count and size invariants."""
        if self.file_count != len(self.files):
            raise ValueError(
                f"file_count ({self.file_count}) does not match files ({len(self.files)})"
            )
        expected = sum(f.size_bytes for f in self.files)
        if self.total_size_bytes != expected:
            raise ValueError(
                f"total_size_bytes ({self.total_size_bytes}) does not match "
                f"sum of file sizes ({expected})"
            )

    @property
    def content_length(self) -> int:
        """Length of the concatenated content in characters."""
        return len(self.concatenated_content)

    def to_dict(self, include_content: bool = False) -> dict[str, Any]:
        """Convert to dictionary for serialization.

        Args:
            include_content: Also emit the full concatenated content

        Returns:
            Dictionary representation
        """
        data: dict[str, Any] = {
            "ref": self.ref.to_dict(),
            "files": [f.to_dict() for f in self.files],
            "tree_text": self.tree_text,
            "file_count": self.file_count,
            "total_size_bytes": self.total_size_bytes,
            "all_files_included": self.all_files_included,
            "metadata": self.metadata.to_dict(),
            "summary": self.summary,
            "readme": self.readme,
            "skipped_files": list(self.skipped_files),
            "failed_files": list(self.failed_files),
            "truncated_tree": self.truncated_tree,
        }
        if include_content:
            data["concatenated_content"] = self.concatenated_content
        return data
