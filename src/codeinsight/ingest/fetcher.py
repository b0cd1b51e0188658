"""Source fetcher: turns a repository reference into an IngestedRepository.

Steps for ``fetch``:
1. Read repository metadata and resolve the default branch
2. List the recursive tree and keep blobs only
3. Include-pattern OR-match, then exclude-pattern AND-NOT-match
4. Record files over the size cap as too large (never fetched)
5. Cap the file count in tree order
6. Fetch bodies in concurrent batches under an overall deadline
7. Assemble ``// File: path`` headed content, tree text and summary

Repository-level failures (metadata, tree) raise before anything is built.
A single file that cannot be fetched is replaced by a placeholder comment.
"""

import logging
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass

from codeinsight.config import (
    ALL_FILES_PATTERNS,
    GitHubConfig,
    IngestionConfig,
)
from codeinsight.errors import FetchError
from codeinsight.ingest.github import GitHubClient
from codeinsight.ingest.patterns import filter_paths
from codeinsight.ingest.tree import compute_stats, format_bytes, render_tree
from codeinsight.models.repository import (
    FileEntry,
    IngestedRepository,
    RepositoryMetadata,
    RepositoryRef,
)

logger = logging.getLogger(__name__)

PLACEHOLDER_TEMPLATE = "// [codeinsight] content unavailable for {path}: {reason}"
DEADLINE_REASON = "ingestion deadline exceeded"


def file_header(path: str) -> str:
    """Header line that precedes each file body in concatenated content."""
    return f"// File: {path}"


def placeholder(path: str, reason: str) -> str:
    """Comment substituted for a file body that could not be fetched."""
    return PLACEHOLDER_TEMPLATE.format(path=path, reason=reason)


@dataclass
class _FetchedBody:
    path: str
    text: str | None = None
    error: str | None = None


def build_summary(
    ref: RepositoryRef,
    metadata: RepositoryMetadata,
    file_count: int,
    total_size_bytes: int,
    all_files_included: bool,
) -> str:
    """Render the Markdown summary block for an ingested repository."""
    lines = [
        f"# Repository: {ref.full_name}",
        "",
        f"**Description:** {metadata.description or 'No description provided'}",
        f"**Language:** {metadata.language or 'Unknown'}",
        f"**Stars:** {metadata.stars} | **Forks:** {metadata.forks}",
        f"**Branch:** {ref.default_branch}",
        f"**Total Files:** {file_count}",
        f"**Total Size:** {format_bytes(total_size_bytes)}",
    ]
    if not all_files_included:
        lines.append("")
        lines.append("_File limit reached: only part of the repository was ingested._")
    return "\n".join(lines)


def _find_readme(files: Sequence[FileEntry], bodies: dict[str, str]) -> str | None:
    for entry in files:
        if "/" not in entry.path and entry.path.upper().startswith("README"):
            return bodies.get(entry.path)
    return None


class SourceFetcher:
    """Fetches and assembles repository content from GitHub.

    Args:
        github: Host settings (API base, default token, request timeout)
        ingestion: Default filters and limits
        client_factory: Builds a client for a token (injected in tests)
        sleep: Sleep used for the pause between batches
        clock: Monotonic clock used for the ingestion deadline
    """

    def __init__(
        self,
        github: GitHubConfig | None = None,
        ingestion: IngestionConfig | None = None,
        client_factory: Callable[[str | None], GitHubClient] | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.github = github or GitHubConfig()
        self.ingestion = ingestion or IngestionConfig()
        self._client_factory = client_factory or self._default_client
        self._sleep = sleep
        self._clock = clock

    def _default_client(self, token: str | None) -> GitHubClient:
        return GitHubClient(
            token=token,
            api_base=self.github.api_base,
            timeout=self.github.request_timeout_s,
        )

    # =========================================================================
    # Public API
    # =========================================================================

    def fetch(
        self,
        ref: RepositoryRef,
        auth: str | None = None,
        include_patterns: Sequence[str] | None = None,
        exclude_patterns: Sequence[str] | None = None,
        max_file_size_bytes: int | None = None,
        max_file_count: int | None = None,
        include_all_files: bool = False,
    ) -> IngestedRepository:
        """Fetch, filter and assemble a repository.

        Args:
            ref: Repository to fetch; the branch is resolved if unset
            auth: Token for this request (falls back to the configured one)
            include_patterns: Globs to include (default: code and docs)
            exclude_patterns: Globs to exclude (default: VCS, deps, binaries)
            max_file_size_bytes: Per-file size cap
            max_file_count: Maximum files fetched
            include_all_files: Include every path instead of the code set;
                ignored when include_patterns is given

        Returns:
            IngestedRepository

        Raises:
            NotFoundError: Repository or branch does not exist
            AccessDeniedError: Private repository without valid credentials
            UpstreamError: Transport or host failure on repository-level calls
        """
        if include_patterns is None:
            include_patterns = (
                ALL_FILES_PATTERNS if include_all_files else self.ingestion.include_patterns
            )
        if exclude_patterns is None:
            exclude_patterns = self.ingestion.exclude_patterns
        if max_file_size_bytes is None:
            max_file_size_bytes = self.ingestion.max_file_size_bytes
        if max_file_count is None:
            max_file_count = self.ingestion.max_file_count

        client = self._client_factory(auth or self.github.token)
        ref, metadata = self._resolve(client, ref)

        logger.info(f"Listing tree for {ref.full_name}@{ref.default_branch}")
        entries, truncated = client.get_tree(ref, ref.default_branch or metadata.default_branch)
        if truncated:
            logger.warning(
                f"Tree listing for {ref.full_name} was truncated by GitHub; "
                "some files are missing from the ingestion"
            )

        blobs = {e.path: e for e in entries if e.is_blob}
        matched = filter_paths(blobs, include_patterns, exclude_patterns)

        eligible: list[FileEntry] = []
        too_large: list[str] = []
        for path in matched:
            entry = blobs[path]
            if entry.size_bytes > max_file_size_bytes:
                too_large.append(path)
            else:
                eligible.append(entry)

        if too_large:
            logger.info(
                f"Skipping {len(too_large)} files larger than "
                f"{format_bytes(max_file_size_bytes)}"
            )

        selected = eligible[:max_file_count]
        all_files_included = len(eligible) <= max_file_count
        if not all_files_included:
            logger.warning(
                f"{len(eligible)} files matched; fetching the first {max_file_count}"
            )

        logger.info(f"Fetching {len(selected)} files from {ref.full_name}")
        bodies = self._fetch_bodies(client, ref, [e.path for e in selected])

        return self._assemble(
            ref=ref,
            metadata=metadata,
            entries=selected,
            bodies=bodies,
            all_files_included=all_files_included,
            skipped_files=too_large,
            truncated_tree=truncated,
        )

    def fetch_paths(
        self,
        ref: RepositoryRef,
        paths: Sequence[str],
        auth: str | None = None,
    ) -> IngestedRepository:
        """Build a digest from an explicit selection of files.

        No pattern filtering or count cap is applied. Sizes are measured
        from the fetched UTF-8 text.

        Raises:
            NotFoundError, AccessDeniedError, UpstreamError: On repository-level calls
        """
        client = self._client_factory(auth or self.github.token)
        ref, metadata = self._resolve(client, ref)

        unique_paths = list(dict.fromkeys(p.strip("/") for p in paths if p.strip("/")))
        bodies = self._fetch_bodies(client, ref, unique_paths)

        entries = [
            FileEntry(
                path=path,
                size_bytes=len((bodies[path].text or "").encode("utf-8")),
            )
            for path in unique_paths
        ]
        return self._assemble(
            ref=ref,
            metadata=metadata,
            entries=entries,
            bodies=bodies,
            all_files_included=True,
            skipped_files=[],
            truncated_tree=False,
        )

    # =========================================================================
    # Internals
    # =========================================================================

    def _resolve(
        self, client: GitHubClient, ref: RepositoryRef
    ) -> tuple[RepositoryRef, RepositoryMetadata]:
        metadata = client.get_repository(ref)
        if ref.default_branch is None:
            ref = ref.with_branch(metadata.default_branch)
            logger.debug(f"Resolved default branch for {ref.full_name}: {ref.default_branch}")
        return ref, metadata

    def _fetch_one(self, client: GitHubClient, ref: RepositoryRef, path: str) -> _FetchedBody:
        try:
            text = client.get_file_content(ref, path, ref.default_branch or "HEAD")
        except FetchError as e:
            logger.warning(f"Could not fetch {path}: {e}")
            return _FetchedBody(path=path, error=str(e))
        return _FetchedBody(path=path, text=text)

    def _fetch_bodies(
        self,
        client: GitHubClient,
        ref: RepositoryRef,
        paths: Sequence[str],
    ) -> dict[str, _FetchedBody]:
        """Fetch bodies in batches of ``fetch_batch_size`` under the deadline."""
        results: dict[str, _FetchedBody] = {}
        if not paths:
            return results

        batch_size = self.ingestion.fetch_batch_size
        deadline = self._clock() + self.ingestion.ingestion_timeout_s

        executor = ThreadPoolExecutor(
            max_workers=batch_size, thread_name_prefix="codeinsight-fetch"
        )
        try:
            for start in range(0, len(paths), batch_size):
                batch = paths[start : start + batch_size]
                remaining = deadline - self._clock()
                if remaining <= 0:
                    for path in paths[start:]:
                        results[path] = _FetchedBody(path=path, error=DEADLINE_REASON)
                    logger.warning(
                        f"Ingestion deadline reached; {len(paths) - start} files not fetched"
                    )
                    break

                futures = {executor.submit(self._fetch_one, client, ref, p): p for p in batch}
                done, not_done = wait(futures, timeout=remaining)
                for future in done:
                    body = future.result()
                    results[body.path] = body
                for future in not_done:
                    future.cancel()
                    path = futures[future]
                    results[path] = _FetchedBody(path=path, error=DEADLINE_REASON)

                if not_done:
                    for path in paths[start + batch_size :]:
                        results[path] = _FetchedBody(path=path, error=DEADLINE_REASON)
                    logger.warning("Ingestion deadline reached while fetching file bodies")
                    break

                is_last = start + batch_size >= len(paths)
                if not is_last and self.ingestion.batch_pause_s > 0:
                    self._sleep(self.ingestion.batch_pause_s)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        return results

    def _assemble(
        self,
        ref: RepositoryRef,
        metadata: RepositoryMetadata,
        entries: Sequence[FileEntry],
        bodies: dict[str, _FetchedBody],
        all_files_included: bool,
        skipped_files: Sequence[str],
        truncated_tree: bool,
    ) -> IngestedRepository:
        parts: list[str] = []
        included: list[FileEntry] = []
        failed: list[str] = []
        texts: dict[str, str] = {}

        for entry in entries:
            body = bodies.get(entry.path) or _FetchedBody(path=entry.path, error="not fetched")
            if body.text is None:
                failed.append(entry.path)
                text = placeholder(entry.path, body.error or "unknown error")
            else:
                included.append(entry)
                texts[entry.path] = body.text
                text = body.text
            parts.append(f"{file_header(entry.path)}\n{text}\n\n")

        stats = compute_stats(included)
        if failed:
            logger.warning(f"{len(failed)} files replaced by placeholders")

        logger.info(
            f"Ingested {ref.full_name}: {stats.file_count} files, "
            f"{format_bytes(stats.total_size_bytes)}"
        )

        return IngestedRepository(
            ref=ref,
            files=tuple(included),
            tree_text=render_tree(included),
            concatenated_content="".join(parts),
            file_count=stats.file_count,
            total_size_bytes=stats.total_size_bytes,
            all_files_included=all_files_included,
            metadata=metadata,
            summary=build_summary(
                ref, metadata, stats.file_count, stats.total_size_bytes, all_files_included
            ),
            readme=_find_readme(included, texts),
            skipped_files=tuple(skipped_files),
            failed_files=tuple(failed),
            truncated_tree=truncated_tree,
        )
