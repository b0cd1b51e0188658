"""GitHub REST API client used by the source fetcher.

Endpoints consumed:
- ``GET /repos/{owner}/{repo}``: metadata and default branch
- ``GET /repos/{owner}/{repo}/git/trees/{branch}?recursive=1``: file tree
- ``GET /repos/{owner}/{repo}/contents/{path}?ref={branch}``: file body

Status mapping:
- 404 -> NotFoundError
- 401, 403 -> AccessDeniedError (403 caused by an exhausted API rate limit
  is an UpstreamError instead, since it clears on its own)
- other non-2xx, transport failures, malformed payloads -> UpstreamError

Transport failures and 5xx responses are retried a few times with
exponential backoff before surfacing.
"""

import base64
import binascii
import logging
import time
from collections.abc import Callable
from typing import Any
from urllib.parse import quote

import requests
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from codeinsight import __version__
from codeinsight.errors import AccessDeniedError, NotFoundError, UpstreamError
from codeinsight.models.repository import FileEntry, RepositoryMetadata, RepositoryRef

logger = logging.getLogger(__name__)

DEFAULT_API_BASE = "https://api.github.com"
JSON_ACCEPT = "application/vnd.github.v3+json"


class TransientUpstreamError(UpstreamError):
    """Upstream failure worth retrying (transport error or 5xx)."""

    pass


class GitHubClient:
    """Thin GitHub REST client over a ``requests.Session``.

    Args:
        token: Personal access token; sent as ``Authorization: token ...``
        api_base: REST API root
        timeout: Per-request timeout in seconds
        session: Session to use (injected in tests)
        max_attempts: Attempts for transient failures
        sleep: Sleep function used between retries
    """

    def __init__(
        self,
        token: str | None = None,
        api_base: str = DEFAULT_API_BASE,
        timeout: float = 30.0,
        session: requests.Session | None = None,
        max_attempts: int = 3,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.token = token
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.max_attempts = max(1, max_attempts)
        self._sleep = sleep

    # =========================================================================
    # Request Plumbing
    # =========================================================================

    def _headers(self, accept: str = JSON_ACCEPT) -> dict[str, str]:
        headers = {
            "Accept": accept,
            "User-Agent": f"codeinsight/{__version__}",
        }
        if self.token:
            headers["Authorization"] = f"token {self.token}"
        return headers

    def _raise_for_status(self, response: requests.Response, what: str) -> None:
        status = response.status_code
        if 200 <= status < 300:
            return

        if status == 404:
            raise NotFoundError(f"{what} not found", status_code=status)

        if status == 403 and response.headers.get("X-RateLimit-Remaining") == "0":
            reset = response.headers.get("X-RateLimit-Reset", "unknown")
            raise UpstreamError(
                f"GitHub API rate limit exceeded while fetching {what} (resets at {reset})",
                status_code=status,
            )

        if status in (401, 403):
            hint = "" if self.token else "; supply a GitHub token for private repositories"
            raise AccessDeniedError(f"Access denied to {what}{hint}", status_code=status)

        if status >= 500:
            raise TransientUpstreamError(
                f"GitHub returned {status} for {what}", status_code=status
            )

        raise UpstreamError(f"GitHub returned {status} for {what}", status_code=status)

    def _send(
        self,
        url: str,
        what: str,
        params: dict[str, Any] | None = None,
        accept: str = JSON_ACCEPT,
    ) -> requests.Response:
        try:
            response = self.session.get(
                url, headers=self._headers(accept), params=params, timeout=self.timeout
            )
        except requests.Timeout as e:
            raise TransientUpstreamError(f"Timed out fetching {what}: {e}") from e
        except requests.RequestException as e:
            raise TransientUpstreamError(f"Failed to fetch {what}: {e}") from e

        self._raise_for_status(response, what)
        return response

    def _get(
        self,
        url: str,
        what: str,
        params: dict[str, Any] | None = None,
        accept: str = JSON_ACCEPT,
    ) -> requests.Response:
        """GET with retries for transient failures."""
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=0.5, max=4),
            retry=retry_if_exception_type(TransientUpstreamError),
            sleep=self._sleep,
            reraise=True,
        )
        return retrying(self._send, url, what, params, accept)

    def _get_json(self, url: str, what: str, params: dict[str, Any] | None = None) -> Any:
        response = self._get(url, what, params=params)
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError(f"Malformed JSON in response for {what}") from e

    def _repo_url(self, ref: RepositoryRef) -> str:
        return f"{self.api_base}/repos/{quote(ref.owner)}/{quote(ref.name)}"

    # =========================================================================
    # Endpoints
    # =========================================================================

    def get_repository(self, ref: RepositoryRef) -> RepositoryMetadata:
        """Fetch repository metadata.

        Raises:
            NotFoundError: Repository does not exist (or is hidden from us)
            AccessDeniedError: Credentials missing or rejected
            UpstreamError: Transport or host failure
        """
        data = self._get_json(self._repo_url(ref), f"repository {ref.full_name}")
        if not isinstance(data, dict):
            raise UpstreamError(f"Unexpected repository payload for {ref.full_name}")
        return RepositoryMetadata.from_api(data)

    def get_tree(self, ref: RepositoryRef, branch: str) -> tuple[list[FileEntry], bool]:
        """List the full recursive tree of a branch.

        Returns:
            Tuple of (entries in host order, truncated flag)
        """
        url = f"{self._repo_url(ref)}/git/trees/{quote(branch, safe='')}"
        data = self._get_json(
            url, f"tree {ref.full_name}@{branch}", params={"recursive": "1"}
        )
        if not isinstance(data, dict) or not isinstance(data.get("tree"), list):
            raise UpstreamError(f"Unexpected tree payload for {ref.full_name}@{branch}")

        entries = [
            FileEntry.from_tree_item(item)
            for item in data["tree"]
            if isinstance(item, dict) and item.get("path")
        ]
        return entries, bool(data.get("truncated", False))

    def get_file_content(self, ref: RepositoryRef, path: str, branch: str) -> str:
        """Fetch one file body as text.

        Handles base64 payloads, and the ``download_url`` indirection GitHub
        uses for files too large to inline. Invalid UTF-8 is replaced.

        Raises:
            NotFoundError, AccessDeniedError, UpstreamError
        """
        what = f"file {path}"
        url = f"{self._repo_url(ref)}/contents/{quote(path, safe='/')}"
        data = self._get_json(url, what, params={"ref": branch})

        if not isinstance(data, dict):
            raise UpstreamError(f"{path} is not a file")

        encoding = data.get("encoding")
        content = data.get("content")

        if encoding == "base64" and isinstance(content, str):
            try:
                raw = base64.b64decode(content)
            except (binascii.Error, ValueError) as e:
                raise UpstreamError(f"Invalid base64 content for {path}") from e
            return raw.decode("utf-8", errors="replace")

        download_url = data.get("download_url")
        if download_url:
            response = self._get(download_url, what, accept="application/vnd.github.raw")
            return response.content.decode("utf-8", errors="replace")

        if isinstance(content, str):
            return content

        raise UpstreamError(f"No content available for {path}")
