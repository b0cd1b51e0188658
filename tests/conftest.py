"""Shared pytest fixtures for CodeInsight tests.

Fixtures are organized by category:
- Model fixtures: Repository references and ingested repositories
- GitHub fixtures: A fake REST host behind a mocked requests session
- Model client fixtures: Errors raised by the model layer
"""

from collections.abc import Callable
from unittest.mock import MagicMock

import pytest

from codeinsight.errors import RateLimitedError
from codeinsight.ingest.github import GitHubClient
from codeinsight.models.repository import IngestedRepository, RepositoryRef
from tests.helpers import FakeGitHub, make_ingested

# =============================================================================
# Model Fixtures
# =============================================================================


@pytest.fixture
def ref() -> RepositoryRef:
    """Unresolved reference to octocat/Hello-World."""
    return RepositoryRef("octocat", "Hello-World", "https://github.com/octocat/Hello-World")


@pytest.fixture
def ingested() -> IngestedRepository:
    """Small ingested repository."""
    return make_ingested()


# =============================================================================
# GitHub Fixtures
# =============================================================================


@pytest.fixture
def fake_github() -> FakeGitHub:
    """Fake host with a small repository."""
    return FakeGitHub(
        files={
            "README.md": "# Hello World\n",
            "docs/guide.md": "Guide\n",
            "src/app.py": "def main():\n    return 1\n",
            "src/util.js": "export const x = 1;\n",
            "assets/logo.png": "PNG",
        }
    )


@pytest.fixture
def client_factory(fake_github: FakeGitHub) -> Callable[[str | None], GitHubClient]:
    """Client factory wired to the fake host, with no retry sleeps."""

    def factory(token: str | None) -> GitHubClient:
        session = MagicMock()
        session.get.side_effect = fake_github.get
        return GitHubClient(token=token, session=session, sleep=lambda _: None)

    return factory


# =============================================================================
# Model Client Fixtures
# =============================================================================


@pytest.fixture
def rate_limited() -> RateLimitedError:
    """A rate-limit error as raised by the model layer."""
    return RateLimitedError("Rate limit exceeded for claude: 429")
