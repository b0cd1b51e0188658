"""CodeInsight configuration system.

Configuration is YAML-based with a handful of CLI overrides.
Supports environment variable substitution (${VAR}) in config files.

Configuration file discovery (in priority order):
1. CLI --config argument
2. ./.codeinsight/config.yaml
3. ./codeinsight.yaml
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from codeinsight.models.llm_config import LLMConfig

# =============================================================================
# Default File Patterns
# =============================================================================

# Source, markup and documentation files considered business logic
DEFAULT_INCLUDE_PATTERNS: list[str] = [
    "**/*.py",
    "**/*.js",
    "**/*.jsx",
    "**/*.ts",
    "**/*.tsx",
    "**/*.java",
    "**/*.c",
    "**/*.cpp",
    "**/*.h",
    "**/*.hpp",
    "**/*.cs",
    "**/*.go",
    "**/*.rb",
    "**/*.php",
    "**/*.html",
    "**/*.css",
    "**/*.scss",
    "**/*.md",
    "**/*.json",
    "**/*.yml",
    "**/*.yaml",
    "**/README*",
    "**/LICENSE*",
]

# Match every file; used when the caller asks for all files
ALL_FILES_PATTERNS: list[str] = ["**"]

DEFAULT_EXCLUDE_PATTERNS: list[str] = [
    ".git/**",
    "**/node_modules/**",
    "dist/**",
    "build/**",
    ".vscode/**",
    ".idea/**",
    "**/*.min.js",
    "**/*.lock",
    "**/package-lock.json",
    "**/*.png",
    "**/*.jpg",
    "**/*.jpeg",
    "**/*.gif",
    "**/*.svg",
    "**/*.ico",
    "**/*.pdf",
    "**/*.zip",
    "**/*.tar",
    "**/*.gz",
    "**/*.mp3",
    "**/*.mp4",
    "**/*.mov",
    "**/*.avi",
    "**/*.woff",
    "**/*.woff2",
    "**/*.ttf",
    "**/*.eot",
]

# =============================================================================
# Configuration Dataclasses
# =============================================================================


@dataclass
class GitHubConfig:
    """Source host configuration.

    Attributes:
        api_base: REST API root
        token: Personal access token (optional; required for private repos)
        request_timeout_s: Timeout for each HTTP request
    """

    api_base: str = "https://api.github.com"
    token: str | None = None
    request_timeout_s: float = 30.0

    def __post_init__(self) -> None:
        """Validate host configuration."""
        if self.request_timeout_s <= 0:
            raise ValueError(
                f"request_timeout_s must be positive (got {self.request_timeout_s})"
            )
        self.api_base = self.api_base.rstrip("/")


@dataclass
class IngestionConfig:
    """Repository ingestion limits and filters.

    Attributes:
        include_patterns: Globs a path must match (any of)
        exclude_patterns: Globs that reject a path (any of)
        max_file_size_bytes: Files larger than this are skipped as too large
        max_file_count: Maximum number of files fetched
        fetch_batch_size: Number of file bodies fetched concurrently
        batch_pause_s: Pause between fetch batches
        ingestion_timeout_s: Overall deadline for fetching bodies
    """

    include_patterns: list[str] = field(default_factory=lambda: list(DEFAULT_INCLUDE_PATTERNS))
    exclude_patterns: list[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDE_PATTERNS))
    max_file_size_bytes: int = 500 * 1024
    max_file_count: int = 200
    fetch_batch_size: int = 5
    batch_pause_s: float = 0.2
    ingestion_timeout_s: float = 300.0

    def __post_init__(self) -> None:
        """Validate ingestion limits."""
        if self.max_file_size_bytes <= 0:
            raise ValueError(
                f"max_file_size_bytes must be positive (got {self.max_file_size_bytes})"
            )
        if self.max_file_count <= 0:
            raise ValueError(f"max_file_count must be positive (got {self.max_file_count})")
        if self.fetch_batch_size <= 0:
            raise ValueError(
                f"fetch_batch_size must be positive (got {self.fetch_batch_size})"
            )
        if self.batch_pause_s < 0:
            raise ValueError(f"batch_pause_s cannot be negative (got {self.batch_pause_s})")
        if self.ingestion_timeout_s <= 0:
            raise ValueError(
                f"ingestion_timeout_s must be positive (got {self.ingestion_timeout_s})"
            )


@dataclass
class AnalysisConfig:
    """Chunk planning and orchestration settings.

    Attributes:
        chunk_size_budget: Characters (not bytes) per chunk; offsets are str indices
        snap_to_newline: Cut chunks after the last newline in the window
        rate_limit_max_retries: Retries per chunk after a rate-limit signal
        rate_limit_backoff_ms: Initial backoff, doubled on each retry
        rate_limit_max_backoff_ms: Upper bound for a single backoff
        retry_budget_s: Total time a chunk may spend waiting on retries
        chunk_timeout_s: Wall-clock limit for one model call
        max_concurrency: Chunks analyzed in parallel (1 = sequential)
    """

    chunk_size_budget: int = 50_000
    snap_to_newline: bool = False
    rate_limit_max_retries: int = 3
    rate_limit_backoff_ms: int = 2000
    rate_limit_max_backoff_ms: int = 30_000
    retry_budget_s: float = 120.0
    chunk_timeout_s: float = 180.0
    max_concurrency: int = 1

    def __post_init__(self) -> None:
        """Validate analysis settings."""
        if self.chunk_size_budget <= 0:
            raise ValueError(
                f"chunk_size_budget must be positive (got {self.chunk_size_budget})"
            )
        if self.rate_limit_max_retries < 0:
            raise ValueError(
                f"rate_limit_max_retries cannot be negative (got {self.rate_limit_max_retries})"
            )
        if self.rate_limit_backoff_ms < 0:
            raise ValueError(
                f"rate_limit_backoff_ms cannot be negative (got {self.rate_limit_backoff_ms})"
            )
        if self.rate_limit_max_backoff_ms < self.rate_limit_backoff_ms:
            raise ValueError("rate_limit_max_backoff_ms must be >= rate_limit_backoff_ms")
        if self.retry_budget_s <= 0:
            raise ValueError(f"retry_budget_s must be positive (got {self.retry_budget_s})")
        if self.chunk_timeout_s <= 0:
            raise ValueError(f"chunk_timeout_s must be positive (got {self.chunk_timeout_s})")
        if self.max_concurrency <= 0:
            raise ValueError(f"max_concurrency must be positive (got {self.max_concurrency})")


@dataclass
class ServiceConfig:
    """HTTP polling service settings.

    Attributes:
        host: Bind address
        port: Bind port
        max_workers: Background analysis jobs run concurrently
    """

    host: str = "127.0.0.1"
    port: int = 8000
    max_workers: int = 4

    def __post_init__(self) -> None:
        """Validate service settings."""
        if not 0 < self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}")
        if self.max_workers <= 0:
            raise ValueError(f"max_workers must be positive (got {self.max_workers})")


@dataclass
class CodeInsightConfig:
    """Top-level CodeInsight configuration.

    Attributes:
        github: Source host settings
        ingestion: Ingestion limits and filters
        analysis: Chunking and orchestration settings
        llm: Model backend settings
        service: HTTP service settings
    """

    github: GitHubConfig = field(default_factory=GitHubConfig)
    ingestion: IngestionConfig = field(default_factory=IngestionConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    service: ServiceConfig = field(default_factory=ServiceConfig)

    # Set by load_config
    _config_path: Path | None = field(default=None, repr=False)

    @property
    def config_path(self) -> Path | None:
        """Get the path to the config file that was loaded."""
        return self._config_path


# =============================================================================
# Environment Variable Substitution
# =============================================================================


def substitute_env_vars(value: Any) -> Any:
    """Substitute environment variables in config values.

    Supports ${VAR} syntax for environment variable substitution.
    Example: ${GITHUB_TOKEN} -> value of GITHUB_TOKEN

    Args:
        value: Config value (string, dict, list, or other)

    Returns:
        Value with environment variables substituted

    Raises:
        ValueError: If a referenced variable is not set
    """
    if isinstance(value, str):
        pattern = re.compile(r"\$\{([^}]+)\}")

        def replace_var(match: re.Match[str]) -> str:
            var_name = match.group(1)
            env_value = os.environ.get(var_name)
            if env_value is None:
                raise ValueError(f"Environment variable not set: {var_name}")
            return env_value

        return pattern.sub(replace_var, value)

    elif isinstance(value, dict):
        return {k: substitute_env_vars(v) for k, v in value.items()}

    elif isinstance(value, list):
        return [substitute_env_vars(v) for v in value]

    return value


# =============================================================================
# Config File Discovery
# =============================================================================


def find_config_file(start_path: Path | None = None) -> Path | None:
    """Find configuration file in standard locations.

    Search order:
    1. ./.codeinsight/config.yaml
    2. ./codeinsight.yaml

    Args:
        start_path: Starting directory for search (defaults to cwd)

    Returns:
        Path to config file if found, None otherwise
    """
    if start_path is None:
        start_path = Path.cwd()

    start_path = start_path.resolve()

    candidates = [
        start_path / ".codeinsight" / "config.yaml",
        start_path / "codeinsight.yaml",
    ]

    for candidate in candidates:
        if candidate.exists():
            return candidate

    return None


# =============================================================================
# Config Loading
# =============================================================================


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ValueError(f"Config section '{name}' must be a mapping")
    return section


def load_config_from_dict(data: dict[str, Any]) -> CodeInsightConfig:
    """Load configuration from a dictionary.

    Missing keys keep their dataclass defaults.

    Args:
        data: Configuration dictionary

    Returns:
        CodeInsightConfig instance

    Raises:
        ValueError: If a value is invalid or an env var is missing
    """
    data = substitute_env_vars(data)

    config = CodeInsightConfig()

    if "github" in data:
        github_data = _section(data, "github")
        config.github = GitHubConfig(
            api_base=github_data.get("api_base", config.github.api_base),
            token=github_data.get("token") or None,
            request_timeout_s=float(
                github_data.get("request_timeout_s", config.github.request_timeout_s)
            ),
        )

    if "ingestion" in data:
        ingestion_data = _section(data, "ingestion")
        defaults = config.ingestion
        config.ingestion = IngestionConfig(
            include_patterns=list(
                ingestion_data.get("include_patterns", defaults.include_patterns)
            ),
            exclude_patterns=list(
                ingestion_data.get("exclude_patterns", defaults.exclude_patterns)
            ),
            max_file_size_bytes=int(
                ingestion_data.get("max_file_size_bytes", defaults.max_file_size_bytes)
            ),
            max_file_count=int(ingestion_data.get("max_file_count", defaults.max_file_count)),
            fetch_batch_size=int(
                ingestion_data.get("fetch_batch_size", defaults.fetch_batch_size)
            ),
            batch_pause_s=float(ingestion_data.get("batch_pause_s", defaults.batch_pause_s)),
            ingestion_timeout_s=float(
                ingestion_data.get("ingestion_timeout_s", defaults.ingestion_timeout_s)
            ),
        )

    if "analysis" in data:
        analysis_data = _section(data, "analysis")
        defaults_a = config.analysis
        config.analysis = AnalysisConfig(
            chunk_size_budget=int(
                analysis_data.get("chunk_size_budget", defaults_a.chunk_size_budget)
            ),
            snap_to_newline=bool(
                analysis_data.get("snap_to_newline", defaults_a.snap_to_newline)
            ),
            rate_limit_max_retries=int(
                analysis_data.get("rate_limit_max_retries", defaults_a.rate_limit_max_retries)
            ),
            rate_limit_backoff_ms=int(
                analysis_data.get("rate_limit_backoff_ms", defaults_a.rate_limit_backoff_ms)
            ),
            rate_limit_max_backoff_ms=int(
                analysis_data.get(
                    "rate_limit_max_backoff_ms", defaults_a.rate_limit_max_backoff_ms
                )
            ),
            retry_budget_s=float(analysis_data.get("retry_budget_s", defaults_a.retry_budget_s)),
            chunk_timeout_s=float(
                analysis_data.get("chunk_timeout_s", defaults_a.chunk_timeout_s)
            ),
            max_concurrency=int(
                analysis_data.get("max_concurrency", defaults_a.max_concurrency)
            ),
        )

    if "llm" in data:
        config.llm = LLMConfig.from_dict(_section(data, "llm"))

    if "service" in data:
        service_data = _section(data, "service")
        config.service = ServiceConfig(
            host=str(service_data.get("host", config.service.host)),
            port=int(service_data.get("port", config.service.port)),
            max_workers=int(service_data.get("max_workers", config.service.max_workers)),
        )

    return config


def load_config(
    config_path: Path | None = None,
    auto_discover: bool = True,
) -> CodeInsightConfig:
    """Load configuration from file.

    Args:
        config_path: Explicit path to config file
        auto_discover: Whether to search for config file if not specified

    Returns:
        CodeInsightConfig instance

    Raises:
        FileNotFoundError: If config_path specified but doesn't exist
    """
    if config_path is not None:
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        found_path = config_path
    elif auto_discover:
        found_path = find_config_file()
    else:
        found_path = None

    if found_path is not None:
        with open(found_path) as f:
            data = yaml.safe_load(f) or {}
        config = load_config_from_dict(data)
        config._config_path = found_path
    else:
        config = CodeInsightConfig()

    # A token in the environment is used when the file does not set one
    if config.github.token is None:
        config.github.token = os.environ.get("GITHUB_TOKEN") or None

    return config


def create_default_config() -> str:
    """Create default configuration YAML content.

    Returns:
        YAML string with default configuration and comments
    """
    return '''# CodeInsight Configuration

# Source host
github:
  api_base: "https://api.github.com"
  # token: "${GITHUB_TOKEN}"   # Required for private repositories
  request_timeout_s: 30

# Repository ingestion
ingestion:
  max_file_size_bytes: 512000   # Larger files are skipped as too large
  max_file_count: 200           # Files beyond this are dropped (tree order)
  fetch_batch_size: 5           # Bodies fetched concurrently
  batch_pause_s: 0.2            # Pause between batches
  ingestion_timeout_s: 300
  # include_patterns: ["**/*.py", "**/*.md"]
  # exclude_patterns: [".git/**", "**/node_modules/**"]

# Chunked analysis
analysis:
  chunk_size_budget: 50000      # Characters (not bytes) per model request
  snap_to_newline: false        # Cut chunks at line boundaries when possible
  rate_limit_max_retries: 3
  rate_limit_backoff_ms: 2000   # Doubled on each retry
  rate_limit_max_backoff_ms: 30000
  retry_budget_s: 120
  chunk_timeout_s: 180
  max_concurrency: 1            # 1 = sequential

# Model backend (via LiteLLM)
llm:
  provider: "ollama"     # ollama (local), claude, openai, gemini, bedrock
  model: "llama3.2"
  # api_key: "${ANTHROPIC_API_KEY}"
  api_base: "http://localhost:11434"
  temperature: 0.2
  max_tokens: 4000

# HTTP polling service
service:
  host: "127.0.0.1"
  port: 8000
  max_workers: 4
'''
