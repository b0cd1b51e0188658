"""LLM configuration entity for CodeInsight.

Defines the configuration for the model backend used for chunk analysis.
Supports multiple providers through LiteLLM: Claude, OpenAI, Gemini,
Ollama and Bedrock.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

# Provider -> LiteLLM model prefix
LITELLM_PREFIXES = {
    "claude": "anthropic",
    "openai": "openai",
    "gemini": "gemini",
    "ollama": "ollama",
    "bedrock": "bedrock",
}

VALID_PROVIDERS = frozenset(LITELLM_PREFIXES)

DEFAULT_OLLAMA_BASE = "http://localhost:11434"


@dataclass
class LLMConfig:
    """Configuration for the LLM provider.

    Attributes:
        provider: LLM provider (claude, openai, gemini, ollama, bedrock)
        model: Model identifier (e.g., "claude-3-5-sonnet-latest", "llama3.2")
        api_key: API key (not required for Ollama or Bedrock)
        api_base: API base URL (defaults to the local server for Ollama)
        temperature: Sampling temperature, 0.0 to 1.0
        max_tokens: Maximum response tokens per chunk
        request_timeout_s: Timeout for a single completion request
    """

    provider: str = "ollama"
    model: str = "llama3.2"
    api_key: str | None = None
    api_base: str | None = None
    temperature: float = field(default=0.2)
    max_tokens: int = field(default=4000)
    request_timeout_s: float = field(default=120.0)

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        self.provider = self.provider.lower().strip()

        if self.provider not in VALID_PROVIDERS:
            raise ValueError(
                f"Invalid provider '{self.provider}'. "
                f"Must be one of: {sorted(VALID_PROVIDERS)}"
            )

        if not self.model or not self.model.strip():
            raise ValueError("Model identifier cannot be empty")
        self.model = self.model.strip()

        if not 0.0 <= self.temperature <= 1.0:
            raise ValueError(f"temperature must be between 0 and 1. Got: {self.temperature}")

        if self.max_tokens <= 0:
            raise ValueError(f"max_tokens must be positive. Got: {self.max_tokens}")

        if self.request_timeout_s <= 0:
            raise ValueError(
                f"request_timeout_s must be positive. Got: {self.request_timeout_s}"
            )

        if self.provider == "ollama" and not self.api_base:
            self.api_base = DEFAULT_OLLAMA_BASE

    @property
    def is_local(self) -> bool:
        """Return True if using a local model (no code leaves the machine)."""
        return self.provider == "ollama"

    def validate(self) -> list[str]:
        """Check for settings that work but are likely mistakes.

        Returns:
            List of warning messages (empty if no warnings)
        """
        warnings: list[str] = []

        if self.provider in {"claude", "openai", "gemini"} and not self.api_key:
            warnings.append(
                f"No api_key configured for {self.provider}; "
                "LiteLLM will fall back to provider environment variables"
            )

        if self.max_tokens < 1000:
            warnings.append(
                f"max_tokens is set to {self.max_tokens}, which may truncate insight lists"
            )

        if self.api_base and not self.api_base.startswith(("http://", "https://")):
            warnings.append(
                f"api_base '{self.api_base}' does not start with http:// or https://"
            )

        return warnings

    def to_dict(self) -> dict[str, str | int | float | bool | None]:
        """Convert to dictionary for serialization.

        The API key is masked.
        """
        return {
            "provider": self.provider,
            "model": self.model,
            "api_key": "***" if self.api_key else None,
            "api_base": self.api_base,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "request_timeout_s": self.request_timeout_s,
        }

    @classmethod
    def from_dict(cls, data: dict[str, str | int | float | bool | None]) -> "LLMConfig":
        """Create LLMConfig from a config section.

        Empty strings for the key and base URL count as unset; missing keys
        take the dataclass defaults.
        """
        kwargs: dict[str, Any] = {}
        for name, convert in _COERCE.items():
            value = data.get(name)
            if value is None or value == "":
                continue
            kwargs[name] = convert(value)
        return cls(**kwargs)

    def get_litellm_model_name(self) -> str:
        """Return ``<prefix>/<model>`` as LiteLLM expects.

        A model already carrying the provider prefix is passed through.
        """
        prefix = LITELLM_PREFIXES[self.provider]
        if self.model.startswith(f"{prefix}/"):
            return self.model
        return f"{prefix}/{self.model}"


_COERCE: dict[str, Callable[[Any], Any]] = {
    "provider": str,
    "model": str,
    "api_key": str,
    "api_base": str,
    "temperature": float,
    "max_tokens": int,
    "request_timeout_s": float,
}
