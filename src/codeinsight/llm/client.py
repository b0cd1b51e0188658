"""LLM client wrapper using LiteLLM.

Provides a consistent interface for multiple LLM providers and maps
provider failures onto the CodeInsight model-layer errors:

- ``AuthenticationError`` / HTTP 401 -> AuthError (fatal for the job)
- ``RateLimitError`` / HTTP 429 -> RateLimitedError (retryable)
- anything else -> ModelError (fatal for one chunk)
"""

import logging
from dataclasses import dataclass
from typing import Any, Protocol

import litellm

from codeinsight.errors import AuthError, ModelError, RateLimitedError
from codeinsight.llm.parsing import ParsedResponse, parse_model_response
from codeinsight.llm.prompts import SYSTEM_PROMPT, ChunkPromptContext, build_chunk_prompt
from codeinsight.models.insight import Insight
from codeinsight.models.llm_config import LLMConfig

logger = logging.getLogger(__name__)


@dataclass
class LLMResponse:
    """Response from LLM completion.

    Attributes:
        content: Generated text content
        model: Model that generated the response
        usage: Token usage statistics
        finish_reason: Reason for completion (stop, length, etc.)
    """

    content: str
    model: str
    usage: dict[str, int]
    finish_reason: str | None = None


def _retry_after(error: Exception) -> float | None:
    """Read a Retry-After header from a provider exception, if present."""
    response = getattr(error, "response", None)
    headers = getattr(response, "headers", None)
    if not headers:
        return None
    value = headers.get("retry-after") or headers.get("Retry-After")
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


class LLMClient:
    """Unified LLM client using LiteLLM.

    Supports Claude, OpenAI, Gemini, Ollama and Bedrock through a single
    ``complete`` call.
    """

    def __init__(self, config: LLMConfig) -> None:
        """Initialize LLM client with configuration.

        Args:
            config: LLM configuration with provider, model, and credentials
        """
        self.config = config

    def complete(
        self,
        prompt: str,
        system_prompt: str | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Generate a completion from the LLM.

        Args:
            prompt: User prompt for the LLM
            system_prompt: Optional system prompt
            max_tokens: Override max_tokens from config

        Returns:
            LLMResponse with generated content

        Raises:
            AuthError: Credentials rejected
            RateLimitedError: Provider rate limit hit
            ModelError: Any other completion failure
        """
        messages: list[dict[str, str]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        completion_kwargs: dict[str, Any] = {
            "model": self.config.get_litellm_model_name(),
            "messages": messages,
            "temperature": self.config.temperature,
            "max_tokens": max_tokens or self.config.max_tokens,
            "timeout": self.config.request_timeout_s,
        }
        if self.config.api_key:
            completion_kwargs["api_key"] = self.config.api_key
        if self.config.api_base:
            completion_kwargs["api_base"] = self.config.api_base

        provider = self.config.provider
        try:
            response = litellm.completion(**completion_kwargs)
        except litellm.exceptions.AuthenticationError as e:
            raise AuthError(f"Authentication failed for {provider}: {e}") from e
        except litellm.exceptions.RateLimitError as e:
            raise RateLimitedError(
                f"Rate limit exceeded for {provider}: {e}", retry_after=_retry_after(e)
            ) from e
        except litellm.exceptions.APIConnectionError as e:
            raise ModelError(f"Connection failed to {provider}: {e}") from e
        except Exception as e:
            status = getattr(e, "status_code", None)
            if status == 401:
                raise AuthError(f"Authentication failed for {provider}: {e}") from e
            if status == 429:
                raise RateLimitedError(
                    f"Rate limit exceeded for {provider}: {e}", retry_after=_retry_after(e)
                ) from e
            raise ModelError(f"LLM completion failed: {e}") from e

        try:
            choice = response.choices[0]
            content = choice.message.content or ""
        except (AttributeError, IndexError, TypeError) as e:
            raise ModelError(f"Malformed completion response from {provider}") from e

        usage: dict[str, int] = {}
        if getattr(response, "usage", None):
            usage = {
                "prompt_tokens": response.usage.prompt_tokens or 0,
                "completion_tokens": response.usage.completion_tokens or 0,
                "total_tokens": response.usage.total_tokens or 0,
            }

        return LLMResponse(
            content=content,
            model=getattr(response, "model", None) or self.config.model,
            usage=usage,
            finish_reason=getattr(choice, "finish_reason", None),
        )


# =============================================================================
# Chunk Analysis Contract
# =============================================================================


class ModelClient(Protocol):
    """Anything that can analyze one chunk of repository content."""

    def analyze_chunk(self, chunk_index: int, total_chunks: int, content: str) -> list[Insight]:
        """Return the insights found in one chunk.

        Raises:
            RateLimitedError: Retryable rate limit
            AuthError: Invalid credentials
            ModelError: Any other failure
        """
        ...


class LLMModelClient:
    """ModelClient backed by an LLMClient.

    Args:
        client: Completion client
        repository: ``owner/name`` shown in prompts
        max_insights: Upper bound on findings requested per chunk
    """

    def __init__(self, client: LLMClient, repository: str, max_insights: int = 10) -> None:
        self.client = client
        self.repository = repository
        self.max_insights = max_insights

    def analyze_chunk_detailed(
        self, chunk_index: int, total_chunks: int, content: str
    ) -> ParsedResponse:
        """Analyze a chunk and return the parse outcome with its mode."""
        prompt = build_chunk_prompt(
            content,
            ChunkPromptContext(
                repository=self.repository,
                chunk_index=chunk_index,
                total_chunks=total_chunks,
                max_insights=self.max_insights,
            ),
        )
        response = self.client.complete(prompt, system_prompt=SYSTEM_PROMPT)
        if response.finish_reason == "length":
            logger.warning(f"Chunk {chunk_index + 1}/{total_chunks}: response hit max_tokens")
        logger.debug(
            f"Chunk {chunk_index + 1}/{total_chunks}: {len(response.content)} characters, "
            f"usage={response.usage}"
        )
        return parse_model_response(response.content, chunk_index)

    def analyze_chunk(self, chunk_index: int, total_chunks: int, content: str) -> list[Insight]:
        """Analyze a chunk and return its insights."""
        return self.analyze_chunk_detailed(chunk_index, total_chunks, content).insights


def create_model_client(config: LLMConfig, repository: str) -> LLMModelClient:
    """Create a chunk-analysis client for one repository.

    Args:
        config: LLM configuration
        repository: ``owner/name`` shown in prompts

    Returns:
        Configured LLMModelClient
    """
    for warning in config.validate():
        logger.warning(warning)
    return LLMModelClient(LLMClient(config), repository)
