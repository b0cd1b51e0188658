"""LLM integration for CodeInsight.

Provides the LiteLLM-backed completion client, the per-chunk prompt and the
response parsing chain (strict JSON, heuristic extraction, diagnostic).
"""

from codeinsight.llm.client import (
    LLMClient,
    LLMModelClient,
    LLMResponse,
    ModelClient,
    create_model_client,
)
from codeinsight.llm.parsing import (
    ParsedResponse,
    ParseMode,
    diagnostic_insight,
    extract_insights_heuristic,
    parse_insights_json,
    parse_model_response,
)
from codeinsight.llm.prompts import SYSTEM_PROMPT, ChunkPromptContext, build_chunk_prompt

__all__ = [
    "ChunkPromptContext",
    "LLMClient",
    "LLMModelClient",
    "LLMResponse",
    "ModelClient",
    "ParseMode",
    "ParsedResponse",
    "SYSTEM_PROMPT",
    "build_chunk_prompt",
    "create_model_client",
    "diagnostic_insight",
    "extract_insights_heuristic",
    "parse_insights_json",
    "parse_model_response",
]
