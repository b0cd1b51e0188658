"""Prompt templates for per-chunk code analysis.

The model is asked for a JSON object with an ``insights`` array; each item
carries ``title``, ``description``, ``severity`` and ``category``. When the
repository is split across several chunks the prompt says which slice is
being shown so the model does not report missing code from other slices.
"""

from dataclasses import dataclass

from codeinsight.models.insight import InsightCategory, Severity

SEVERITY_VALUES = ", ".join(f'"{s.value}"' for s in Severity)
CATEGORY_VALUES = ", ".join(f'"{c.value}"' for c in InsightCategory)

# =============================================================================
# System Prompt
# =============================================================================

SYSTEM_PROMPT = (
    "You are a code analysis expert reviewing a GitHub repository. "
    "Provide detailed, actionable insights about code quality, architecture, "
    "potential bugs, security issues, performance and best practices.\n\n"
    "Respond with valid JSON only, in this shape:\n"
    '{"insights": [{"title": "...", "description": "...", '
    '"severity": "...", "category": "..."}]}\n\n'
    "Field rules:\n"
    '- "title": brief, specific title of the finding\n'
    '- "description": detailed explanation citing files and code from the input\n'
    f'- "severity": one of {SEVERITY_VALUES}\n'
    f'- "category": one of {CATEGORY_VALUES}\n\n'
    "Focus on concrete, actionable issues rather than general observations. "
    'If the code shows no issues worth reporting, return {"insights": []}.'
)

# =============================================================================
# User Prompt
# =============================================================================


@dataclass(frozen=True)
class ChunkPromptContext:
    """Context for one chunk prompt.

    Attributes:
        repository: ``owner/name``
        chunk_index: Zero-based chunk index
        total_chunks: Number of chunks in the plan
        max_insights: Upper bound on findings requested
    """

    repository: str
    chunk_index: int
    total_chunks: int
    max_insights: int = 10


def build_chunk_prompt(content: str, context: ChunkPromptContext) -> str:
    """Build the user prompt for one chunk.

    Args:
        content: Chunk content (``// File: path`` headed bodies)
        context: Repository and position of the chunk

    Returns:
        User prompt text
    """
    if context.total_chunks > 1:
        position = (
            f"This is part {context.chunk_index + 1} of {context.total_chunks} of the "
            "repository's source. Files may be cut at the part boundaries; only report "
            "issues visible in this part."
        )
    else:
        position = "This is the complete ingested source of the repository."

    return (
        f"Analyze this code from repository {context.repository}.\n"
        f"{position}\n\n"
        f"{content}\n\n"
        f"Identify up to {context.max_insights} of the most important insights. "
        "Ensure your response is valid JSON."
    )
