"""Model response parsing.

Three paths, tried in order:

1. ``parse_insights_json``: strict. The response (or a fenced ```json block,
   or the outermost ``{...}`` / ``[...]`` span) must decode to either a list
   of insight objects or an object with an ``insights`` list. Each item must
   be an object with a non-empty string ``title``.
2. ``extract_insights_heuristic``: degraded. Splits the text into
   blank-line separated blocks and reads ``title:`` / ``description:`` /
   ``severity:`` / ``category:`` labels.
3. ``diagnostic_insight``: a single low-severity finding recording that the
   response could not be interpreted.

``parse_model_response`` runs the chain and reports which path produced the
result so callers can surface degraded parses as warnings.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from codeinsight.errors import ParseError
from codeinsight.models.insight import (
    DEFAULT_DESCRIPTION,
    Insight,
    InsightCategory,
    Severity,
    coerce_category,
    coerce_severity,
)

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)```", re.DOTALL | re.IGNORECASE)

_BLOCK_SPLIT_RE = re.compile(r"\n\s*\n")
_TITLE_RE = re.compile(r"(?:title|issue|problem)\s*:\s*([^\n]+)", re.IGNORECASE)
_DESCRIPTION_RE = re.compile(
    r"(?:description|details)\s*:\s*([^\n]+(?:\n(?!\s*(?:severity|category)\s*:)[^\n]+)*)",
    re.IGNORECASE,
)
_SEVERITY_RE = re.compile(r"severity\s*:\s*(low|medium|high)", re.IGNORECASE)
_CATEGORY_RE = re.compile(
    r"category\s*:\s*(bug|security|performance|architecture|best[_ -]practice|code[_ -]quality)",
    re.IGNORECASE,
)
# Markdown emphasis and list bullets in front of labels
_DECORATION_RE = re.compile(r"^[ \t>*#-]*|\*\*", re.MULTILINE)

DIAGNOSTIC_TITLE = "Unparseable model response"


class ParseMode(Enum):
    """Which parsing path produced a result."""

    JSON = "json"
    HEURISTIC = "heuristic"
    DIAGNOSTIC = "diagnostic"


@dataclass
class ParsedResponse:
    """Outcome of parsing one model response.

    Attributes:
        insights: Parsed insights (never empty for DIAGNOSTIC)
        mode: Parsing path that produced them
        error: Why the strict path failed, when it did
    """

    insights: list[Insight] = field(default_factory=list)
    mode: ParseMode = ParseMode.JSON
    error: str | None = None

    @property
    def degraded(self) -> bool:
        """True when the strict JSON path did not succeed."""
        return self.mode != ParseMode.JSON


# =============================================================================
# Strict JSON Path
# =============================================================================


def _json_candidates(text: str) -> list[str]:
    candidates = [text.strip()]
    candidates.extend(m.group(1).strip() for m in _FENCE_RE.finditer(text))
    for opener, closer in (("{", "}"), ("[", "]")):
        start, end = text.find(opener), text.rfind(closer)
        if start != -1 and end > start:
            candidates.append(text[start : end + 1])
    return [c for c in dict.fromkeys(candidates) if c]


def _validate_items(payload: Any) -> list[Insight]:
    if isinstance(payload, dict):
        if "insights" not in payload:
            raise ParseError("JSON object has no 'insights' field")
        payload = payload["insights"]

    if not isinstance(payload, list):
        raise ParseError(f"'insights' must be a list, got {type(payload).__name__}")

    insights: list[Insight] = []
    for position, item in enumerate(payload):
        if not isinstance(item, dict):
            raise ParseError(f"insight #{position} is not an object")
        title = item.get("title")
        if not isinstance(title, str) or not title.strip():
            raise ParseError(f"insight #{position} has no title")
        description = item.get("description")
        if description is not None and not isinstance(description, str):
            raise ParseError(f"insight #{position} description is not a string")
        insights.append(Insight.from_dict(item))
    return insights


def parse_insights_json(text: str) -> list[Insight]:
    """Parse a model response as a JSON insight list.

    Args:
        text: Raw model response

    Returns:
        Insights in response order (possibly empty)

    Raises:
        ParseError: If no candidate span decodes to a valid insight list
    """
    last_error = "response is empty"
    for candidate in _json_candidates(text or ""):
        try:
            payload = json.loads(candidate)
        except json.JSONDecodeError as e:
            last_error = f"invalid JSON: {e.msg}"
            continue
        try:
            return _validate_items(payload)
        except ParseError as e:
            last_error = str(e)
    raise ParseError(last_error)


# =============================================================================
# Degraded Heuristic Path
# =============================================================================


def extract_insights_heuristic(text: str) -> list[Insight]:
    """Extract insights from labeled plain-text blocks.

    Each blank-line separated block that has a ``title:`` (or ``issue:`` /
    ``problem:``) label yields one insight. Description defaults to a
    placeholder, severity to medium, category to code_quality.

    Args:
        text: Raw model response

    Returns:
        Extracted insights (empty if no block has a title label)
    """
    insights: list[Insight] = []
    for block in _BLOCK_SPLIT_RE.split(text or ""):
        cleaned = _DECORATION_RE.sub("", block)
        title_match = _TITLE_RE.search(cleaned)
        if not title_match:
            continue
        description_match = _DESCRIPTION_RE.search(cleaned)
        severity_match = _SEVERITY_RE.search(cleaned)
        category_match = _CATEGORY_RE.search(cleaned)
        insights.append(
            Insight(
                title=title_match.group(1).strip(),
                description=(
                    description_match.group(1).strip()
                    if description_match
                    else DEFAULT_DESCRIPTION
                ),
                severity=(
                    coerce_severity(severity_match.group(1))
                    if severity_match
                    else Severity.MEDIUM
                ),
                category=(
                    coerce_category(category_match.group(1))
                    if category_match
                    else InsightCategory.CODE_QUALITY
                ),
            )
        )
    return insights


# =============================================================================
# Diagnostic Fallback
# =============================================================================


def diagnostic_insight(reason: str, chunk_index: int | None = None) -> Insight:
    """Build the single finding recorded when a response is unusable."""
    where = f" for chunk {chunk_index + 1}" if chunk_index is not None else ""
    return Insight(
        title=DIAGNOSTIC_TITLE,
        description=(
            f"The model response{where} could not be parsed as insights ({reason}). "
            "Re-running the analysis may produce a usable result."
        ),
        severity=Severity.LOW,
        category=InsightCategory.CODE_QUALITY,
    )


def parse_model_response(text: str, chunk_index: int | None = None) -> ParsedResponse:
    """Parse a model response through the strict, heuristic, diagnostic chain.

    Args:
        text: Raw model response
        chunk_index: Chunk the response belongs to (for messages)

    Returns:
        ParsedResponse naming the path that succeeded
    """
    try:
        return ParsedResponse(insights=parse_insights_json(text), mode=ParseMode.JSON)
    except ParseError as e:
        error = str(e)

    heuristic = extract_insights_heuristic(text)
    if heuristic:
        logger.warning(
            f"Model response was not valid JSON ({error}); "
            f"recovered {len(heuristic)} insights heuristically"
        )
        return ParsedResponse(insights=heuristic, mode=ParseMode.HEURISTIC, error=error)

    logger.warning(f"Model response could not be parsed: {error}")
    return ParsedResponse(
        insights=[diagnostic_insight(error, chunk_index)],
        mode=ParseMode.DIAGNOSTIC,
        error=error,
    )
