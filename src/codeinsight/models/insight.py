"""Insight entity: one structured finding produced by the model."""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any


class Severity(Enum):
    """How serious a finding is."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class InsightCategory(Enum):
    """Kind of finding."""

    BUG = "bug"
    SECURITY = "security"
    PERFORMANCE = "performance"
    ARCHITECTURE = "architecture"
    BEST_PRACTICE = "best_practice"
    CODE_QUALITY = "code_quality"


DEFAULT_TITLE = "Untitled Insight"
DEFAULT_DESCRIPTION = "No description provided"


def coerce_severity(value: Any) -> Severity:
    """Map a raw severity value to Severity, defaulting to MEDIUM."""
    if isinstance(value, Severity):
        return value
    try:
        return Severity(str(value).strip().lower())
    except ValueError:
        return Severity.MEDIUM


def coerce_category(value: Any) -> InsightCategory:
    """Map a raw category value to InsightCategory, defaulting to CODE_QUALITY.

    Accepts ``best practice``, ``best-practice`` and ``Best_Practice`` alike.
    """
    if isinstance(value, InsightCategory):
        return value
    normalized = str(value).strip().lower().replace("-", "_").replace(" ", "_")
    try:
        return InsightCategory(normalized)
    except ValueError:
        return InsightCategory.CODE_QUALITY


@dataclass(frozen=True)
class Insight:
    """One finding produced by the model.

    Attributes:
        title: Short headline
        description: Detailed explanation
        severity: low, medium or high
        category: Finding category
        id: Synthetic identifier assigned after consolidation
    """

    title: str
    description: str
    severity: Severity = Severity.MEDIUM
    category: InsightCategory = InsightCategory.CODE_QUALITY
    id: str | None = None

    def with_id(self, insight_id: str) -> "Insight":
        """Return a copy carrying the given identifier."""
        return replace(self, id=insight_id)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        data: dict[str, Any] = {
            "title": self.title,
            "description": self.description,
            "severity": self.severity.value,
            "category": self.category.value,
        }
        if self.id is not None:
            data["id"] = self.id
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Insight":
        """Create an Insight from a loosely-typed dictionary.

        Unknown severities fall back to medium and unknown categories to
        code_quality; missing text fields get placeholder values.
        """
        title = data.get("title")
        description = data.get("description")
        return cls(
            title=str(title).strip() if title else DEFAULT_TITLE,
            description=str(description).strip() if description else DEFAULT_DESCRIPTION,
            severity=coerce_severity(data.get("severity", "medium")),
            category=coerce_category(data.get("category", "code_quality")),
            id=data.get("id"),
        )
