"""Ingredient resolution domain models."""

from dataclasses import dataclass, field
from typing import Literal

from menu_planner.domain.nutrients import NutrientVector

MatchMethod = Literal["exact", "fuzzy", "semantic"]


@dataclass(frozen=True)
class IngredientQuery:
    """Free-text ingredient as written by the generation step."""

    name: str
    amount_g: float
    note: str | None = None


@dataclass(frozen=True)
class ReferenceIngredient:
    """Canonical reference-store record with per-100 g nutrients."""

    id: str
    name: str
    name_norm: str
    nutrients: NutrientVector = field(default_factory=NutrientVector)
    similarity: float = 1.0


@dataclass(frozen=True)
class IngredientMatch:
    """Outcome of resolving one ingredient query."""

    query: IngredientQuery
    reference: ReferenceIngredient | None = None
    similarity: float = 0.0
    method: MatchMethod | None = None
    skip: bool = False

    @property
    def matched(self) -> bool:
        """Return True when a reference record was found."""
        return self.reference is not None

    def to_audit(self) -> dict[str, object]:
        """Return a serializable audit-trail entry."""
        return {
            "name": self.query.name,
            "amount_g": self.query.amount_g,
            "note": self.query.note,
            "matched_id": self.reference.id if self.reference else None,
            "matched_name": self.reference.name if self.reference else None,
            "similarity": round(self.similarity, 4),
            "method": self.method,
            "skip": self.skip,
        }


@dataclass(frozen=True)
class KeywordRule:
    """Gate requiring a candidate to mention one of ``required`` when the query
    mentions one of ``triggers``."""

    name: str
    triggers: tuple[str, ...]
    required: tuple[str, ...]


@dataclass(frozen=True)
class MatchingStats:
    """Aggregated diagnostics over a list of matches."""

    total: int
    matched: int
    skipped: int
    exact: int
    fuzzy: int
    semantic: int
    high_confidence: int
    medium_confidence: int
    low_confidence: int
    unmatched: int
    mapping_rate: float
