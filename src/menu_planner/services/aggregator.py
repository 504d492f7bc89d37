"""Nutrition aggregation over resolved ingredients."""

from collections.abc import Iterable
from dataclasses import dataclass

from menu_planner.domain.ingredients import IngredientMatch, MatchingStats
from menu_planner.domain.nutrients import NutrientVector

HIGH_CONFIDENCE = 0.7
MEDIUM_CONFIDENCE = 0.5

ROLE_CALORIE_FLOORS: dict[str, float] = {
    "main": 100.0,
    "rice": 100.0,
    "side": 30.0,
    "soup": 20.0,
}
DEFAULT_CALORIE_FLOOR = 20.0

_ONE_DECIMAL_FIELDS = frozenset(
    {
        "protein_g",
        "fat_g",
        "carbs_g",
        "fiber_g",
        "sodium_mg",
        "potassium_mg",
        "calcium_mg",
        "magnesium_mg",
        "phosphorus_mg",
        "iodine_ug",
        "cholesterol_mg",
        "vitamin_a_ug",
        "vitamin_k_ug",
        "folic_acid_ug",
        "vitamin_c_mg",
    }
)


@dataclass(frozen=True)
class FloorCheck:
    """Plausibility check of a dish's energy against its role."""

    role: str
    calories_kcal: float
    minimum_kcal: float

    @property
    def passed(self) -> bool:
        """Return True when the dish meets its calorie floor."""
        return self.calories_kcal >= self.minimum_kcal

    @property
    def message(self) -> str:
        """Return a readable description of the check."""
        return (
            f"{self.role} dish has {self.calories_kcal:.0f} kcal, "
            f"expected at least {self.minimum_kcal:.0f} kcal"
        )


def aggregate(matches: Iterable[IngredientMatch]) -> NutrientVector:
    """Scale per-100 g reference nutrients by grams and sum them."""
    totals = NutrientVector()
    for match in matches:
        if match.skip or match.reference is None:
            continue
        totals.add_scaled(match.reference.nutrients, match.query.amount_g / 100.0)
    return totals


def sum_vectors(vectors: Iterable[NutrientVector]) -> NutrientVector:
    """Sum already-scaled vectors into one total."""
    totals = NutrientVector()
    for vector in vectors:
        totals.add_scaled(vector, 1.0)
    return totals


def mapping_rate(matches: Iterable[IngredientMatch]) -> float:
    """Return resolved / non-skipped ingredients, or 1.0 when nothing counts."""
    counted = [match for match in matches if not match.skip]
    if not counted:
        return 1.0
    return sum(1 for match in counted if match.matched) / len(counted)


def matching_stats(matches: Iterable[IngredientMatch]) -> MatchingStats:
    """Summarize how a list of ingredients was resolved."""
    items = list(matches)
    counted = [match for match in items if not match.skip]
    matched = [match for match in counted if match.matched]
    return MatchingStats(
        total=len(items),
        matched=len(matched),
        skipped=len(items) - len(counted),
        exact=sum(1 for match in matched if match.method == "exact"),
        fuzzy=sum(1 for match in matched if match.method == "fuzzy"),
        semantic=sum(1 for match in matched if match.method == "semantic"),
        high_confidence=sum(
            1 for match in matched if match.similarity >= HIGH_CONFIDENCE
        ),
        medium_confidence=sum(
            1
            for match in matched
            if MEDIUM_CONFIDENCE <= match.similarity < HIGH_CONFIDENCE
        ),
        low_confidence=sum(
            1 for match in matched if match.similarity < MEDIUM_CONFIDENCE
        ),
        unmatched=len(counted) - len(matched),
        mapping_rate=mapping_rate(items),
    )


def round_nutrients(vector: NutrientVector) -> NutrientVector:
    """Round a totals vector for presentation and storage."""
    values: dict[str, float] = {}
    for name, value in vector.to_dict().items():
        if name == "calories_kcal":
            values[name] = float(round(value))
        elif name in _ONE_DECIMAL_FIELDS:
            values[name] = round(value, 1)
        else:
            values[name] = round(value, 2)
    return NutrientVector(**values)


def minimum_calories_for_role(role: str) -> float:
    """Return the plausibility floor in kcal for a dish role."""
    return ROLE_CALORIE_FLOORS.get(role, DEFAULT_CALORIE_FLOOR)


def validate_and_adjust(role: str, totals: NutrientVector) -> FloorCheck:
    """Check a dish's energy against its role floor without changing totals."""
    return FloorCheck(
        role=role,
        calories_kcal=totals.calories_kcal,
        minimum_kcal=minimum_calories_for_role(role),
    )
