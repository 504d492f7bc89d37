"""Daily nutrient analysis behind the dietitian feedback step."""

from dataclasses import dataclass

from menu_planner.domain.menus import NutritionFeedback

# Adult daily reference intakes: (label, unit, reference amount, decimals).
DAILY_REFERENCE_INTAKES: dict[str, tuple[str, str, float, int]] = {
    "calories_kcal": ("エネルギー", "kcal", 2000, 0),
    "protein_g": ("タンパク質", "g", 60, 1),
    "fat_g": ("脂質", "g", 55, 1),
    "carbs_g": ("炭水化物", "g", 300, 1),
    "fiber_g": ("食物繊維", "g", 21, 1),
    "salt_eq_g": ("塩分", "g", 7.5, 1),
    "potassium_mg": ("カリウム", "mg", 2500, 0),
    "calcium_mg": ("カルシウム", "mg", 700, 0),
    "magnesium_mg": ("マグネシウム", "mg", 340, 0),
    "iron_mg": ("鉄分", "mg", 7.5, 1),
    "zinc_mg": ("亜鉛", "mg", 10, 1),
    "vitamin_a_ug": ("ビタミンA", "µg", 850, 0),
    "vitamin_b1_mg": ("ビタミンB1", "mg", 1.3, 2),
    "vitamin_b2_mg": ("ビタミンB2", "mg", 1.5, 2),
    "vitamin_c_mg": ("ビタミンC", "mg", 100, 0),
    "vitamin_d_ug": ("ビタミンD", "µg", 8.5, 1),
}

DEFICIENT_PERCENT = 50
EXCESS_PERCENT = 150
ADEQUATE_RANGE = (80, 120)
# Advice longer than this marks the day for regeneration.
ADVICE_MIN_LENGTH = 50
FALLBACK_PRAISE = "バランスの良い食事を心がけていますね✨"

_ADVICE_KEYWORDS: tuple[tuple[str, str], ...] = (
    ("不足", "栄養素不足"),
    ("過剰", "栄養素過剰"),
    ("バランス", "バランス改善"),
)


@dataclass(frozen=True)
class NutrientStatus:
    """One nutrient of a day compared with its reference intake."""

    key: str
    label: str
    value: float
    unit: str
    percentage: int
    decimals: int

    @property
    def status(self) -> str:
        """Return 適正, 不足, 過剰 or 目標に近い."""
        low, high = ADEQUATE_RANGE
        if low <= self.percentage <= high:
            return "適正"
        if self.percentage < DEFICIENT_PERCENT:
            return "不足"
        if self.percentage > EXCESS_PERCENT:
            return "過剰"
        return "目標に近い"

    def describe(self) -> str:
        return (
            f"{self.label}: {self.value:.{self.decimals}f}{self.unit} "
            f"(推奨量の{self.percentage}% - {self.status})"
        )


def reference_percentage(key: str, value: float | None) -> int:
    """Return ``value`` as a rounded percentage of the daily reference intake."""
    reference = DAILY_REFERENCE_INTAKES.get(key)
    if value is None or reference is None:
        return 0
    return round(value / reference[2] * 100)


def analyze_day(nutrition: dict[str, float]) -> list[NutrientStatus]:
    """Compare a day's totals against every reference intake."""
    statuses: list[NutrientStatus] = []
    for key, (label, unit, _, decimals) in DAILY_REFERENCE_INTAKES.items():
        value = float(nutrition.get(key) or 0.0)
        statuses.append(
            NutrientStatus(
                key=key,
                label=label,
                value=value,
                unit=unit,
                percentage=reference_percentage(key, value),
                decimals=decimals,
            )
        )
    return statuses


def issues_from_advice(advice: str) -> list[str]:
    """Tag advice text with the kinds of problems it mentions."""
    return [tag for keyword, tag in _ADVICE_KEYWORDS if keyword in advice]


def needs_improvement(feedback: NutritionFeedback) -> bool:
    """Return True when the advice is substantial enough to act on."""
    return len(feedback.advice) > ADVICE_MIN_LENGTH
