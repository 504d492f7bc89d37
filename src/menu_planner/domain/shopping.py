"""Shopping list domain models."""

from dataclasses import dataclass, field
from typing import Literal

ItemSource = Literal["manual", "generated"]

CATEGORY_ORDER: tuple[str, ...] = (
    "野菜",
    "肉",
    "魚",
    "卵",
    "乳製品",
    "豆腐・大豆",
    "麺・米",
    "乾物",
    "調味料",
    "その他",
)


@dataclass(frozen=True)
class QuantityVariant:
    """One way of expressing how much of an item to buy."""

    display: str
    unit: str
    value: float | None

    def to_dict(self) -> dict[str, object]:
        """Return the variant as a JSON-ready mapping."""
        return {"display": self.display, "unit": self.unit, "value": self.value}


@dataclass(frozen=True)
class ShoppingItem:
    """Grocery item with alternative quantity phrasings."""

    item_name: str
    normalized_name: str
    quantity_variants: tuple[QuantityVariant, ...]
    category: str = "その他"
    source: ItemSource = "generated"
    is_checked: bool = False
    selected_variant_index: int = 0
    id: str | None = None

    @property
    def selected_variant(self) -> QuantityVariant | None:
        """Return the variant currently chosen for display."""
        if not self.quantity_variants:
            return None
        last = len(self.quantity_variants) - 1
        index = min(max(self.selected_variant_index, 0), last)
        return self.quantity_variants[index]


@dataclass(frozen=True)
class RawShoppingInput:
    """Ingredient line collected from planned meals before normalization."""

    name: str
    amount: str | None
    count: int = 1


@dataclass(frozen=True)
class ServingsConfig:
    """Number of servings per day-of-week and meal type."""

    default: int = 1
    by_day_meal: dict[str, dict[str, int]] = field(default_factory=dict)

    def servings_for(self, day_of_week: str, meal_type: str) -> int:
        """Return servings for a weekday/meal pair, falling back to the default."""
        by_day = self.by_day_meal.get(day_of_week) or {}
        value = by_day.get(meal_type)
        if value is None:
            return self.default
        return value

    def to_dict(self) -> dict[str, object]:
        """Return the config as a JSON-ready mapping."""
        return {"default": self.default, "byDayMeal": self.by_day_meal}

    @classmethod
    def from_dict(cls, raw: dict[str, object] | None) -> "ServingsConfig | None":
        """Parse a stored servings config."""
        if not raw:
            return None
        default = raw.get("default")
        by_day = raw.get("byDayMeal") or raw.get("by_day_meal") or {}
        return cls(
            default=int(default) if isinstance(default, int | float) else 1,
            by_day_meal=by_day if isinstance(by_day, dict) else {},
        )


@dataclass
class ShoppingListRequest:
    """Asynchronous shopping list regeneration request."""

    id: str
    user_id: str
    start_date: str
    end_date: str
    status: Literal["queued", "processing", "completed", "failed"] = "queued"
    shopping_list_id: str | None = None
    servings: ServingsConfig | None = None
    progress: dict[str, object] = field(default_factory=dict)
    stats: dict[str, int] = field(default_factory=dict)
    error_message: str | None = None
