"""Menu generation domain models."""

from dataclasses import dataclass, field
from typing import Literal

from pydantic import BaseModel, Field

from menu_planner.domain.ingredients import IngredientMatch
from menu_planner.domain.nutrients import NutrientVector

MealType = Literal["breakfast", "lunch", "dinner", "snack", "midnight_snack"]
DishRole = Literal["main", "side", "soup", "rice", "other"]
JobStatus = Literal["queued", "processing", "completed", "failed"]

CORE_MEAL_TYPES: tuple[MealType, ...] = ("breakfast", "lunch", "dinner")
TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "failed"})
STANDARD_TOTAL_STEPS = 3
ULTIMATE_TOTAL_STEPS = 6


class GeneratedIngredient(BaseModel):
    """Ingredient line of a generated dish."""

    name: str = Field(min_length=1)
    amount_g: float = Field(ge=0)
    note: str | None = None


class GeneratedDish(BaseModel):
    """Dish draft returned by the generation capability."""

    name: str = Field(min_length=1)
    role: DishRole = "other"
    ingredients: list[GeneratedIngredient]
    instructions: list[str] = Field(default_factory=list)


class GeneratedMeal(BaseModel):
    """Meal draft for one slot."""

    meal_type: MealType
    dishes: list[GeneratedDish] = Field(min_length=1)
    advice: str | None = None


class DailyGeneratedMeals(BaseModel):
    """Drafts for every requested meal of one day."""

    date: str
    meals: list[GeneratedMeal]


class WeeklyReviewIssue(BaseModel):
    """Problem found by the whole-range review."""

    date: str
    meal_type: MealType
    category: str = "other"
    severity: Literal["low", "medium", "high"] = "medium"
    issue: str
    suggestion: str = ""


class NutritionReplacement(BaseModel):
    """Calorie-neutral substitution proposed by the nutrition feedback."""

    meal: Literal["breakfast", "lunch", "dinner"]
    target: str
    replacement: str
    nutrient_gain: str = ""


class NutritionFeedback(BaseModel):
    """Dietitian-style feedback on one day of meals."""

    praise_comment: str = ""
    advice: str = ""
    nutrition_tip: str = ""
    replacements: list[NutritionReplacement] = Field(default_factory=list)


class MealSwap(BaseModel):
    """Exchange of two meals within a date range."""

    date1: str
    meal_type1: MealType
    date2: str
    meal_type2: MealType
    reason: str = ""


class ReviewResult(BaseModel):
    """Outcome of the whole-range review."""

    has_issues: bool
    issues: list[WeeklyReviewIssue] = Field(default_factory=list)
    swaps: list[MealSwap] = Field(default_factory=list)


@dataclass(frozen=True)
class UserProfile:
    """User context passed into generation prompts."""

    user_id: str
    allergies: tuple[str, ...] = ()
    dislikes: tuple[str, ...] = ()
    diet_goal: str | None = None
    daily_calorie_target: int | None = None
    family_size: int = 1
    notes: str | None = None


@dataclass(frozen=True)
class TargetSlot:
    """Date and meal type the orchestrator has to (re)generate."""

    date: str
    meal_type: MealType
    planned_meal_id: str | None = None

    @property
    def key(self) -> str:
        """Return the composite ``date:meal_type`` key."""
        return f"{self.date}:{self.meal_type}"

    def to_dict(self) -> dict[str, object]:
        """Return the slot as a JSON-ready mapping."""
        return {
            "date": self.date,
            "meal_type": self.meal_type,
            "planned_meal_id": self.planned_meal_id,
        }


@dataclass
class ResolvedDish:
    """Generated dish with resolved ingredients and nutrition."""

    dish: GeneratedDish
    matches: list[IngredientMatch]
    totals: NutrientVector
    mapping_rate: float
    warnings: list[str] = field(default_factory=list)
    floor_passed: bool = True

    def to_dict(self) -> dict[str, object]:
        """Return the dish as a JSON-ready mapping."""
        return {
            "name": self.dish.name,
            "role": self.dish.role,
            "ingredients": [
                ingredient.model_dump() for ingredient in self.dish.ingredients
            ],
            "instructions": list(self.dish.instructions),
            "nutrition": self.totals.to_dict(),
            "mapping_rate": self.mapping_rate,
            "ingredient_matches": [match.to_audit() for match in self.matches],
            "warnings": list(self.warnings),
        }


@dataclass
class ResolvedMeal:
    """Accepted meal for one slot."""

    slot: TargetSlot
    dishes: list[ResolvedDish]
    totals: NutrientVector
    mapping_rate: float
    advice: str | None = None
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        """Return the meal as a JSON-ready mapping."""
        return {
            "date": self.slot.date,
            "meal_type": self.slot.meal_type,
            "planned_meal_id": self.slot.planned_meal_id,
            "dishes": [dish.to_dict() for dish in self.dishes],
            "nutrition": self.totals.to_dict(),
            "mapping_rate": self.mapping_rate,
            "advice": self.advice,
            "warnings": list(self.warnings),
        }


@dataclass
class GenerationJob:
    """Long-running menu generation request and its resumable state."""

    id: str
    user_id: str
    start_date: str
    target_slots: list[TargetSlot]
    status: JobStatus = "queued"
    current_step: int = 1
    cursor: int = 0
    fix_cursor: int = 0
    save_cursor: int = 0
    prompt: str = ""
    constraints: dict[str, object] = field(default_factory=dict)
    generated_meals: dict[str, dict[str, object]] = field(default_factory=dict)
    slot_errors: dict[str, str] = field(default_factory=dict)
    flagged_issues: list[dict[str, object]] = field(default_factory=list)
    review: dict[str, object] | None = None
    progress: dict[str, object] = field(default_factory=dict)
    saved_count: int = 0
    protected_slots: list[str] = field(default_factory=list)
    error_message: str | None = None
    ultimate_mode: bool = False
    feedback_cursor: int = 0
    improve_cursor: int = 0
    day_nutrition: dict[str, dict[str, float]] = field(default_factory=dict)
    feedback: dict[str, dict[str, object]] = field(default_factory=dict)
    days_needing_improvement: list[str] = field(default_factory=list)
    improved_dates: list[str] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        """Return True once the job is completed or failed."""
        return self.status in TERMINAL_STATUSES

    @property
    def total_steps(self) -> int:
        """Return 6 when feedback and improvement steps run, else 3."""
        return ULTIMATE_TOTAL_STEPS if self.ultimate_mode else STANDARD_TOTAL_STEPS
