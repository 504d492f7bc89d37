"""Structured generation of dish drafts, range reviews, day feedback and embeddings."""

import json
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Protocol, TypeVar

from pydantic import BaseModel, ValidationError

from menu_planner.domain.errors import MalformedOutputError
from menu_planner.domain.menus import (
    DailyGeneratedMeals,
    GeneratedMeal,
    MealType,
    NutritionFeedback,
    ReviewResult,
    TargetSlot,
    UserProfile,
    WeeklyReviewIssue,
)
from menu_planner.services.feedback import analyze_day
from menu_planner.services.retry import RetryPolicy, call_with_retry
from menu_planner.services.step_utils import meal_type_label

_logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

_MEAL_TYPES = ["breakfast", "lunch", "dinner", "snack", "midnight_snack"]

_DISH_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        "name": {"type": "string"},
        "role": {"type": "string", "enum": ["main", "side", "soup", "rice", "other"]},
        "ingredients": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "amount_g": {"type": "number", "minimum": 0},
                    "note": {"anyOf": [{"type": "string"}, {"type": "null"}]},
                },
                "required": ["name", "amount_g", "note"],
                "additionalProperties": False,
            },
        },
        "instructions": {"type": "array", "items": {"type": "string"}},
    },
    "required": ["name", "role", "ingredients", "instructions"],
    "additionalProperties": False,
}

MEAL_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        "meal_type": {"type": "string", "enum": _MEAL_TYPES},
        "dishes": {"type": "array", "items": _DISH_SCHEMA},
        "advice": {"anyOf": [{"type": "string"}, {"type": "null"}]},
    },
    "required": ["meal_type", "dishes", "advice"],
    "additionalProperties": False,
}

DAY_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        "date": {"type": "string"},
        "meals": {"type": "array", "items": MEAL_SCHEMA},
    },
    "required": ["date", "meals"],
    "additionalProperties": False,
}

REVIEW_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        "has_issues": {"type": "boolean"},
        "issues": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "date": {"type": "string"},
                    "meal_type": {"type": "string", "enum": _MEAL_TYPES},
                    "category": {
                        "type": "string",
                        "enum": [
                            "duplicate",
                            "nutrition_balance",
                            "role_mismatch",
                            "variety",
                            "other",
                        ],
                    },
                    "severity": {"type": "string", "enum": ["low", "medium", "high"]},
                    "issue": {"type": "string"},
                    "suggestion": {"type": "string"},
                },
                "required": [
                    "date",
                    "meal_type",
                    "category",
                    "severity",
                    "issue",
                    "suggestion",
                ],
                "additionalProperties": False,
            },
        },
        "swaps": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "date1": {"type": "string"},
                    "meal_type1": {"type": "string", "enum": _MEAL_TYPES},
                    "date2": {"type": "string"},
                    "meal_type2": {"type": "string", "enum": _MEAL_TYPES},
                    "reason": {"type": "string"},
                },
                "required": ["date1", "meal_type1", "date2", "meal_type2", "reason"],
                "additionalProperties": False,
            },
        },
    },
    "required": ["has_issues", "issues", "swaps"],
    "additionalProperties": False,
}

NUTRITION_FEEDBACK_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        "praise_comment": {"type": "string"},
        "advice": {"type": "string"},
        "nutrition_tip": {"type": "string"},
        "replacements": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "meal": {
                        "type": "string",
                        "enum": ["breakfast", "lunch", "dinner"],
                    },
                    "target": {"type": "string"},
                    "replacement": {"type": "string"},
                    "nutrient_gain": {"type": "string"},
                },
                "required": ["meal", "target", "replacement", "nutrient_gain"],
                "additionalProperties": False,
            },
        },
    },
    "required": ["praise_comment", "advice", "nutrition_tip", "replacements"],
    "additionalProperties": False,
}


class GenerationClient(Protocol):
    """Interface for the external structured-generation capability."""

    async def complete_json(
        self, *, prompt: str, schema: dict[str, object], schema_name: str
    ) -> dict[str, object]:
        """Return a JSON object conforming to ``schema``."""

    async def embed(self, texts: list[str], dimensions: int) -> list[list[float]]:
        """Return one embedding per text, preserving order."""


@dataclass
class GenerationService:
    """Builds prompts, retries transient failures and validates payloads."""

    client: GenerationClient
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
    malformed_retries: int = 1

    async def generate_day(  # noqa: PLR0913
        self,
        *,
        profile: UserProfile,
        date: str,
        meal_types: Sequence[MealType],
        prompt: str = "",
        constraints: dict[str, object] | None = None,
        avoid_dishes: Sequence[str] = (),
    ) -> DailyGeneratedMeals:
        """Draft all requested meals of one day in a single call."""
        labels = ", ".join(f"{t} ({meal_type_label(t)})" for t in meal_types)
        text = "\n".join(
            [
                "Plan Japanese home-cooked meals for one day.",
                f"Date: {date}",
                f"Meals to plan: {labels}",
                _user_context(profile, constraints),
                _request_line(prompt),
                _avoid_line(avoid_dishes),
                _OUTPUT_RULES,
            ]
        )
        requested = set(meal_types)

        def check(result: DailyGeneratedMeals) -> None:
            returned = {meal.meal_type for meal in result.meals}
            missing = requested - returned
            if missing:
                raise MalformedOutputError(f"missing meals: {sorted(missing)}")

        result = await self._structured(
            prompt=text,
            schema=DAY_SCHEMA,
            schema_name="daily_meals",
            model=DailyGeneratedMeals,
            action=f"generate_day:{date}",
            check=check,
        )
        meals = [meal for meal in result.meals if meal.meal_type in requested]
        return DailyGeneratedMeals(date=date, meals=meals)

    async def generate_meal(  # noqa: PLR0913
        self,
        *,
        profile: UserProfile,
        slot: TargetSlot,
        prompt: str = "",
        constraints: dict[str, object] | None = None,
        avoid_dishes: Sequence[str] = (),
        reason: str | None = None,
    ) -> GeneratedMeal:
        """Draft a single meal, optionally correcting a stated problem."""
        lines = [
            "Plan one Japanese home-cooked meal.",
            f"Date: {slot.date}",
            f"Meal: {slot.meal_type} ({meal_type_label(slot.meal_type)})",
            _user_context(profile, constraints),
            _request_line(prompt),
            _avoid_line(avoid_dishes),
        ]
        if reason:
            lines.append(f"The previous draft was rejected: {reason}. Fix this.")
        lines.append(_OUTPUT_RULES)

        def check(result: GeneratedMeal) -> None:
            if result.meal_type != slot.meal_type:
                raise MalformedOutputError(
                    f"expected {slot.meal_type}, got {result.meal_type}"
                )

        return await self._structured(
            prompt="\n".join(line for line in lines if line),
            schema=MEAL_SCHEMA,
            schema_name="meal",
            model=GeneratedMeal,
            action=f"generate_meal:{slot.key}",
            check=check,
        )

    async def regenerate_meal(
        self,
        *,
        profile: UserProfile,
        slot: TargetSlot,
        issue: WeeklyReviewIssue,
        avoid_dishes: Sequence[str] = (),
        constraints: dict[str, object] | None = None,
    ) -> GeneratedMeal:
        """Redraft a meal flagged by the review."""
        reason = issue.issue
        if issue.suggestion:
            reason = f"{reason} (suggestion: {issue.suggestion})"
        return await self.generate_meal(
            profile=profile,
            slot=slot,
            constraints=constraints,
            avoid_dishes=avoid_dishes,
            reason=reason,
        )

    async def review_range(
        self,
        *,
        profile: UserProfile,
        summary: dict[str, dict[str, list[str]]],
    ) -> ReviewResult:
        """Review dish names across a date range for cross-day problems."""
        text = "\n".join(
            [
                "Review this meal plan for duplicated dishes, repeated main "
                "ingredients on consecutive days, unbalanced days and dishes whose "
                "role does not fit the meal.",
                "Report only concrete problems; suggest swaps between meals of the "
                "same date when reordering would fix a problem.",
                _user_context(profile, None),
                "Plan (date -> meal -> dishes):",
                json.dumps(summary, ensure_ascii=False, sort_keys=True),
            ]
        )
        return await self._structured(
            prompt=text,
            schema=REVIEW_SCHEMA,
            schema_name="range_review",
            model=ReviewResult,
            action="review_range",
        )

    async def nutrition_feedback(
        self,
        *,
        profile: UserProfile,
        date: str,
        nutrition: dict[str, float],
        meal_count: int,
        summary: dict[str, dict[str, list[str]]],
    ) -> NutritionFeedback:
        """Praise a day's meals and suggest calorie-neutral improvements."""
        statuses = analyze_day(nutrition)
        groups = {
            label: [item.label for item in statuses if item.status == label]
            for label in ("適正", "不足", "過剰")
        }
        today = [
            name for names in summary.get(date, {}).values() for name in names
        ]
        text = "\n".join(
            [
                "You are a supportive dietitian reviewing one day of Japanese meals.",
                f"Date: {date}",
                f"Meals eaten: {meal_count}",
                f"Dishes today: {'、'.join(today) or 'none'}",
                _user_context(profile, None),
                "Nutrients against daily reference intakes:",
                *(f"- {item.describe()}" for item in statuses),
                *(
                    f"{label}: {'、'.join(names) or 'なし'}"
                    for label, names in groups.items()
                ),
                "Plan (date -> meal -> dishes):",
                json.dumps(summary, ensure_ascii=False, sort_keys=True),
                "Write praise_comment (always positive, 80-120 characters), advice "
                "(100-150 characters on covering shortfalls without adding calories), "
                "nutrition_tip (40-60 characters) and 1-3 replacements that swap "
                "ingredients or dishes without raising calories.",
            ]
        )
        return await self._structured(
            prompt=text,
            schema=NUTRITION_FEEDBACK_SCHEMA,
            schema_name="nutrition_feedback",
            model=NutritionFeedback,
            action=f"nutrition_feedback:{date}",
        )

    async def embed(self, texts: list[str], dimensions: int) -> list[list[float]]:
        """Embed texts with transient-error retries."""
        if not texts:
            return []
        return await call_with_retry(
            lambda: self.client.embed(texts, dimensions),
            action="embed",
            policy=self.retry_policy,
        )

    async def _structured(  # noqa: PLR0913
        self,
        *,
        prompt: str,
        schema: dict[str, object],
        schema_name: str,
        model: type[ModelT],
        action: str,
        check: Callable[[ModelT], None] | None = None,
    ) -> ModelT:
        last_error: Exception | None = None
        for attempt in range(self.malformed_retries + 1):
            try:
                raw = await call_with_retry(
                    lambda: self.client.complete_json(
                        prompt=prompt, schema=schema, schema_name=schema_name
                    ),
                    action=action,
                    policy=self.retry_policy,
                )
                result = model.model_validate(raw)
                if check is not None:
                    check(result)
                return result
            except (MalformedOutputError, ValidationError) as exc:
                last_error = exc
                _logger.warning(
                    "%s returned malformed output (attempt %s/%s): %s",
                    action,
                    attempt + 1,
                    self.malformed_retries + 1,
                    exc,
                )
        raise MalformedOutputError(f"{action}: {last_error}") from last_error


_OUTPUT_RULES = (
    "Rules: write dish and ingredient names in Japanese; give every ingredient an "
    "amount in grams per serving; mark each dish role as main, side, soup, rice or "
    "other; keep instructions short."
)


def _user_context(profile: UserProfile, constraints: dict[str, object] | None) -> str:
    lines = ["User context:"]
    if profile.allergies:
        lines.append(
            f"- Allergies (never use): {', '.join(profile.allergies)}"
        )
    if profile.dislikes:
        lines.append(f"- Dislikes: {', '.join(profile.dislikes)}")
    if profile.diet_goal:
        lines.append(f"- Goal: {profile.diet_goal}")
    if profile.daily_calorie_target:
        lines.append(f"- Daily energy target: {profile.daily_calorie_target} kcal")
    if profile.notes:
        lines.append(f"- Notes: {profile.notes}")
    for key, value in sorted((constraints or {}).items()):
        if value not in (None, "", [], {}):
            lines.append(f"- {key}: {value}")
    if len(lines) == 1:
        lines.append("- none")
    return "\n".join(lines)


def _request_line(prompt: str) -> str:
    return f"Request: {prompt}" if prompt else ""


def _avoid_line(avoid_dishes: Sequence[str]) -> str:
    if not avoid_dishes:
        return ""
    return f"Avoid repeating these dishes: {', '.join(avoid_dishes)}"
