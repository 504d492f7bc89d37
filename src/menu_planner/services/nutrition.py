"""Attach resolved nutrition to generated dishes and meals."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from menu_planner.domain.ingredients import IngredientMatch, IngredientQuery
from menu_planner.domain.menus import (
    GeneratedDish,
    GeneratedMeal,
    ResolvedDish,
    ResolvedMeal,
    TargetSlot,
)
from menu_planner.services.aggregator import (
    aggregate,
    mapping_rate,
    round_nutrients,
    sum_vectors,
    validate_and_adjust,
)
from menu_planner.services.resolver import IngredientResolver

_logger = logging.getLogger(__name__)

DEFAULT_LOW_MAPPING_RATE = 0.85


@dataclass
class DishNutritionService:
    """Resolves dish ingredients and computes nutrient totals."""

    resolver: IngredientResolver
    low_mapping_rate: float = DEFAULT_LOW_MAPPING_RATE

    async def resolve_dish(self, dish: GeneratedDish) -> ResolvedDish:
        """Resolve a single dish."""
        matches = await self.resolver.resolve_many(_queries(dish))
        return self._build_dish(dish, matches)

    async def resolve_meal(self, slot: TargetSlot, meal: GeneratedMeal) -> ResolvedMeal:
        """Resolve every dish of one meal."""
        return (await self.resolve_meals([(slot, meal)]))[0]

    async def resolve_meals(
        self, meals: Sequence[tuple[TargetSlot, GeneratedMeal]]
    ) -> list[ResolvedMeal]:
        """Resolve several meals with a single resolver pass over all ingredients."""
        queries: list[IngredientQuery] = []
        for _, meal in meals:
            for dish in meal.dishes:
                queries.extend(_queries(dish))
        matches = await self.resolver.resolve_many(queries)

        resolved: list[ResolvedMeal] = []
        offset = 0
        for slot, meal in meals:
            dishes: list[ResolvedDish] = []
            for dish in meal.dishes:
                count = len(dish.ingredients)
                dishes.append(self._build_dish(dish, matches[offset : offset + count]))
                offset += count
            resolved.append(_build_meal(slot, meal, dishes))
        return resolved

    def _build_dish(
        self, dish: GeneratedDish, matches: list[IngredientMatch]
    ) -> ResolvedDish:
        totals = aggregate(matches)
        rate = mapping_rate(matches)
        warnings: list[str] = []
        if rate < self.low_mapping_rate:
            unmatched = [m.query.name for m in matches if not m.skip and not m.matched]
            warnings.append(
                f"low mapping rate {rate:.2f} (unmatched: {', '.join(unmatched)})"
            )
        floor = validate_and_adjust(dish.role, totals)
        if not floor.passed:
            warnings.append(f"calorie floor: {floor.message}")
        if warnings:
            _logger.info("Dish %s flagged: %s", dish.name, "; ".join(warnings))
        return ResolvedDish(
            dish=dish,
            matches=list(matches),
            totals=round_nutrients(totals),
            mapping_rate=rate,
            warnings=warnings,
            floor_passed=floor.passed,
        )


def _queries(dish: GeneratedDish) -> list[IngredientQuery]:
    return [
        IngredientQuery(name=item.name, amount_g=item.amount_g, note=item.note)
        for item in dish.ingredients
    ]


def _build_meal(
    slot: TargetSlot, meal: GeneratedMeal, dishes: list[ResolvedDish]
) -> ResolvedMeal:
    matches = [match for dish in dishes for match in dish.matches]
    return ResolvedMeal(
        slot=slot,
        dishes=dishes,
        totals=round_nutrients(sum_vectors(dish.totals for dish in dishes)),
        mapping_rate=mapping_rate(matches),
        advice=meal.advice,
        warnings=[warning for dish in dishes for warning in dish.warnings],
    )


def floor_violations(meal: ResolvedMeal) -> list[str]:
    """Return the dishes of a meal that fall below their calorie floor."""
    return [dish.dish.name for dish in meal.dishes if not dish.floor_passed]
