"""Tests for nutrient aggregation."""

import asyncio
import itertools

import pytest

from menu_planner.domain.ingredients import IngredientMatch, IngredientQuery
from menu_planner.domain.nutrients import NutrientVector
from menu_planner.services.aggregator import (
    aggregate,
    mapping_rate,
    matching_stats,
    minimum_calories_for_role,
    round_nutrients,
    validate_and_adjust,
)
from menu_planner.services.resolver import ExactTier, IngredientResolver
from tests.conftest import FakeReferenceStore, reference


def _match(name: str, amount_g: float, calories: float, protein: float = 0.0):
    return IngredientMatch(
        query=IngredientQuery(name, amount_g),
        reference=reference(name, calories, protein=protein),
        similarity=1.0,
        method="exact",
    )


def test_pork_and_water_scenario(reference_store: FakeReferenceStore) -> None:
    resolver = IngredientResolver(tiers=[ExactTier(reference_store)])
    matches = asyncio.run(
        resolver.resolve_many(
            [IngredientQuery("豚ひき肉", 150), IngredientQuery("水", 200)]
        )
    )

    totals = aggregate(matches)

    assert totals.calories_kcal == pytest.approx(375)
    assert matches[1].skip
    assert mapping_rate(matches) == 1.0


def test_aggregate_is_order_independent() -> None:
    matches = [
        _match("豚ひき肉", 150, 250, protein=17.7),
        _match("たまねぎ", 73.3, 33, protein=1.0),
        _match("ごはん", 180, 156, protein=2.5),
        _match("ごま油", 4.2, 890),
    ]
    expected = aggregate(matches).to_dict()

    for permutation in itertools.permutations(matches):
        assert aggregate(permutation).to_dict() == pytest.approx(expected)


def test_skipped_matches_contribute_nothing() -> None:
    water = IngredientMatch(
        query=IngredientQuery("water", 1000),
        reference=reference("water", 100),
        skip=True,
    )

    totals = aggregate([water, _match("ごはん", 100, 156)])

    assert totals.calories_kcal == pytest.approx(156)


def test_unmatched_ingredients_lower_mapping_rate() -> None:
    unmatched = IngredientMatch(query=IngredientQuery("謎の食材", 30))
    water = IngredientMatch(query=IngredientQuery("水", 100), skip=True)

    assert mapping_rate([_match("ごはん", 100, 156), unmatched, water]) == 0.5
    assert mapping_rate([water]) == 1.0
    assert mapping_rate([]) == 1.0


def test_matching_stats_counts_methods_and_confidence() -> None:
    fuzzy = IngredientMatch(
        query=IngredientQuery("豚バラ肉", 100),
        reference=reference("豚ばら肉", 366, similarity=0.4),
        similarity=0.4,
        method="fuzzy",
    )
    semantic = IngredientMatch(
        query=IngredientQuery("オニオン", 50),
        reference=reference("たまねぎ", 33, similarity=0.8),
        similarity=0.8,
        method="semantic",
    )
    stats = matching_stats(
        [
            _match("ごはん", 100, 156),
            fuzzy,
            semantic,
            IngredientMatch(query=IngredientQuery("謎", 1)),
            IngredientMatch(query=IngredientQuery("水", 1), skip=True),
        ]
    )

    assert stats.total == 5
    assert stats.matched == 3
    assert stats.skipped == 1
    assert (stats.exact, stats.fuzzy, stats.semantic) == (1, 1, 1)
    assert stats.high_confidence == 2
    assert stats.low_confidence == 1
    assert stats.unmatched == 1
    assert stats.mapping_rate == pytest.approx(0.75)


def test_round_nutrients() -> None:
    rounded = round_nutrients(
        NutrientVector(calories_kcal=375.4, protein_g=26.56, vitamin_b1_mg=0.12345)
    )

    assert rounded.calories_kcal == 375.0
    assert rounded.protein_g == 26.6
    assert rounded.vitamin_b1_mg == 0.12


def test_calorie_floors_by_role() -> None:
    assert minimum_calories_for_role("main") == 100
    assert minimum_calories_for_role("soup") == 20
    assert minimum_calories_for_role("dessert") == 20

    low_main = validate_and_adjust("main", NutrientVector(calories_kcal=80))
    side = validate_and_adjust("side", NutrientVector(calories_kcal=45))

    assert not low_main.passed
    assert "expected at least 100 kcal" in low_main.message
    assert side.passed
