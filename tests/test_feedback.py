"""Tests for the daily nutrient analysis."""

import pytest

from menu_planner.domain.menus import NutritionFeedback
from menu_planner.services.feedback import (
    analyze_day,
    issues_from_advice,
    needs_improvement,
    reference_percentage,
)


@pytest.mark.parametrize(
    ("key", "value", "expected"),
    [
        ("calories_kcal", 2000, 100),
        ("protein_g", 15, 25),
        ("salt_eq_g", 15, 200),
        ("vitamin_b1_mg", None, 0),
        ("cholesterol_mg", 300, 0),
    ],
)
def test_reference_percentage(key: str, value: float | None, expected: int) -> None:
    assert reference_percentage(key, value) == expected


def test_analyze_day_labels_each_nutrient() -> None:
    statuses = {
        item.key: item
        for item in analyze_day(
            {"calories_kcal": 1800, "protein_g": 15, "salt_eq_g": 15, "fat_g": 40}
        )
    }

    assert len(statuses) == 16
    assert statuses["calories_kcal"].status == "適正"
    assert statuses["protein_g"].status == "不足"
    assert statuses["salt_eq_g"].status == "過剰"
    assert statuses["fat_g"].status == "目標に近い"
    assert statuses["vitamin_c_mg"].percentage == 0
    assert statuses["protein_g"].describe() == "タンパク質: 15.0g (推奨量の25% - 不足)"


def test_issues_from_advice() -> None:
    assert issues_from_advice("鉄分が不足し、塩分が過剰です") == ["栄養素不足", "栄養素過剰"]
    assert issues_from_advice("バランスが良いです") == ["バランス改善"]
    assert issues_from_advice("") == []


def test_needs_improvement_requires_substantial_advice() -> None:
    assert not needs_improvement(NutritionFeedback(advice="野菜を足しましょう"))
    assert needs_improvement(NutritionFeedback(advice="野" * 51))
    assert not needs_improvement(NutritionFeedback(advice="野" * 50))
