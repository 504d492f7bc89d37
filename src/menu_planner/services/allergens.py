"""Allergen detection over generated dish text."""

import re
from collections.abc import Iterable
from dataclasses import dataclass

from menu_planner.domain.menus import GeneratedDish, GeneratedMeal

_WHITESPACE = re.compile(r"\s+")

NO_ALLERGEN_SENTINELS: frozenset[str] = frozenset({"none", "なし", "特になし"})

ALLERGEN_EXPANSIONS: dict[str, tuple[str, ...]] = {
    "卵": ("卵", "たまご", "タマゴ", "卵黄", "卵白"),
    "egg": ("egg", "eggs", "yolk", "white"),
    "エビ": ("エビ", "えび", "海老"),
    "カニ": ("カニ", "かに", "蟹"),
    "小麦": (
        "小麦",
        "小麦粉",
        "薄力粉",
        "強力粉",
        "パン粉",
        "パン",
        "パスタ",
        "うどん",
        "ラーメン",
        "そうめん",
        "中華麺",
    ),
    "乳製品": (
        "牛乳",
        "乳",
        "チーズ",
        "バター",
        "ヨーグルト",
        "生クリーム",
        "クリーム",
        "脱脂粉乳",
        "ホエイ",
    ),
    "そば": ("そば", "蕎麦"),
    "落花生": ("落花生", "ピーナッツ", "peanut"),
    "ナッツ類": (
        "ナッツ",
        "アーモンド",
        "カシューナッツ",
        "くるみ",
        "胡桃",
        "ピスタチオ",
        "マカダミア",
        "ヘーゼルナッツ",
    ),
    "貝類": (
        "貝",
        "あさり",
        "アサリ",
        "しじみ",
        "シジミ",
        "牡蠣",
        "かき",
        "ホタテ",
        "帆立",
        "はまぐり",
        "ハマグリ",
        "サザエ",
        "つぶ貝",
    ),
    "魚卵": (
        "魚卵",
        "いくら",
        "イクラ",
        "たらこ",
        "タラコ",
        "明太子",
        "めんたいこ",
        "数の子",
        "キャビア",
    ),
    "大豆": (
        "大豆",
        "豆",
        "豆腐",
        "納豆",
        "味噌",
        "みそ",
        "醤油",
        "しょうゆ",
        "豆乳",
        "きなこ",
        "おから",
        "油揚げ",
        "soy",
    ),
}


@dataclass(frozen=True)
class AllergenHit:
    """Declared allergen found in candidate text via one surface form."""

    allergen: str
    needle: str


def normalize_for_match(text: str) -> str:
    """Lower-case and strip whitespace for substring matching."""
    return _WHITESPACE.sub("", text).lower()


def expand_allergen(allergen: str) -> tuple[str, ...]:
    """Return the surface forms that indicate an allergen."""
    key = allergen.strip()
    expansions = ALLERGEN_EXPANSIONS.get(key) or ALLERGEN_EXPANSIONS.get(key.lower())
    return expansions or (key,)


def detect_allergen_hits(
    allergens: Iterable[str], texts: Iterable[str]
) -> list[AllergenHit]:
    """Return every (allergen, surface form) pair found in the texts."""
    normalized_texts = (normalize_for_match(text) for text in texts if text)
    haystack = "\n".join(text for text in normalized_texts if text)
    if not haystack:
        return []
    hits: list[AllergenHit] = []
    seen: set[tuple[str, str]] = set()
    for raw in allergens:
        allergen = raw.strip()
        if not allergen or normalize_for_match(allergen) in NO_ALLERGEN_SENTINELS:
            continue
        for needle in expand_allergen(allergen):
            normalized = normalize_for_match(needle)
            if not normalized or normalized not in haystack:
                continue
            key = (allergen, needle)
            if key in seen:
                continue
            seen.add(key)
            hits.append(AllergenHit(allergen=allergen, needle=needle))
    return hits


def summarize_allergen_hits(hits: list[AllergenHit]) -> str:
    """Return a readable summary such as ``egg(yolk,white)``."""
    grouped: dict[str, list[str]] = {}
    for hit in hits:
        grouped.setdefault(hit.allergen, []).append(hit.needle)
    return " / ".join(
        f"{allergen}({','.join(needles)})" for allergen, needles in grouped.items()
    )


def dish_texts(dish: GeneratedDish) -> list[str]:
    """Collect the text of a dish that allergens are checked against."""
    texts = [dish.name]
    for ingredient in dish.ingredients:
        texts.append(ingredient.name)
        if ingredient.note:
            texts.append(ingredient.note)
    return texts


def meal_texts(meal: GeneratedMeal) -> list[str]:
    """Collect the text of every dish in a meal."""
    texts: list[str] = []
    for dish in meal.dishes:
        texts.extend(dish_texts(dish))
    return texts
