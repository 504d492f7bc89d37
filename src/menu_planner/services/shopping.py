"""Shopping list normalization and regeneration."""

import logging
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from datetime import date as date_type
from typing import Protocol
from uuid import uuid4

from menu_planner.domain.errors import JobNotFoundError
from menu_planner.domain.shopping import (
    CATEGORY_ORDER,
    QuantityVariant,
    RawShoppingInput,
    ServingsConfig,
    ShoppingItem,
    ShoppingListRequest,
)
from menu_planner.services.text_normalizer import (
    canonical_name,
    is_waterish,
    katakana_to_hiragana,
    normalize_name,
)

_logger = logging.getLogger(__name__)

_NUMBER = r"(\d+(?:\.\d+)?(?:/\d+)?)"
_PREFIX_UNIT = re.compile(rf"^(大さじ|小さじ)\s*{_NUMBER}$")
_SUFFIX_UNIT = re.compile(rf"^{_NUMBER}\s*([^\d\s].*)?$")
_INGREDIENT_WITH_GRAMS = re.compile(r"^(.+?)\s*(\d+(?:\.\d+)?)\s*g$")

# unit spelling -> (canonical unit, multiplier into the canonical unit)
UNIT_DEFINITIONS: dict[str, tuple[str, float]] = {
    "g": ("g", 1),
    "gram": ("g", 1),
    "grams": ("g", 1),
    "グラム": ("g", 1),
    "kg": ("g", 1000),
    "mg": ("g", 0.001),
    "ml": ("ml", 1),
    "cc": ("ml", 1),
    "l": ("ml", 1000),
    "liter": ("ml", 1000),
    "liters": ("ml", 1000),
    "litre": ("ml", 1000),
    "litres": ("ml", 1000),
    "piece": ("piece", 1),
    "pieces": ("piece", 1),
    "pcs": ("piece", 1),
    "carton": ("carton", 1),
    "cartons": ("carton", 1),
    "pack": ("pack", 1),
    "packs": ("pack", 1),
    "bottle": ("bottle", 1),
    "bottles": ("bottle", 1),
    "can": ("can", 1),
    "cans": ("can", 1),
    "個": ("個", 1),
    "コ": ("個", 1),
    "本": ("本", 1),
    "枚": ("枚", 1),
    "パック": ("パック", 1),
    "袋": ("袋", 1),
    "缶": ("缶", 1),
    "束": ("束", 1),
    "玉": ("玉", 1),
    "片": ("片", 1),
    "株": ("株", 1),
    "丁": ("丁", 1),
    "切れ": ("切れ", 1),
    "カップ": ("カップ", 1),
    "大さじ": ("大さじ", 1),
    "小さじ": ("小さじ", 1),
}
_PREFIX_UNITS = frozenset({"大さじ", "小さじ"})
_SPACED_UNITS = frozenset({"piece", "carton", "pack", "bottle", "can"})
# volume units kept as written but summable with ml
SPOON_MILLILITERS: dict[str, float] = {"大さじ": 15, "小さじ": 5, "カップ": 200}

UNQUANTIFIED = frozenset({"適量", "少々", "少量", "ひとつまみ", "お好みで"})

GROCERY_ALIASES: dict[str, str] = {
    "たまご": "卵",
    "玉子": "卵",
    "鶏卵": "卵",
    "egg": "卵",
    "eggs": "卵",
    "ぎゅうにゅう": "牛乳",
    "みるく": "牛乳",
    "milk": "牛乳",
    "たまねぎ": "玉ねぎ",
    "玉葱": "玉ねぎ",
    "にんじん": "人参",
    "ばれいしょ": "じゃがいも",
    "馬鈴薯": "じゃがいも",
    "しょうが": "生姜",
    "大蒜": "にんにく",
    "ほうれんそう": "ほうれん草",
    "きゃべつ": "キャベツ",
}

CATEGORY_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("卵", ("卵", "たまご", "玉子", "egg")),
    (
        "乳製品",
        ("牛乳", "チーズ", "ヨーグルト", "バター", "生クリーム", "milk", "cheese"),
    ),
    ("豆腐・大豆", ("豆腐", "納豆", "油揚げ", "厚揚げ", "大豆", "豆乳", "おから")),
    (
        "肉",
        ("肉", "ひき肉", "ベーコン", "ハム", "ソーセージ", "鶏", "豚", "牛", "ささみ"),
    ),
    (
        "魚",
        (
            "魚",
            "鮭",
            "さけ",
            "サーモン",
            "さば",
            "鯖",
            "まぐろ",
            "ぶり",
            "鰤",
            "たら",
            "えび",
            "エビ",
            "いか",
            "たこ",
            "あさり",
            "しらす",
            "ツナ",
        ),
    ),
    (
        "調味料",
        (
            "醤油",
            "しょうゆ",
            "味噌",
            "みそ",
            "塩",
            "砂糖",
            "酢",
            "みりん",
            "酒",
            "油",
            "ソース",
            "ケチャップ",
            "マヨネーズ",
            "だし",
            "コンソメ",
            "こしょう",
            "胡椒",
            "片栗粉",
        ),
    ),
    ("麺・米", ("米", "ご飯", "ごはん", "うどん", "そば", "パスタ", "麺", "パン")),
    (
        "野菜",
        (
            "ねぎ",
            "人参",
            "にんじん",
            "キャベツ",
            "白菜",
            "大根",
            "ほうれん草",
            "小松菜",
            "トマト",
            "きゅうり",
            "なす",
            "ピーマン",
            "じゃがいも",
            "さつまいも",
            "かぼちゃ",
            "ブロッコリー",
            "もやし",
            "レタス",
            "きのこ",
            "しいたけ",
            "しめじ",
            "えのき",
            "生姜",
            "にんにく",
            "ごぼう",
            "れんこん",
        ),
    ),
    ("乾物", ("わかめ", "ひじき", "昆布", "かつお節", "干し", "乾燥", "ごま", "海苔")),
)

_WEEKDAYS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


def grocery_key(name: str) -> str:
    """Return the merge key of a grocery item name."""
    key = katakana_to_hiragana(normalize_name(name))
    key = GROCERY_ALIASES.get(key, key)
    return canonical_name(key)


def categorize(name: str) -> str:
    """Return the display category of an item."""
    text = name.lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return category
    return "その他"


def parse_quantity(display: str | None) -> QuantityVariant:
    """Parse a quantity phrase into a numeric value and unit."""
    text = (display or "").strip()
    if not text or text in UNQUANTIFIED:
        return QuantityVariant(display=text or "適量", unit="", value=None)
    compact = text.replace(" ", "")
    prefix = _PREFIX_UNIT.match(compact)
    if prefix:
        value = _parse_number(prefix.group(2))
        if value is not None:
            return _variant(value, prefix.group(1))
    suffix = _SUFFIX_UNIT.match(text)
    value = _parse_number(suffix.group(1)) if suffix else None
    if suffix and value is not None:
        unit_text = (suffix.group(2) or "").strip().lower()
        if not unit_text:
            return _variant(value, "個")
        if unit_text in UNIT_DEFINITIONS:
            return _variant(value, unit_text)
    return QuantityVariant(display=text, unit="", value=None)


def format_quantity(value: float, unit: str) -> str:
    """Render a quantity for display."""
    number = _format_number(value)
    if unit in _PREFIX_UNITS:
        return f"{unit}{number}"
    if unit in _SPACED_UNITS:
        return f"{number} {unit}" + ("s" if value != 1 else "")
    return f"{number}{unit}"


def merge_variants(
    first: Sequence[QuantityVariant], second: Sequence[QuantityVariant]
) -> tuple[QuantityVariant, ...]:
    """Sum quantities in compatible units and keep the others as alternatives."""
    merged: list[QuantityVariant] = list(first)
    for variant in second:
        for index, current in enumerate(merged):
            combined = _sum_variants(current, variant)
            if combined is not None:
                merged[index] = combined
                break
            if variant.value is None and current.value is None:
                if current.display == variant.display:
                    break
        else:
            merged.append(variant)
    return tuple(merged)


def _sum_variants(
    current: QuantityVariant, incoming: QuantityVariant
) -> QuantityVariant | None:
    if current.value is None or incoming.value is None:
        return None
    if current.unit == incoming.unit:
        total = current.value + incoming.value
        unit = current.unit
    else:
        current_ml = _in_milliliters(current)
        incoming_ml = _in_milliliters(incoming)
        if current_ml is None or incoming_ml is None:
            return None
        total = current_ml + incoming_ml
        unit = "ml"
    return QuantityVariant(display=format_quantity(total, unit), unit=unit, value=total)


def _in_milliliters(variant: QuantityVariant) -> float | None:
    if variant.value is None:
        return None
    if variant.unit == "ml":
        return variant.value
    factor = SPOON_MILLILITERS.get(variant.unit)
    return variant.value * factor if factor is not None else None


def select_variant(item: ShoppingItem, index: int) -> ShoppingItem:
    """Choose which quantity variant an item displays."""
    if index < 0 or index >= len(item.quantity_variants):
        raise IndexError(f"variant index {index} out of range")
    return replace(item, selected_variant_index=index)


@dataclass
class ShoppingListNormalizer:
    """Merges items that denote the same ingredient."""

    def normalize(
        self, existing: Iterable[ShoppingItem], new: Iterable[ShoppingItem]
    ) -> list[ShoppingItem]:
        """Return merged items grouped by category."""
        merged: dict[str, ShoppingItem] = {}
        for item in [*existing, *new]:
            key = grocery_key(item.item_name)
            current = merged.get(key)
            if current is None:
                category = item.category
                if category == "その他":
                    category = categorize(item.item_name)
                merged[key] = replace(item, normalized_name=key, category=category)
            else:
                merged[key] = _combine(current, item)
        return sorted(merged.values(), key=_sort_key)


def _combine(current: ShoppingItem, incoming: ShoppingItem) -> ShoppingItem:
    manual = current.source == "manual" or incoming.source == "manual"
    if incoming.source == "manual" and current.source != "manual":
        name = incoming.item_name
    else:
        name = current.item_name
    category = current.category
    if category == "その他":
        category = incoming.category if incoming.category != "その他" else category
    return replace(
        current,
        item_name=name,
        quantity_variants=merge_variants(
            current.quantity_variants, incoming.quantity_variants
        ),
        category=category,
        source="manual" if manual else "generated",
        id=current.id or incoming.id,
    )


def _sort_key(item: ShoppingItem) -> tuple[int, str]:
    try:
        rank = CATEGORY_ORDER.index(item.category)
    except ValueError:
        rank = len(CATEGORY_ORDER)
    return rank, item.item_name


def _variant(value: float, unit_text: str) -> QuantityVariant:
    unit, multiplier = UNIT_DEFINITIONS[unit_text]
    canonical = value * multiplier
    return QuantityVariant(
        display=format_quantity(canonical, unit), unit=unit, value=canonical
    )


def _parse_number(raw: str) -> float | None:
    if "/" in raw:
        numerator, denominator = raw.split("/", 1)
        if float(denominator) == 0:
            return None
        return float(numerator) / float(denominator)
    return float(raw)


def _format_number(value: float) -> str:
    rounded = round(value, 2)
    if rounded == int(rounded):
        return str(int(rounded))
    return f"{rounded:g}"


class ShoppingRequestRepository(Protocol):
    """Persistence interface for regeneration requests."""

    def create_request(self, request: ShoppingListRequest) -> None:
        """Store a new request."""

    def get_request(self, request_id: str) -> ShoppingListRequest | None:
        """Return a request by id."""

    def save_request(self, request: ShoppingListRequest) -> None:
        """Persist request status, progress and stats."""


class ShoppingListRepository(Protocol):
    """Persistence interface for shopping lists and their sources."""

    def list_planned_meals(
        self, user_id: str, start_date: str, end_date: str
    ) -> list[dict[str, object]]:
        """Return planned meals with ``date``, ``meal_type`` and ``dishes``."""

    def get_servings_config(self, user_id: str) -> ServingsConfig | None:
        """Return the user's stored servings configuration."""

    def list_active_items(self, user_id: str) -> list[ShoppingItem]:
        """Return the items of the user's active shopping list."""

    def archive_active_lists(self, user_id: str) -> None:
        """Archive the user's active shopping lists."""

    def create_list(
        self,
        user_id: str,
        start_date: str,
        end_date: str,
        servings: ServingsConfig | None,
    ) -> str:
        """Create an active shopping list and return its id."""

    def insert_items(self, shopping_list_id: str, items: list[ShoppingItem]) -> None:
        """Insert items into a shopping list."""


@dataclass
class ShoppingListService:
    """Rebuilds a shopping list from planned meals for a date range."""

    requests: ShoppingRequestRepository
    lists: ShoppingListRepository
    normalizer: ShoppingListNormalizer

    def submit(
        self,
        user_id: str,
        start_date: str,
        end_date: str,
        servings: ServingsConfig | None = None,
    ) -> ShoppingListRequest:
        """Create a queued regeneration request."""
        request = ShoppingListRequest(
            id=str(uuid4()),
            user_id=user_id,
            start_date=start_date,
            end_date=end_date,
            servings=servings,
            progress={"phase": "queued", "message": "queued", "percentage": 0},
        )
        self.requests.create_request(request)
        return request

    def status(self, request_id: str) -> dict[str, object]:
        """Return the pollable state of a request."""
        request = self.requests.get_request(request_id)
        if request is None:
            raise JobNotFoundError(request_id)
        return {
            "id": request.id,
            "status": request.status,
            "progress": request.progress,
            "shopping_list_id": request.shopping_list_id,
            "stats": request.stats,
            "error": request.error_message,
        }

    def process(self, request_id: str) -> ShoppingListRequest:
        """Run a regeneration request, recording failure on the request."""
        request = self.requests.get_request(request_id)
        if request is None:
            raise JobNotFoundError(request_id)
        if request.status in {"completed", "failed"}:
            return request
        try:
            self._regenerate(request)
        except Exception as exc:
            _logger.exception("Shopping list request %s failed", request.id)
            request.status = "failed"
            request.error_message = str(exc) or exc.__class__.__name__
            request.progress = {
                "phase": "failed",
                "message": request.error_message,
                "percentage": 0,
            }
            self.requests.save_request(request)
        return request

    def _regenerate(self, request: ShoppingListRequest) -> None:
        request.status = "processing"
        self._progress(request, "extracting", 10)
        config = request.servings or self.lists.get_servings_config(request.user_id)
        meals = self.lists.list_planned_meals(
            request.user_id, request.start_date, request.end_date
        )
        raw, total_servings = collect_ingredients(meals, config)

        self._progress(request, "normalizing", 40)
        manual = [
            item
            for item in self.lists.list_active_items(request.user_id)
            if item.source == "manual"
        ]
        generated = [to_generated_item(entry) for entry in raw]
        items = self.normalizer.normalize(manual, generated)

        self._progress(request, "saving", 85)
        self.lists.archive_active_lists(request.user_id)
        list_id = self.lists.create_list(
            request.user_id, request.start_date, request.end_date, config
        )
        if items:
            self.lists.insert_items(list_id, items)

        request.status = "completed"
        request.shopping_list_id = list_id
        request.stats = {
            "input_count": len(raw),
            "output_count": len(items),
            "merged_count": len(raw) + len(manual) - len(items),
            "total_servings": total_servings,
        }
        request.progress = {
            "phase": "completed",
            "message": "completed",
            "percentage": 100,
        }
        self.requests.save_request(request)
        _logger.info(
            "Shopping list %s rebuilt: %s inputs -> %s items",
            list_id,
            len(raw),
            len(items),
        )

    def _progress(
        self, request: ShoppingListRequest, phase: str, percentage: int
    ) -> None:
        request.progress = {"phase": phase, "message": phase, "percentage": percentage}
        self.requests.save_request(request)


def collect_ingredients(
    meals: Iterable[dict[str, object]], servings: ServingsConfig | None
) -> tuple[list[RawShoppingInput], int]:
    """Collect ingredient lines from meals, scaled by servings per slot."""
    counts: dict[tuple[str, str | None], int] = {}
    total_servings = 0
    for meal in meals:
        day = _weekday(str(meal.get("date", "")))
        meal_type = str(meal.get("meal_type", ""))
        count = servings.servings_for(day, meal_type) if servings else 1
        if count <= 0:
            continue
        total_servings += count
        for dish in meal.get("dishes") or []:
            if not isinstance(dish, dict):
                continue
            for ingredient in dish.get("ingredients") or []:
                parsed = parse_ingredient_amount(ingredient)
                if parsed is None or is_waterish(parsed[0]):
                    continue
                name, amount_g = parsed
                scaled = amount_g * count
                amount = f"{round(scaled)}g" if scaled > 0 else None
                key = (name, amount)
                counts[key] = counts.get(key, 0) + 1
    raw = [
        RawShoppingInput(name=name, amount=amount, count=count)
        for (name, amount), count in counts.items()
    ]
    return raw, total_servings


def parse_ingredient_amount(ingredient: object) -> tuple[str, float] | None:
    """Parse ``{"name", "amount_g"}`` or ``"玉ねぎ 50g"`` into name and grams."""
    if isinstance(ingredient, dict):
        name = str(ingredient.get("name") or "").strip()
        if not name:
            return None
        amount = ingredient.get("amount_g")
        return name, float(amount) if isinstance(amount, int | float) else 0.0
    if isinstance(ingredient, str):
        text = ingredient.strip()
        if not text:
            return None
        match = _INGREDIENT_WITH_GRAMS.match(text)
        if match:
            return match.group(1).strip(), float(match.group(2))
        return text, 0.0
    return None


def to_generated_item(entry: RawShoppingInput) -> ShoppingItem:
    """Turn a collected ingredient line into a generated shopping item."""
    variant = parse_quantity(entry.amount)
    if variant.value is not None and entry.count > 1:
        total = variant.value * entry.count
        variant = QuantityVariant(
            display=format_quantity(total, variant.unit), unit=variant.unit, value=total
        )
    return ShoppingItem(
        item_name=entry.name,
        normalized_name=grocery_key(entry.name),
        quantity_variants=(variant,),
        category=categorize(entry.name),
        source="generated",
    )


def _weekday(value: str) -> str:
    try:
        return _WEEKDAYS[date_type.fromisoformat(value).weekday()]
    except ValueError:
        return ""
