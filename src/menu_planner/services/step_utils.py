"""Pure slot, cursor and fix-budget helpers for staged menu generation."""

import math
import re
from collections.abc import Iterable

from menu_planner.domain.menus import MealType, TargetSlot

MEAL_TYPE_ORDER: dict[str, int] = {
    "breakfast": 10,
    "lunch": 20,
    "dinner": 30,
    "snack": 40,
    "midnight_snack": 50,
}

DEFAULT_DAY_BATCH_SIZE = 6
DEFAULT_FIXES_PER_RUN = 3
DEFAULT_FIXES_PER_WEEK = 2
DEFAULT_MAX_FIXES_CAP = 12
DEFAULT_SAVE_BATCH_SIZE = 15
DEFAULT_FEEDBACK_DAY_BATCH_SIZE = 5
DEFAULT_IMPROVE_DAY_BATCH_SIZE = 3

_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def slot_key(date: str, meal_type: str) -> str:
    """Return the ``date:meal_type`` key of a slot."""
    return f"{date}:{meal_type}"


def normalize_target_slots(raw: object) -> list[TargetSlot]:
    """Parse loosely-typed slot payloads, dropping invalid and duplicate entries."""
    if not isinstance(raw, list):
        return []
    slots: list[TargetSlot] = []
    seen: set[str] = set()
    for entry in raw:
        if isinstance(entry, TargetSlot):
            slot = entry
        elif isinstance(entry, dict):
            date = entry.get("date")
            meal_type = entry.get("meal_type", entry.get("mealType"))
            planned_meal_id = entry.get("planned_meal_id", entry.get("plannedMealId"))
            if not isinstance(date, str) or not _DATE_PATTERN.match(date):
                continue
            if meal_type not in MEAL_TYPE_ORDER:
                continue
            slot = TargetSlot(
                date=date,
                meal_type=meal_type,
                planned_meal_id=str(planned_meal_id) if planned_meal_id else None,
            )
        else:
            continue
        if slot.key in seen:
            continue
        seen.add(slot.key)
        slots.append(slot)
    return slots


def unique_dates(slots: Iterable[TargetSlot]) -> list[str]:
    """Return the sorted distinct dates of the slots."""
    return sorted({slot.date for slot in slots})


def sort_target_slots(slots: Iterable[TargetSlot]) -> list[TargetSlot]:
    """Sort slots by date, then by meal order within the day."""
    return sorted(
        slots, key=lambda slot: (slot.date, MEAL_TYPE_ORDER.get(slot.meal_type, 999))
    )


def slots_for_date(slots: Iterable[TargetSlot], date: str) -> list[TargetSlot]:
    """Return the slots of one date in meal order."""
    return sort_target_slots(slot for slot in slots if slot.date == date)


def count_generated_slots(
    slots: Iterable[TargetSlot], generated: dict[str, object]
) -> int:
    """Count target slots that already have a generated meal."""
    return sum(1 for slot in slots if slot.key in generated)


def compute_weeks_from_days(days: int) -> int:
    """Return the number of (started) weeks in a range of ``days``."""
    if days <= 0:
        return 1
    return max(1, math.ceil(days / 7))


def compute_max_fixes_for_range(
    days: int,
    issues_count: int,
    fixes_per_week: int = DEFAULT_FIXES_PER_WEEK,
    cap: int = DEFAULT_MAX_FIXES_CAP,
) -> int:
    """Return how many review issues may be fixed for a date range."""
    weeks = compute_weeks_from_days(days)
    return max(0, min(max(0, issues_count), weeks * fixes_per_week, cap))


def compute_next_cursor(cursor: int, batch_size: int, length: int) -> int:
    """Advance a batch cursor, clamped to ``[0, length]``."""
    upper = max(0, length)
    return min(max(0, cursor) + max(1, batch_size), upper)


def meal_type_label(meal_type: MealType) -> str:
    """Return the display label used in prompts."""
    return {
        "breakfast": "朝食",
        "lunch": "昼食",
        "dinner": "夕食",
        "snack": "間食",
        "midnight_snack": "夜食",
    }[meal_type]
