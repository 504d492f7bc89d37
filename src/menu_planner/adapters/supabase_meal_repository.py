"""Supabase repository for planned meals."""

from dataclasses import dataclass

from supabase import Client

from menu_planner.services.orchestrator import MealRepository


@dataclass
class SupabaseMealRepository(MealRepository):
    """Stores accepted meals under ``user_daily_meals``/``planned_meals``."""

    client: Client

    def find_meal_id(self, user_id: str, date: str, meal_type: str) -> str | None:
        """Return the id of the meal planned for a slot, if any."""
        daily_id = self._find_daily_meal_id(user_id, date)
        if daily_id is None:
            return None
        response = (
            self.client.table("planned_meals")
            .select("id")
            .eq("daily_meal_id", daily_id)
            .eq("meal_type", meal_type)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return str(response.data[0]["id"])

    def insert_meal(self, user_id: str, meal: dict[str, object]) -> str:
        """Create a planned meal row and return its id."""
        daily_id = self._ensure_daily_meal(user_id, str(meal["date"]))
        payload = {
            "daily_meal_id": daily_id,
            "user_id": user_id,
            "meal_type": meal["meal_type"],
            **_meal_columns(meal),
        }
        response = self.client.table("planned_meals").insert(payload).execute()
        if not response.data:
            raise RuntimeError("Failed to create planned meal")
        return str(response.data[0]["id"])

    def update_meal(self, meal_id: str, meal: dict[str, object]) -> None:
        """Overwrite a planned meal bound to a target slot."""
        self.client.table("planned_meals").update(_meal_columns(meal)).eq(
            "id", meal_id
        ).execute()

    def _find_daily_meal_id(self, user_id: str, date: str) -> str | None:
        response = (
            self.client.table("user_daily_meals")
            .select("id")
            .eq("user_id", user_id)
            .eq("day_date", date)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return str(response.data[0]["id"])

    def _ensure_daily_meal(self, user_id: str, date: str) -> str:
        existing = self._find_daily_meal_id(user_id, date)
        if existing is not None:
            return existing
        response = (
            self.client.table("user_daily_meals")
            .insert({"user_id": user_id, "day_date": date})
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create daily meal")
        return str(response.data[0]["id"])


def _meal_columns(meal: dict[str, object]) -> dict[str, object]:
    dishes = meal.get("dishes") or []
    nutrition = meal.get("nutrition") or {}
    names = [str(dish.get("name", "")) for dish in dishes if isinstance(dish, dict)]
    return {
        "dish_name": " / ".join(name for name in names if name),
        "dishes": [
            {key: value for key, value in dish.items() if key != "ingredient_matches"}
            for dish in dishes
            if isinstance(dish, dict)
        ],
        "ingredient_matches": [
            {"dish": dish.get("name"), "matches": dish.get("ingredient_matches", [])}
            for dish in dishes
            if isinstance(dish, dict)
        ],
        "nutrition": nutrition,
        "calories_kcal": nutrition.get("calories_kcal"),
        "mapping_rate": meal.get("mapping_rate"),
        "description": meal.get("advice"),
        "warnings": meal.get("warnings") or [],
        "is_generated": True,
    }
