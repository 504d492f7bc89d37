"""Supabase repositories for shopping lists and regeneration requests."""

from dataclasses import dataclass
from datetime import UTC, datetime

from supabase import Client

from menu_planner.domain.shopping import (
    QuantityVariant,
    ServingsConfig,
    ShoppingItem,
    ShoppingListRequest,
)
from menu_planner.services.shopping import (
    ShoppingListRepository,
    ShoppingRequestRepository,
)


@dataclass
class SupabaseShoppingListRepository(ShoppingListRepository):
    """Reads planned meals and writes shopping lists."""

    client: Client

    def list_planned_meals(
        self, user_id: str, start_date: str, end_date: str
    ) -> list[dict[str, object]]:
        """Return planned meals in a date range."""
        response = (
            self.client.table("user_daily_meals")
            .select("id, day_date, planned_meals (id, meal_type, dishes)")
            .eq("user_id", user_id)
            .gte("day_date", start_date)
            .lte("day_date", end_date)
            .execute()
        )
        meals: list[dict[str, object]] = []
        for day in response.data or []:
            for meal in day.get("planned_meals") or []:
                meals.append(
                    {
                        "date": day.get("day_date"),
                        "meal_type": meal.get("meal_type"),
                        "dishes": meal.get("dishes") or [],
                    }
                )
        return meals

    def get_servings_config(self, user_id: str) -> ServingsConfig | None:
        """Return servings from the profile, falling back to family size."""
        response = (
            self.client.table("user_profiles")
            .select("servings_config, family_size")
            .eq("id", user_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        row = response.data[0]
        config = ServingsConfig.from_dict(row.get("servings_config"))
        if config is not None:
            return config
        family_size = row.get("family_size")
        if isinstance(family_size, int) and family_size > 0:
            return ServingsConfig(default=family_size)
        return None

    def list_active_items(self, user_id: str) -> list[ShoppingItem]:
        """Return the items of the active list."""
        lists = (
            self.client.table("shopping_lists")
            .select("id")
            .eq("user_id", user_id)
            .eq("status", "active")
            .limit(1)
            .execute()
        )
        if not lists.data:
            return []
        response = (
            self.client.table("shopping_list_items")
            .select(
                "id, item_name, normalized_name, quantity_variants, "
                "selected_variant_index, category, source, is_checked"
            )
            .eq("shopping_list_id", lists.data[0]["id"])
            .execute()
        )
        return [_parse_item(row) for row in response.data or []]

    def archive_active_lists(self, user_id: str) -> None:
        """Archive every active list of the user."""
        self.client.table("shopping_lists").update(
            {"status": "archived", "updated_at": datetime.now(tz=UTC).isoformat()}
        ).eq("user_id", user_id).eq("status", "active").execute()

    def create_list(
        self,
        user_id: str,
        start_date: str,
        end_date: str,
        servings: ServingsConfig | None,
    ) -> str:
        """Create an active list and return its id."""
        response = (
            self.client.table("shopping_lists")
            .insert(
                {
                    "user_id": user_id,
                    "start_date": start_date,
                    "end_date": end_date,
                    "status": "active",
                    "servings_config": servings.to_dict() if servings else None,
                    "title": f"{start_date}〜{end_date}の買い物リスト",
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create shopping list")
        return str(response.data[0]["id"])

    def insert_items(self, shopping_list_id: str, items: list[ShoppingItem]) -> None:
        """Insert list items."""
        payload = []
        for item in items:
            selected = item.selected_variant
            payload.append(
                {
                    "shopping_list_id": shopping_list_id,
                    "item_name": item.item_name,
                    "normalized_name": item.normalized_name,
                    "quantity": selected.display if selected else None,
                    "quantity_variants": [
                        variant.to_dict() for variant in item.quantity_variants
                    ],
                    "selected_variant_index": item.selected_variant_index,
                    "category": item.category,
                    "source": item.source,
                    "is_checked": item.is_checked,
                }
            )
        if payload:
            self.client.table("shopping_list_items").insert(payload).execute()


@dataclass
class SupabaseShoppingRequestRepository(ShoppingRequestRepository):
    """Stores regeneration requests in ``shopping_list_requests``."""

    client: Client

    def create_request(self, request: ShoppingListRequest) -> None:
        """Insert a request row."""
        response = (
            self.client.table("shopping_list_requests")
            .insert(
                {
                    "id": request.id,
                    "user_id": request.user_id,
                    "start_date": request.start_date,
                    "end_date": request.end_date,
                    "status": request.status,
                    "progress": request.progress,
                    "servings_config": (
                        request.servings.to_dict() if request.servings else None
                    ),
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create shopping list request")

    def get_request(self, request_id: str) -> ShoppingListRequest | None:
        """Return a request by id."""
        response = (
            self.client.table("shopping_list_requests")
            .select(
                "id, user_id, start_date, end_date, status, progress, result, "
                "shopping_list_id, servings_config, error_message"
            )
            .eq("id", request_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        row = response.data[0]
        return ShoppingListRequest(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            start_date=str(row.get("start_date") or ""),
            end_date=str(row.get("end_date") or ""),
            status=row.get("status") or "queued",
            shopping_list_id=row.get("shopping_list_id"),
            servings=ServingsConfig.from_dict(row.get("servings_config")),
            progress=dict(row.get("progress") or {}),
            stats=dict(row.get("result") or {}),
            error_message=row.get("error_message"),
        )

    def save_request(self, request: ShoppingListRequest) -> None:
        """Update status, progress and result."""
        self.client.table("shopping_list_requests").update(
            {
                "status": request.status,
                "progress": request.progress,
                "result": request.stats,
                "shopping_list_id": request.shopping_list_id,
                "error_message": request.error_message,
                "updated_at": datetime.now(tz=UTC).isoformat(),
            }
        ).eq("id", request.id).execute()


def _parse_item(row: dict[str, object]) -> ShoppingItem:
    variants = tuple(
        QuantityVariant(
            display=str(variant.get("display", "")),
            unit=str(variant.get("unit", "")),
            value=variant.get("value"),
        )
        for variant in row.get("quantity_variants") or []
        if isinstance(variant, dict)
    )
    return ShoppingItem(
        id=str(row["id"]) if row.get("id") else None,
        item_name=str(row.get("item_name", "")),
        normalized_name=str(row.get("normalized_name") or ""),
        quantity_variants=variants,
        category=str(row.get("category") or "その他"),
        source="manual" if row.get("source") == "manual" else "generated",
        is_checked=bool(row.get("is_checked", False)),
        selected_variant_index=int(row.get("selected_variant_index") or 0),
    )
