"""Supabase-backed nutrition reference store."""

from dataclasses import dataclass

from supabase import Client

from menu_planner.domain.ingredients import ReferenceIngredient
from menu_planner.domain.nutrients import REFERENCE_COLUMN_ALIASES, NutrientVector
from menu_planner.services.resolver import ReferenceStore

_TABLE = "dataset_ingredients"
_NUTRIENT_COLUMNS = [
    REFERENCE_COLUMN_ALIASES.get(name, name) for name in NutrientVector.field_names()
]
_SELECT = ", ".join(["id", "name", "name_norm", *_NUTRIENT_COLUMNS])


@dataclass
class SupabaseReferenceStore(ReferenceStore):
    """Reads reference ingredients and runs similarity RPCs."""

    client: Client

    def find_exact(self, name_norms: list[str]) -> list[ReferenceIngredient]:
        """Return ingredients whose ``name_norm`` is one of the keys."""
        if not name_norms:
            return []
        response = (
            self.client.table(_TABLE)
            .select(_SELECT)
            .in_("name_norm", name_norms)
            .execute()
        )
        return [_parse_ingredient(row, similarity=1.0) for row in response.data or []]

    def search_similar(
        self, query: str, threshold: float, limit: int
    ) -> list[ReferenceIngredient]:
        """Run the trigram similarity RPC."""
        response = self.client.rpc(
            "search_similar_dataset_ingredients",
            {
                "query_name": query,
                "similarity_threshold": threshold,
                "result_limit": limit,
            },
        ).execute()
        return self._hydrate(response.data or [])

    def search_by_embedding(
        self, embedding: list[float], limit: int
    ) -> list[ReferenceIngredient]:
        """Run the embedding nearest-neighbour RPC."""
        response = self.client.rpc(
            "search_dataset_ingredients_by_embedding",
            {"query_embedding": embedding, "match_count": limit},
        ).execute()
        return self._hydrate(response.data or [])

    def _hydrate(self, rows: list[dict[str, object]]) -> list[ReferenceIngredient]:
        """Fill in nutrients for RPC rows that only carry ids and scores."""
        missing = [
            str(row["id"])
            for row in rows
            if "calories_kcal" not in row and row.get("id")
        ]
        details: dict[str, dict[str, object]] = {}
        if missing:
            response = (
                self.client.table(_TABLE).select(_SELECT).in_("id", missing).execute()
            )
            details = {str(row["id"]): row for row in response.data or []}
        ingredients = []
        for row in rows:
            merged = {**details.get(str(row.get("id")), {}), **row}
            ingredients.append(
                _parse_ingredient(merged, similarity=_similarity(row))
            )
        return ingredients


def _similarity(row: dict[str, object]) -> float:
    value = row.get("similarity")
    if isinstance(value, int | float):
        return float(value)
    return 0.0


def _parse_ingredient(row: dict[str, object], similarity: float) -> ReferenceIngredient:
    return ReferenceIngredient(
        id=str(row["id"]),
        name=str(row.get("name", "")),
        name_norm=str(row.get("name_norm") or ""),
        nutrients=NutrientVector.from_row(row),
        similarity=similarity,
    )
