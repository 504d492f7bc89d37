"""Ingredient resolution endpoint."""

from __future__ import annotations

from dataclasses import asdict
from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, Request

from menu_planner.api.auth import require_token
from menu_planner.api.models import ResolveIngredientsBody  # noqa: TC001
from menu_planner.domain.ingredients import IngredientQuery
from menu_planner.services.aggregator import aggregate, matching_stats, round_nutrients

if TYPE_CHECKING:
    from menu_planner.containers import AppContainer

router = APIRouter(
    prefix="/ingredients", tags=["ingredients"], dependencies=[Depends(require_token)]
)


@router.post("/resolve")
async def resolve_ingredients(
    body: ResolveIngredientsBody, request: Request
) -> dict[str, object]:
    """Resolve ingredient lines and return their nutrient totals."""
    container: AppContainer = request.app.state.container
    queries = [
        IngredientQuery(name=line.name, amount_g=line.amount_g, note=line.note)
        for line in body.ingredients
    ]
    matches = await container.nutrition_service.resolver.resolve_many(queries)
    return {
        "matches": [match.to_audit() for match in matches],
        "nutrition": round_nutrients(aggregate(matches)).to_dict(),
        "stats": asdict(matching_stats(matches)),
    }
