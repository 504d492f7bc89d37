"""Shopping list endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status

from menu_planner.api.auth import require_token
from menu_planner.api.models import (  # noqa: TC001
    ShoppingItemBody,
    ShoppingNormalizeBody,
    ShoppingRegenerateBody,
)
from menu_planner.domain.errors import JobNotFoundError
from menu_planner.domain.shopping import QuantityVariant, ServingsConfig, ShoppingItem
from menu_planner.services.shopping import grocery_key, parse_quantity

if TYPE_CHECKING:
    from menu_planner.containers import AppContainer

router = APIRouter(
    prefix="/shopping-lists",
    tags=["shopping-lists"],
    dependencies=[Depends(require_token)],
)


@router.post("/regenerate", status_code=status.HTTP_202_ACCEPTED)
async def regenerate_shopping_list(
    body: ShoppingRegenerateBody, request: Request, background_tasks: BackgroundTasks
) -> dict[str, object]:
    """Queue a rebuild of the active list from planned meals."""
    container: AppContainer = request.app.state.container
    if body.end_date < body.start_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="end_date must not be before start_date",
        )
    shopping_request = container.shopping_service.submit(
        body.user_id,
        body.start_date,
        body.end_date,
        ServingsConfig.from_dict(body.servings_config),
    )
    background_tasks.add_task(container.shopping_service.process, shopping_request.id)
    return {"request_id": shopping_request.id, "status": shopping_request.status}


@router.get("/requests/{request_id}")
async def shopping_request_status(
    request_id: str, request: Request
) -> dict[str, object]:
    """Return progress and stats of a regeneration request."""
    container: AppContainer = request.app.state.container
    try:
        return container.shopping_service.status(request_id)
    except JobNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND) from exc


@router.post("/normalize")
async def normalize_items(
    body: ShoppingNormalizeBody, request: Request
) -> dict[str, object]:
    """Merge existing and incoming items without persisting them."""
    container: AppContainer = request.app.state.container
    items = container.shopping_service.normalizer.normalize(
        [_to_item(item) for item in body.existing],
        [_to_item(item) for item in body.new],
    )
    return {
        "items": [
            {
                "item_name": item.item_name,
                "normalized_name": item.normalized_name,
                "quantity_variants": [
                    variant.to_dict() for variant in item.quantity_variants
                ],
                "category": item.category,
                "source": item.source,
                "is_checked": item.is_checked,
            }
            for item in items
        ]
    }


def _to_item(body: ShoppingItemBody) -> ShoppingItem:
    variants = tuple(
        QuantityVariant(display=variant.display, unit=variant.unit, value=variant.value)
        for variant in body.quantity_variants
    )
    if not variants and body.quantity:
        variants = (parse_quantity(body.quantity),)
    return ShoppingItem(
        item_name=body.item_name,
        normalized_name=grocery_key(body.item_name),
        quantity_variants=variants,
        category=body.category,
        source="manual" if body.source == "manual" else "generated",
        is_checked=body.is_checked,
    )
