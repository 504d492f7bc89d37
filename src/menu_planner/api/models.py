"""Request bodies for the HTTP API."""

from pydantic import BaseModel, Field


class MenuRequestBody(BaseModel):
    """Range generation request."""

    user_id: str
    start_date: str = Field(pattern=r"^\d{4}-\d{2}-\d{2}$")
    target_slots: list[dict[str, object]]
    prompt: str = ""
    constraints: dict[str, object] = Field(default_factory=dict)
    ultimate_mode: bool = False


class IngredientLine(BaseModel):
    """Ingredient to resolve."""

    name: str = Field(min_length=1)
    amount_g: float = Field(ge=0)
    note: str | None = None


class ResolveIngredientsBody(BaseModel):
    """Ingredient resolution request."""

    ingredients: list[IngredientLine]


class ShoppingRegenerateBody(BaseModel):
    """Shopping list regeneration request."""

    user_id: str
    start_date: str = Field(pattern=r"^\d{4}-\d{2}-\d{2}$")
    end_date: str = Field(pattern=r"^\d{4}-\d{2}-\d{2}$")
    servings_config: dict[str, object] | None = None


class QuantityVariantBody(BaseModel):
    """Quantity phrasing of an item."""

    display: str
    unit: str = ""
    value: float | None = None


class ShoppingItemBody(BaseModel):
    """Shopping item in a normalization request."""

    item_name: str = Field(min_length=1)
    quantity: str | None = None
    quantity_variants: list[QuantityVariantBody] = Field(default_factory=list)
    category: str = "その他"
    source: str = "generated"
    is_checked: bool = False


class ShoppingNormalizeBody(BaseModel):
    """Existing and incoming items to merge."""

    existing: list[ShoppingItemBody] = Field(default_factory=list)
    new: list[ShoppingItemBody] = Field(default_factory=list)
