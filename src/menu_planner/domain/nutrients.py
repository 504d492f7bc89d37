"""Nutrient vector models."""

from dataclasses import dataclass, fields

NUTRIENT_UNITS: dict[str, str] = {
    "calories_kcal": "kcal",
    "protein_g": "g",
    "fat_g": "g",
    "carbs_g": "g",
    "fiber_g": "g",
    "salt_eq_g": "g",
    "sodium_mg": "mg",
    "potassium_mg": "mg",
    "calcium_mg": "mg",
    "magnesium_mg": "mg",
    "phosphorus_mg": "mg",
    "iron_mg": "mg",
    "zinc_mg": "mg",
    "cholesterol_mg": "mg",
    "vitamin_e_mg": "mg",
    "vitamin_b1_mg": "mg",
    "vitamin_b2_mg": "mg",
    "niacin_mg": "mg",
    "vitamin_b6_mg": "mg",
    "pantothenic_acid_mg": "mg",
    "vitamin_c_mg": "mg",
    "iodine_ug": "µg",
    "vitamin_a_ug": "µg",
    "vitamin_d_ug": "µg",
    "vitamin_k_ug": "µg",
    "vitamin_b12_ug": "µg",
    "folic_acid_ug": "µg",
    "biotin_ug": "µg",
}

# Reference-store columns whose names differ from the vector field.
REFERENCE_COLUMN_ALIASES: dict[str, str] = {
    "vitamin_e_mg": "vitamin_e_alpha_mg",
}


@dataclass
class NutrientVector:
    """Nutrient amounts, either per 100 g of a reference food or accumulated totals."""

    calories_kcal: float = 0.0
    protein_g: float = 0.0
    fat_g: float = 0.0
    carbs_g: float = 0.0
    fiber_g: float = 0.0
    salt_eq_g: float = 0.0
    sodium_mg: float = 0.0
    potassium_mg: float = 0.0
    calcium_mg: float = 0.0
    magnesium_mg: float = 0.0
    phosphorus_mg: float = 0.0
    iron_mg: float = 0.0
    zinc_mg: float = 0.0
    cholesterol_mg: float = 0.0
    vitamin_e_mg: float = 0.0
    vitamin_b1_mg: float = 0.0
    vitamin_b2_mg: float = 0.0
    niacin_mg: float = 0.0
    vitamin_b6_mg: float = 0.0
    pantothenic_acid_mg: float = 0.0
    vitamin_c_mg: float = 0.0
    iodine_ug: float = 0.0
    vitamin_a_ug: float = 0.0
    vitamin_d_ug: float = 0.0
    vitamin_k_ug: float = 0.0
    vitamin_b12_ug: float = 0.0
    folic_acid_ug: float = 0.0
    biotin_ug: float = 0.0

    @classmethod
    def field_names(cls) -> list[str]:
        """Return nutrient field names in declaration order."""
        return [item.name for item in fields(cls)]

    @classmethod
    def from_row(cls, row: dict[str, object]) -> "NutrientVector":
        """Build a vector from a reference-store row, treating missing values as 0."""
        values: dict[str, float] = {}
        for name in cls.field_names():
            column = REFERENCE_COLUMN_ALIASES.get(name, name)
            raw = row.get(column, row.get(name))
            values[name] = _to_float(raw)
        return cls(**values)

    def to_dict(self) -> dict[str, float]:
        """Return the vector as a plain mapping."""
        return {name: getattr(self, name) for name in self.field_names()}

    def add_scaled(self, other: "NutrientVector", factor: float) -> None:
        """Accumulate ``other * factor`` into this vector."""
        if factor <= 0:
            return
        for name in self.field_names():
            value = getattr(other, name)
            if value > 0:
                setattr(self, name, getattr(self, name) + value * factor)


def _to_float(value: object) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, int | float):
        return max(float(value), 0.0)
    try:
        return max(float(str(value)), 0.0)
    except ValueError:
        return 0.0
