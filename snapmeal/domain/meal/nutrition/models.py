"""
Nutrition domain models.

Core models for resolved nutrition data, analysis results and meal records.
Field aliases carry the established provider wire contract
(item_name, total_calories, total_protien, toal_carbs, toal_fats); cached
records are written with those aliases so older entries stay readable.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, field_validator

UNKNOWN_FOOD_NAME = "Unknown Food"

# Wire keys every provider item must carry
WIRE_MACRO_KEYS = ("total_calories", "total_protien", "toal_carbs", "toal_fats")


def coerce_macro(value: Any) -> float:
    """
    Coerce a raw provider value into a non-negative number.

    Unparsable, NaN and infinite values become 0; negatives are clamped.

    Example:
        >>> coerce_macro("-5")
        0.0
        >>> coerce_macro("12.5")
        12.5
        >>> coerce_macro("a lot")
        0.0
    """
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0

    if math.isnan(number) or math.isinf(number):
        return 0.0
    return max(0.0, number)


class Provenance(str, Enum):
    """
    Provenance of a nutrition result.

    Tells consumers whether values were measured or synthesized locally.
    """

    AUTHORITATIVE = "AUTHORITATIVE"  # Provider or database answered
    ESTIMATED = "ESTIMATED"  # Fallback guess


class AnalysisTier(str, Enum):
    """Tier of the resolution chain that produced the items."""

    PRIMARY = "PRIMARY"  # Vision provider
    TEXT_FALLBACK = "TEXT_FALLBACK"  # Reasoning-only provider
    STATIC_ESTIMATE = "STATIC_ESTIMATE"  # Fixed local estimate
    DATABASE = "DATABASE"  # Nutrition database (barcode path)


class NutritionItem(BaseModel):
    """
    Single food item with macronutrients.

    All macros are clamped to >= 0 on ingestion; unparsable values
    default to 0. Accepts both field names and wire aliases.

    Example:
        >>> item = NutritionItem.model_validate(
        ...     {
        ...         "item_name": "Grilled Chicken Breast",
        ...         "total_calories": 165,
        ...         "total_protien": 31,
        ...         "toal_carbs": 0,
        ...         "toal_fats": -3.6,
        ...     }
        ... )
        >>> assert item.fat_g == 0.0
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(UNKNOWN_FOOD_NAME, alias="item_name", description="Food name")
    calories: float = Field(0.0, ge=0, alias="total_calories", description="Energy in kcal")
    protein_g: float = Field(0.0, ge=0, alias="total_protien", description="Protein in g")
    carbs_g: float = Field(0.0, ge=0, alias="toal_carbs", description="Carbohydrates in g")
    fat_g: float = Field(0.0, ge=0, alias="toal_fats", description="Total fat in g")

    @field_validator("name", mode="before")
    @classmethod
    def default_name(cls, v: Any) -> str:
        """Fall back to a generic name when missing or blank."""
        if v is None or not str(v).strip():
            return UNKNOWN_FOOD_NAME
        return str(v).strip()

    @field_validator("calories", "protein_g", "carbs_g", "fat_g", mode="before")
    @classmethod
    def clamp_macros(cls, v: Any) -> float:
        """Coerce to number and clamp to >= 0."""
        return coerce_macro(v)

    @classmethod
    def from_wire(cls, raw: dict[str, Any]) -> NutritionItem:
        """Build from a provider item dict."""
        return cls.model_validate(raw)

    def to_wire(self) -> dict[str, Any]:
        """Serialize with wire field names."""
        return self.model_dump(by_alias=True)


class MacroTotals(BaseModel):
    """
    Macro totals across a list of items.

    Example:
        >>> totals = MacroTotals.from_items([item_a, item_b])
        >>> print(f"{totals.calories} kcal")
    """

    model_config = ConfigDict(frozen=True)

    calories: float = 0.0
    protein_g: float = 0.0
    carbs_g: float = 0.0
    fat_g: float = 0.0

    @classmethod
    def from_items(cls, items: Sequence[NutritionItem]) -> MacroTotals:
        """Sum macros over items."""
        return cls(
            calories=round(sum(i.calories for i in items), 1),
            protein_g=round(sum(i.protein_g for i in items), 1),
            carbs_g=round(sum(i.carbs_g for i in items), 1),
            fat_g=round(sum(i.fat_g for i in items), 1),
        )


class AnalysisResult(BaseModel):
    """
    Resolved nutrition analysis.

    Created once every sub-step resolved, successfully or via fallback.
    Immutable afterward: enrichment returns a new instance.

    Attributes:
        items: Resolved food items (never empty)
        provenance: AUTHORITATIVE or ESTIMATED
        summary: Human-readable meal summary
        tips: Coaching tips (0..4)
        tier: Tier of the chain that produced the items
        fallback_reason: Why the primary tier was not used, if it wasn't
    """

    model_config = ConfigDict(frozen=True, use_enum_values=True)

    items: List[NutritionItem] = Field(..., min_length=1, description="Food items")
    provenance: Provenance = Field(..., description="Authoritative vs estimated")
    summary: Optional[str] = Field(None, description="Meal summary")
    tips: List[str] = Field(default_factory=list, max_length=4, description="Coaching tips")
    tier: AnalysisTier = Field(AnalysisTier.PRIMARY, validate_default=True, description="Producing tier")
    fallback_reason: Optional[str] = Field(None, description="Reason for fallback")

    def is_estimated(self) -> bool:
        """Check if result is a fallback guess."""
        return self.provenance == Provenance.ESTIMATED

    def totals(self) -> MacroTotals:
        """Macro totals across items."""
        return MacroTotals.from_items(self.items)

    def with_insights(self, summary: str, tips: Sequence[str]) -> AnalysisResult:
        """Return a copy carrying summary and tips."""
        return self.model_copy(update={"summary": summary, "tips": list(tips)[:4]})

    def to_wire(self) -> dict[str, Any]:
        """Serialize for caching, items with wire field names."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_wire(cls, raw: dict[str, Any]) -> AnalysisResult:
        """Rebuild from a cached record."""
        return cls.model_validate(raw)


class MealRecord(BaseModel):
    """
    Published meal record.

    Owned by the history collaborator; the pipeline creates it and never
    mutates it afterward.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Unique record ID")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Creation time (UTC)",
    )
    image_ref: str = Field(..., description="Image URL or placeholder")
    analysis: AnalysisResult = Field(..., description="Resolved analysis")

    def to_wire(self) -> dict[str, Any]:
        """Serialize for caching."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_wire(cls, raw: dict[str, Any]) -> MealRecord:
        """Rebuild from a cached record."""
        return cls.model_validate(raw)
