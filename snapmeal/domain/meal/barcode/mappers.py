"""
Mappers from nutrition database payloads to domain items.

OpenFoodFacts and USDA FoodData Central report values per 100g; values are
rounded to whole units the way they are displayed.
"""

from typing import Any, Dict, List, Optional

from snapmeal.domain.meal.nutrition.models import NutritionItem, coerce_macro


def _first_present(nutriments: Dict[str, Any], *keys: str) -> Any:
    """Return the first non-empty value among keys (hyphen/underscore variants)."""
    for key in keys:
        value = nutriments.get(key)
        if value not in (None, ""):
            return value
    return None


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def map_openfoodfacts_product(product: Any) -> Optional[NutritionItem]:
    """
    Map an OpenFoodFacts product to a NutritionItem.

    Returns None when the product is not an object or carries no name: an
    unnamed record is not usable. A nutriments field of the wrong type is
    treated as empty.

    Example:
        >>> item = map_openfoodfacts_product(
        ...     {"product_name": "Nutella", "nutriments": {"energy-kcal_100g": 539}}
        ... )
        >>> assert item.calories == 539
    """
    if not isinstance(product, dict):
        return None

    name = _text(product.get("product_name")) or _text(product.get("generic_name"))
    if not name:
        return None

    nutriments = product.get("nutriments")
    if not isinstance(nutriments, dict):
        nutriments = {}

    return NutritionItem(
        name=name,
        calories=round(coerce_macro(_first_present(nutriments, "energy-kcal_100g", "energy_kcal_100g"))),
        protein_g=round(coerce_macro(_first_present(nutriments, "proteins_100g", "proteins-100g"))),
        carbs_g=round(coerce_macro(_first_present(nutriments, "carbohydrates_100g", "carbohydrates-100g"))),
        fat_g=round(coerce_macro(_first_present(nutriments, "fat_100g", "fat-100g"))),
    )


def find_nutrient(nutrients: List[Any], nutrient_name: str, prefer_unit: Optional[str] = None) -> float:
    """
    Find a nutrient value by case-insensitive substring of its name.

    Entries that are not objects are ignored.

    Args:
        nutrients: USDA foodNutrients entries
        nutrient_name: Substring to match against nutrientName
        prefer_unit: Unit to prefer when several entries match (e.g. "kcal")

    Returns:
        Value (0 if not found)
    """
    needle = nutrient_name.lower()
    matches = [
        n for n in nutrients if isinstance(n, dict) and needle in str(n.get("nutrientName") or "").lower()
    ]
    if not matches:
        return 0.0

    if prefer_unit:
        for nutrient in matches:
            if str(nutrient.get("unitName") or "").lower() == prefer_unit.lower():
                return coerce_macro(nutrient.get("value"))

    return coerce_macro(matches[0].get("value"))


def map_usda_food(
    food: Dict[str, Any],
    default_name: str = "USDA Food Item",
    carbs_name: str = "Carbohydrate, by difference",
    fat_name: str = "Total lipid (fat)",
) -> NutritionItem:
    """
    Map a USDA search hit to a NutritionItem.

    Name matching for carbs and fat is configurable: barcode lookups use the
    exact USDA labels, free-text search uses the looser prefixes.
    """
    nutrients = food.get("foodNutrients")
    if not isinstance(nutrients, list):
        nutrients = []

    return NutritionItem(
        name=_text(food.get("description")) or default_name,
        calories=round(find_nutrient(nutrients, "Energy", prefer_unit="kcal")),
        protein_g=round(find_nutrient(nutrients, "Protein")),
        carbs_g=round(find_nutrient(nutrients, carbs_name)),
        fat_g=round(find_nutrient(nutrients, fat_name)),
    )
