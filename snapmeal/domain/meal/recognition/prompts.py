"""
Provider prompts for meal analysis and derived text.

The item keys in the vision and fallback prompts are an established wire
contract (including the total_protien / toal_* spelling). Do not fix them:
cached records and parsers depend on the exact bytes.
"""

from typing import Any, Dict, List, Sequence

from snapmeal.domain.meal.nutrition.models import MacroTotals, NutritionItem


# ═══════════════════════════════════════════════════════════
# VISION ANALYSIS (primary tier)
# ═══════════════════════════════════════════════════════════

VISION_PROMPT = """Analyze this food image and identify all visible food items with their nutritional information.

Return ONLY a valid JSON object in this exact format:
{
  "items": [
    {
      "item_name": "specific food name",
      "total_calories": 200,
      "total_protien": 15,
      "toal_carbs": 25,
      "toal_fats": 8
    }
  ]
}

Important guidelines:
- Provide nutritional values per 100g serving
- Be specific with food names (e.g., "Grilled Chicken Breast" not just "Chicken")
- If multiple food items are visible, include each one separately
- Use realistic nutritional values based on standard food databases
- Return only the JSON object, no additional text"""


# ═══════════════════════════════════════════════════════════
# TEXT-ONLY FALLBACK (second tier)
# ═══════════════════════════════════════════════════════════

TEXT_FALLBACK_PROMPT = """I have a food image but cannot analyze it directly. Please provide a typical nutritional breakdown for a common balanced meal in this JSON format:

{
  "items": [
    {
      "item_name": "Balanced Meal",
      "total_calories": 300,
      "total_protien": 20,
      "toal_carbs": 30,
      "toal_fats": 10
    }
  ]
}

Make it realistic for a typical home-cooked meal."""


def build_vision_messages(image_url: str) -> List[Dict[str, Any]]:
    """
    Build chat messages for the vision request.

    Args:
        image_url: Publicly reachable image URL

    Returns:
        Messages list with text prompt and image part
    """
    return [
        {
            "role": "user",
            "content": [
                {"type": "text", "text": VISION_PROMPT},
                {"type": "image_url", "image_url": {"url": image_url}},
            ],
        }
    ]


def build_text_fallback_messages() -> List[Dict[str, Any]]:
    """Build chat messages for the text-only fallback request."""
    return [{"role": "user", "content": TEXT_FALLBACK_PROMPT}]


# ═══════════════════════════════════════════════════════════
# DERIVED TEXT (summary, tips)
# ═══════════════════════════════════════════════════════════


def _meal_facts(items: Sequence[NutritionItem]) -> str:
    totals = MacroTotals.from_items(items)
    food_list = ", ".join(item.name for item in items)
    return (
        f"Foods: {food_list}\n"
        f"Total Calories: {totals.calories:g}\n"
        f"Protein: {totals.protein_g:g}g\n"
        f"Carbs: {totals.carbs_g:g}g\n"
        f"Fats: {totals.fat_g:g}g"
    )


def build_summary_messages(items: Sequence[NutritionItem]) -> List[Dict[str, Any]]:
    """Build chat messages asking for a short meal summary."""
    prompt = f"""Generate a friendly, informative summary for this meal:

{_meal_facts(items)}

Provide a 2-3 sentence summary that's encouraging and informative. Focus on the nutritional balance and any notable aspects of the meal. Keep it positive and helpful.

Return ONLY a JSON object in this format: {{"summary": "your summary"}}"""
    return [{"role": "user", "content": prompt}]


def build_tips_messages(items: Sequence[NutritionItem]) -> List[Dict[str, Any]]:
    """Build chat messages asking for 3-4 health tips."""
    prompt = f"""Based on this meal analysis, provide 3-4 personalized health tips:

{_meal_facts(items)}

Return tips as a JSON array of strings. Each tip should be:
- Specific to this meal's nutritional profile
- Actionable and practical
- Encouraging and positive
- 1-2 sentences long

Format: ["tip1", "tip2", "tip3", "tip4"]"""
    return [{"role": "user", "content": prompt}]
