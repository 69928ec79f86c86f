"""Deterministic summary and tips computed from macro totals."""

from typing import List

from snapmeal.domain.meal.nutrition.models import MacroTotals

MAX_TIPS = 4

GENERIC_TIP = (
    "Drink a glass of water with your meal and eat slowly to enjoy each bite "
    "and notice when you're full."
)


def fallback_summary(totals: MacroTotals) -> str:
    """
    Summary used when the provider cannot produce one.

    Example:
        >>> fallback_summary(MacroTotals(calories=250, protein_g=12))
        "This is a light, balanced meal that's perfect for maintaining your energy levels throughout the day!"
    """
    if totals.calories < 300:
        return "This is a light, balanced meal that's perfect for maintaining your energy levels throughout the day!"
    if totals.calories > 500:
        return "This hearty meal provides substantial nutrition and energy. Great for active days or post-workout recovery!"
    return (
        f"This well-balanced meal with {totals.calories:g} calories and {totals.protein_g:g}g of protein "
        "supports your daily nutritional needs beautifully!"
    )


def fallback_tips(totals: MacroTotals) -> List[str]:
    """
    Tips used when the provider cannot produce them.

    Rules fire in order (energy, protein, carbs, fat), the generic tip is
    appended last and the list is capped at MAX_TIPS. Never empty.
    """
    tips: List[str] = []

    if totals.calories > 600:
        tips.append(
            "Consider splitting this meal into smaller portions to help with digestion "
            "and maintain steady energy levels throughout the day."
        )
    elif totals.calories < 300:
        tips.append(
            "This is a light meal - perfect for maintaining a healthy calorie balance! "
            "Consider adding a healthy snack if you're still hungry."
        )

    if totals.protein_g < 15:
        tips.append(
            "Try adding more protein sources like Greek yogurt, nuts, lean meats, or legumes "
            "to support muscle health and satiety."
        )
    elif totals.protein_g > 40:
        tips.append(
            "Excellent protein content! Remember to stay well-hydrated when consuming "
            "high-protein meals to support kidney function."
        )

    if totals.carbs_g > 60:
        tips.append(
            "Balance these carbs with fiber-rich vegetables and whole grains to help "
            "stabilize blood sugar levels."
        )

    if totals.fat_g > 25:
        tips.append("This meal is rich in fats - drink plenty of water to aid digestion and nutrient absorption.")

    tips.append(GENERIC_TIP)
    return tips[:MAX_TIPS]
