"""
SnapMeal resolution pipeline.

Turns a food photo or a product barcode into structured nutrition data,
degrading through provider fallbacks and caches instead of failing.

Structure:
- domain/: Nutrition models, fallback chain, derived text, pipeline states
- infrastructure/: Provider clients, nutrition databases, caches
- application/: Use cases wiring domain services together
- tests/: Test suite (unit, integration)
"""

__version__ = "1.0.0"
