"""
Vision analysis orchestrator.

Resolves a food photo into nutrition items through an ordered fallback
chain:

1. Primary vision model (strict parsing) → AUTHORITATIVE
2. Reasoning-only text model (lenient parsing) → ESTIMATED
3. Static estimate → ESTIMATED

A tier starts only after the previous one has definitively failed. The
chain never raises a domain error outward.
"""

from __future__ import annotations

import time
from typing import Any, Callable, List, Optional

import structlog

from snapmeal.config import DEFAULT_TEXT_MODEL, DEFAULT_VISION_MODEL
from snapmeal.domain.meal.nutrition.models import (
    WIRE_MACRO_KEYS,
    AnalysisResult,
    AnalysisTier,
    NutritionItem,
    Provenance,
)
from snapmeal.domain.meal.orchestration.ports import IChatCompletionClient
from snapmeal.domain.meal.recognition.json_extraction import extract_json
from snapmeal.domain.meal.recognition.prompts import (
    build_text_fallback_messages,
    build_vision_messages,
)
from snapmeal.domain.shared.errors import ConfigError, ParseError, ProviderError
from snapmeal.metrics import MetricsRegistry

logger = structlog.get_logger(__name__)

# Used when no provider tier could be attempted (configuration or input)
ESTIMATED_MEAL = NutritionItem(name="Estimated Meal", calories=280, protein_g=15, carbs_g=32, fat_g=9)

# Used when provider tiers were attempted and all failed
MIXED_FOOD_ITEM = NutritionItem(name="Mixed Food Item", calories=250, protein_g=12, carbs_g=35, fat_g=8)


def parse_items(content: str, strict: bool) -> List[NutritionItem]:
    """
    Parse provider output into nutrition items.

    Accepts {"items": [...]} or a bare list of items, with arbitrary prose
    or code fences around the payload.

    Args:
        content: Raw provider text
        strict: Require every item to carry all four macro keys

    Returns:
        Non-empty list of items (macros clamped to >= 0)

    Raises:
        ParseError: No JSON, missing/empty items, or (strict) missing keys
    """
    payload = extract_json(content)
    raw_items: Any = payload.get("items") if isinstance(payload, dict) else payload

    if not isinstance(raw_items, list) or not raw_items:
        raise ParseError("Invalid response format - missing items array")

    items = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            if strict:
                raise ParseError(f"Invalid item: {raw!r}")
            continue
        if strict:
            missing = [key for key in WIRE_MACRO_KEYS if key not in raw]
            if missing:
                raise ParseError(f"Item missing fields: {', '.join(missing)}")
        items.append(NutritionItem.from_wire(raw))

    if not items:
        raise ParseError("No usable items in response")
    return items


def _is_http_url(value: str) -> bool:
    return isinstance(value, str) and value.startswith(("http://", "https://"))


def _describe_failure(error: Exception) -> str:
    if isinstance(error, ProviderError) and error.deprecated:
        return "model_deprecated"
    return type(error).__name__


class VisionAnalysisOrchestrator:
    """
    Fallback chain for image analysis.

    Example:
        >>> orchestrator = VisionAnalysisOrchestrator(llm_client)
        >>> result = await orchestrator.analyze("https://i.ibb.co/abc/lunch.jpg")
        >>> result.provenance
        'AUTHORITATIVE'
    """

    def __init__(
        self,
        llm: IChatCompletionClient,
        vision_model: str = DEFAULT_VISION_MODEL,
        text_model: str = DEFAULT_TEXT_MODEL,
        metrics: Optional[MetricsRegistry] = None,
    ):
        """
        Initialize orchestrator.

        Args:
            llm: Chat completion client
            vision_model: Primary vision model
            text_model: Reasoning-only fallback model
            metrics: Optional metrics registry
        """
        self.llm = llm
        self.vision_model = vision_model
        self.text_model = text_model
        self._metrics = metrics

    async def analyze(
        self,
        image_ref: str,
        on_fallback: Optional[Callable[[str], None]] = None,
    ) -> AnalysisResult:
        """
        Analyze a hosted food photo.

        Args:
            image_ref: Public image URL
            on_fallback: Called with the failure reason when the text
                fallback tier starts

        Returns:
            AnalysisResult with at least one item
        """
        start_time = time.time()

        if not self.llm.is_configured():
            return self._static(ESTIMATED_MEAL, "not_configured", start_time)
        if not _is_http_url(image_ref):
            logger.warning("Invalid image URL provided", image_ref=str(image_ref)[:80])
            return self._static(ESTIMATED_MEAL, "invalid_image_url", start_time)

        # Tier 1: vision
        try:
            content = await self.llm.complete(
                build_vision_messages(image_ref),
                model=self.vision_model,
                temperature=0.1,
                max_tokens=1024,
            )
            items = parse_items(content, strict=True)
        except ConfigError:
            return self._static(ESTIMATED_MEAL, "not_configured", start_time)
        except Exception as e:
            reason = _describe_failure(e)
            logger.warning("Vision analysis failed, falling back", reason=reason, error=str(e))
        else:
            return self._finish(
                AnalysisResult(items=items, provenance=Provenance.AUTHORITATIVE, tier=AnalysisTier.PRIMARY),
                start_time,
            )

        if on_fallback is not None:
            on_fallback(reason)

        # Tier 2: text-only estimate
        try:
            content = await self.llm.complete(
                build_text_fallback_messages(),
                model=self.text_model,
                temperature=0.3,
                max_tokens=300,
            )
            items = parse_items(content, strict=False)
        except Exception as e:
            logger.warning("Text fallback failed", error=str(e) or type(e).__name__)
        else:
            return self._finish(
                AnalysisResult(
                    items=items,
                    provenance=Provenance.ESTIMATED,
                    tier=AnalysisTier.TEXT_FALLBACK,
                    fallback_reason=reason,
                ),
                start_time,
            )

        # Tier 3: static estimate
        return self._static(MIXED_FOOD_ITEM, reason, start_time)

    def _static(self, item: NutritionItem, reason: str, start_time: float) -> AnalysisResult:
        logger.info("Using static estimate", item_name=item.name, reason=reason)
        return self._finish(
            AnalysisResult(
                items=[item],
                provenance=Provenance.ESTIMATED,
                tier=AnalysisTier.STATIC_ESTIMATE,
                fallback_reason=reason,
            ),
            start_time,
        )

    def _finish(self, result: AnalysisResult, start_time: float) -> AnalysisResult:
        elapsed_ms = (time.time() - start_time) * 1000
        if self._metrics is not None:
            self._metrics.counter("analysis_tier", tier=str(result.tier)).inc()
            if result.fallback_reason:
                self._metrics.counter("analysis_fallback_reason", reason=result.fallback_reason).inc()
            self._metrics.histogram("analysis_latency_ms").observe(elapsed_ms)

        logger.info(
            "Analysis resolved",
            tier=result.tier,
            provenance=result.provenance,
            items=len(result.items),
            elapsed_ms=round(elapsed_ms, 1),
        )
        return result
