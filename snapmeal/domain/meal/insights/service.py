"""
Derived-text generation (meal summary and coaching tips).

Summary and tips are requested from the reasoning model concurrently and
resolved independently: a failure in one never affects the other, and
each failure is replaced by a local deterministic fallback.
"""

from __future__ import annotations

import asyncio
from typing import Any, List, Optional, Sequence

import structlog
from pydantic import BaseModel, ConfigDict, Field

from snapmeal.config import DEFAULT_TEXT_MODEL
from snapmeal.domain.meal.insights.fallbacks import MAX_TIPS, fallback_summary, fallback_tips
from snapmeal.domain.meal.nutrition.models import MacroTotals, NutritionItem
from snapmeal.domain.meal.orchestration.ports import IChatCompletionClient
from snapmeal.domain.meal.recognition.json_extraction import extract_json_array, extract_json_object
from snapmeal.domain.meal.recognition.prompts import build_summary_messages, build_tips_messages
from snapmeal.domain.shared.errors import ParseError
from snapmeal.metrics import MetricsRegistry

logger = structlog.get_logger(__name__)


class MealInsights(BaseModel):
    """
    Summary and tips for a meal.

    Attributes:
        summary: Human-readable summary
        tips: Coaching tips (1..4)
        summary_fallback: Summary came from the local fallback
        tips_fallback: Tips came from the local fallback
    """

    model_config = ConfigDict(frozen=True)

    summary: str = Field(..., min_length=1)
    tips: List[str] = Field(..., min_length=1, max_length=MAX_TIPS)
    summary_fallback: bool = False
    tips_fallback: bool = False


def parse_summary(content: str) -> str:
    """Extract the summary string from a {"summary": ...} payload."""
    payload = extract_json_object(content)
    summary = payload.get("summary")
    if not isinstance(summary, str) or not summary.strip():
        raise ParseError("Response has no summary")
    return summary.strip()


def parse_tips(content: str) -> List[str]:
    """Extract non-empty tip strings (capped) from a JSON array payload."""
    raw: List[Any] = extract_json_array(content)
    tips = [tip.strip() for tip in raw if isinstance(tip, str) and tip.strip()]
    if not tips:
        raise ParseError("Response has no usable tips")
    return tips[:MAX_TIPS]


class MealInsightService:
    """
    Summary and tips generator with failure isolation.

    Example:
        >>> service = MealInsightService(llm_client)
        >>> insights = await service.describe(result.items)
        >>> 1 <= len(insights.tips) <= 4
        True
    """

    def __init__(
        self,
        llm: IChatCompletionClient,
        text_model: str = DEFAULT_TEXT_MODEL,
        metrics: Optional[MetricsRegistry] = None,
    ):
        self.llm = llm
        self.text_model = text_model
        self._metrics = metrics

    async def _generate_summary(self, items: Sequence[NutritionItem]) -> str:
        content = await self.llm.complete(
            build_summary_messages(items), model=self.text_model, temperature=0.7, max_tokens=200
        )
        return parse_summary(content)

    async def _generate_tips(self, items: Sequence[NutritionItem]) -> List[str]:
        content = await self.llm.complete(
            build_tips_messages(items), model=self.text_model, temperature=0.7, max_tokens=300
        )
        return parse_tips(content)

    def _record_fallback(self, kind: str, error: BaseException) -> None:
        logger.warning("Derived text fallback", kind=kind, error=str(error) or type(error).__name__)
        if self._metrics is not None:
            self._metrics.counter("insights_fallback", kind=kind).inc()

    async def describe(self, items: Sequence[NutritionItem]) -> MealInsights:
        """
        Produce summary and tips for resolved items.

        Args:
            items: Resolved nutrition items

        Returns:
            MealInsights (always a summary and 1..4 tips)
        """
        totals = MacroTotals.from_items(items)

        if not self.llm.is_configured():
            return MealInsights(
                summary=fallback_summary(totals),
                tips=fallback_tips(totals),
                summary_fallback=True,
                tips_fallback=True,
            )

        summary_result, tips_result = await asyncio.gather(
            self._generate_summary(items),
            self._generate_tips(items),
            return_exceptions=True,
        )

        summary_fallback = isinstance(summary_result, BaseException)
        if summary_fallback:
            self._reraise_if_cancelled(summary_result)
            self._record_fallback("summary", summary_result)
            summary = fallback_summary(totals)
        else:
            summary = summary_result

        tips_fallback = isinstance(tips_result, BaseException)
        if tips_fallback:
            self._reraise_if_cancelled(tips_result)
            self._record_fallback("tips", tips_result)
            tips = fallback_tips(totals)
        else:
            tips = tips_result

        return MealInsights(
            summary=summary,
            tips=tips,
            summary_fallback=summary_fallback,
            tips_fallback=tips_fallback,
        )

    @staticmethod
    def _reraise_if_cancelled(error: BaseException) -> None:
        # Only cancellation and interpreter exits are not degraded
        if not isinstance(error, Exception):
            raise error
