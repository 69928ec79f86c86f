"""
Tests for NutritionResolver.

Databases are in-memory fakes with scriptable latency and failures.
"""

import asyncio
from typing import Any, Callable, Optional
from unittest.mock import AsyncMock

import httpx
import pytest

from snapmeal.application.barcode.resolver import NutritionResolver, ResolverStrategy
from snapmeal.domain.meal.nutrition.models import NutritionItem
from snapmeal.domain.shared.errors import NotFoundError, ProviderError, TransportError
from snapmeal.domain.shared.value_objects import Barcode
from snapmeal.infrastructure.openfoodfacts.api_client import OpenFoodFactsClient
from snapmeal.infrastructure.usda.api_client import USDAApiClient
from snapmeal.metrics import MetricsRegistry

OFF_ITEM = NutritionItem(name="Nutella", calories=539, protein_g=6, carbs_g=58, fat_g=31)
USDA_ITEM = NutritionItem(name="Hazelnut spread", calories=541, protein_g=5, carbs_g=60, fat_g=30)


class FakeDatabase:
    """Nutrition database double."""

    def __init__(
        self,
        name: str,
        item: Optional[NutritionItem] = None,
        error: Optional[Exception] = None,
        delay: float = 0,
    ) -> None:
        self.name = name
        self.item = item
        self.error = error
        self.delay = delay
        self.calls = 0
        self.cancelled = False

    async def lookup(self, barcode: Barcode) -> Optional[NutritionItem]:
        self.calls += 1
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self.error is not None:
            raise self.error
        return self.item


def _http(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_requires_a_database() -> None:
    with pytest.raises(ValueError):
        NutritionResolver([])


def test_strategy_from_string() -> None:
    resolver = NutritionResolver([FakeDatabase("off")], strategy="concurrent")
    assert resolver.strategy is ResolverStrategy.CONCURRENT


# ═══════════════════════════════════════════════════════════
# SEQUENTIAL
# ═══════════════════════════════════════════════════════════


class TestSequential:
    @pytest.mark.asyncio
    async def test_primary_hit_skips_secondary(self, sample_barcode: Barcode, metrics: MetricsRegistry) -> None:
        off = FakeDatabase("openfoodfacts", item=OFF_ITEM)
        usda = FakeDatabase("usda", item=USDA_ITEM)
        resolver = NutritionResolver([off, usda], metrics=metrics)

        item = await resolver.resolve_by_code(sample_barcode)

        assert item == OFF_ITEM
        assert usda.calls == 0
        assert metrics.counter_value("resolver_lookups", database="openfoodfacts", outcome="hit") == 1

    @pytest.mark.asyncio
    async def test_primary_miss_falls_through(self) -> None:
        resolver = NutritionResolver([FakeDatabase("off"), FakeDatabase("usda", item=USDA_ITEM)])

        assert await resolver.resolve_by_code("3017620422003") == USDA_ITEM

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            TransportError("unreachable"),
            ProviderError("OpenFoodFacts error: 502", status_code=502),
            AttributeError("'int' object has no attribute 'strip'"),
        ],
    )
    async def test_primary_failure_falls_through(self, error: Exception, metrics: MetricsRegistry) -> None:
        resolver = NutritionResolver(
            [FakeDatabase("off", error=error), FakeDatabase("usda", item=USDA_ITEM)], metrics=metrics
        )

        assert await resolver.resolve_by_code("3017620422003") == USDA_ITEM
        assert metrics.counter_value("resolver_lookups", database="off", outcome="error") == 1

    @pytest.mark.asyncio
    async def test_slow_database_times_out(self, metrics: MetricsRegistry) -> None:
        slow = FakeDatabase("off", item=OFF_ITEM, delay=5)
        resolver = NutritionResolver([slow, FakeDatabase("usda", item=USDA_ITEM)], timeout_s=0.05, metrics=metrics)

        assert await resolver.resolve_by_code("3017620422003") == USDA_ITEM
        assert metrics.counter_value("resolver_lookups", database="off", outcome="timeout") == 1

    @pytest.mark.asyncio
    async def test_unknown_code_not_found(self) -> None:
        resolver = NutritionResolver([FakeDatabase("off"), FakeDatabase("usda")])

        with pytest.raises(NotFoundError, match="000000000"):
            await resolver.resolve_by_code("000000000")

    @pytest.mark.asyncio
    async def test_all_databases_failing_is_not_found(self) -> None:
        resolver = NutritionResolver(
            [FakeDatabase("off", error=TransportError("down")), FakeDatabase("usda", error=TransportError("down"))]
        )

        with pytest.raises(NotFoundError):
            await resolver.resolve_by_code("3017620422003")

    @pytest.mark.asyncio
    async def test_blank_code_not_found(self) -> None:
        off = FakeDatabase("off", item=OFF_ITEM)
        resolver = NutritionResolver([off])

        with pytest.raises(NotFoundError, match="Invalid product code"):
            await resolver.resolve_by_code("   ")
        assert off.calls == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("product", [{"product_name": 12345}, ["Nutella"], "Nutella"])
    async def test_malformed_primary_product_falls_through(self, product: Any) -> None:
        body = {"status": 1, "product": product}
        off = OpenFoodFactsClient(http_client=_http(lambda request: httpx.Response(200, json=body)))
        usda = FakeDatabase("usda", item=USDA_ITEM)
        resolver = NutritionResolver([off, usda])

        item = await resolver.resolve_by_code("3017620422003")

        assert item == USDA_ITEM
        assert usda.calls == 1

    @pytest.mark.asyncio
    async def test_malformed_nutriments_still_resolve_from_primary(self) -> None:
        body = {"status": 1, "product": {"product_name": "Nutella", "nutriments": ["bad"]}}
        off = OpenFoodFactsClient(http_client=_http(lambda request: httpx.Response(200, json=body)))
        usda = FakeDatabase("usda", item=USDA_ITEM)

        item = await NutritionResolver([off, usda]).resolve_by_code("3017620422003")

        assert item.name == "Nutella"
        assert item.calories == 0
        assert usda.calls == 0

    @pytest.mark.asyncio
    async def test_malformed_payloads_everywhere_is_not_found(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "world.openfoodfacts.org":
                return httpx.Response(200, json={"status": 1, "product": {"product_name": 12345}})
            return httpx.Response(200, json={"foods": ["oops", 7]})

        http = _http(handler)
        resolver = NutritionResolver([OpenFoodFactsClient(http_client=http), USDAApiClient(http_client=http)])

        with pytest.raises(NotFoundError):
            await resolver.resolve_by_code("3017620422003")


# ═══════════════════════════════════════════════════════════
# CONCURRENT
# ═══════════════════════════════════════════════════════════


class TestConcurrent:
    @pytest.mark.asyncio
    async def test_primary_wins_even_when_slower(self) -> None:
        off = FakeDatabase("off", item=OFF_ITEM, delay=0.05)
        usda = FakeDatabase("usda", item=USDA_ITEM)
        resolver = NutritionResolver([off, usda], strategy=ResolverStrategy.CONCURRENT)

        item = await resolver.resolve_by_code("3017620422003")

        assert item == OFF_ITEM
        assert (off.calls, usda.calls) == (1, 1)

    @pytest.mark.asyncio
    async def test_pending_lookups_cancelled_on_primary_hit(self) -> None:
        off = FakeDatabase("off", item=OFF_ITEM)
        usda = FakeDatabase("usda", item=USDA_ITEM, delay=10)
        resolver = NutritionResolver([off, usda], strategy=ResolverStrategy.CONCURRENT)

        item = await resolver.resolve_by_code("3017620422003")

        assert item == OFF_ITEM
        assert usda.cancelled

    @pytest.mark.asyncio
    async def test_secondary_used_when_primary_misses(self) -> None:
        resolver = NutritionResolver(
            [FakeDatabase("off", delay=0.01), FakeDatabase("usda", item=USDA_ITEM)],
            strategy=ResolverStrategy.CONCURRENT,
        )

        assert await resolver.resolve_by_code("3017620422003") == USDA_ITEM

    @pytest.mark.asyncio
    async def test_none_found(self) -> None:
        resolver = NutritionResolver(
            [FakeDatabase("off"), FakeDatabase("usda")], strategy=ResolverStrategy.CONCURRENT
        )

        with pytest.raises(NotFoundError):
            await resolver.resolve_by_code("000000000")


# ═══════════════════════════════════════════════════════════
# FREE-TEXT SEARCH
# ═══════════════════════════════════════════════════════════


class TestSearchByName:
    @pytest.mark.asyncio
    async def test_delegates_to_search_backend(self) -> None:
        search = AsyncMock()
        search.search_by_description.return_value = [USDA_ITEM]
        resolver = NutritionResolver([FakeDatabase("off")], search=search)

        items = await resolver.search_by_name(" hazelnut ", limit=3)

        assert items == [USDA_ITEM]
        search.search_by_description.assert_awaited_once_with("hazelnut", max_results=3)

    @pytest.mark.asyncio
    async def test_failure_returns_empty(self) -> None:
        search = AsyncMock()
        search.search_by_description.side_effect = ProviderError("USDA API error: 429", status_code=429)
        resolver = NutritionResolver([FakeDatabase("off")], search=search)

        assert await resolver.search_by_name("pasta") == []

    @pytest.mark.asyncio
    async def test_unexpected_search_error_returns_empty(self) -> None:
        search = AsyncMock()
        search.search_by_description.side_effect = KeyError("foods")
        resolver = NutritionResolver([FakeDatabase("off")], search=search)

        assert await resolver.search_by_name("pasta") == []

    @pytest.mark.asyncio
    async def test_without_backend_or_query(self) -> None:
        resolver = NutritionResolver([FakeDatabase("off")])
        assert await resolver.search_by_name("pasta") == []

        with_search = NutritionResolver([FakeDatabase("off")], search=AsyncMock())
        assert await with_search.search_by_name("   ") == []
