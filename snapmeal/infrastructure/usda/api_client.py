"""
USDA FoodData Central API client.

Secondary nutrition database. FoodData Central has no barcode endpoint, so
barcode lookups go through the full-text search and take the first hit.
"""

from typing import Any, Dict, List, Optional

import httpx
import structlog
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from snapmeal.domain.meal.barcode.mappers import map_usda_food
from snapmeal.domain.meal.nutrition.models import NutritionItem
from snapmeal.domain.shared.errors import ParseError, ProviderError, TransportError
from snapmeal.domain.shared.value_objects import Barcode

logger = structlog.get_logger(__name__)


class USDAApiClient:
    """USDA FoodData Central API client."""

    BASE_URL = "https://api.nal.usda.gov/fdc/v1"

    name = "usda"

    def __init__(
        self,
        api_key: str = "DEMO_KEY",
        http_client: Optional[httpx.AsyncClient] = None,
        base_url: str = BASE_URL,
        timeout_seconds: float = 10.0,
        max_attempts: int = 2,
        backoff_s: float = 0.5,
    ) -> None:
        """Initialize API client.

        Args:
            api_key: USDA API key
            http_client: Shared client (a private one is created if None)
            base_url: API root
            timeout_seconds: Request timeout
            max_attempts: Attempts for transport failures
            backoff_s: Exponential backoff multiplier
        """
        self.api_key = api_key
        self._http = http_client
        self._owns_http = http_client is None
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.max_attempts = max_attempts
        self.backoff_s = backoff_s

    async def __aenter__(self) -> "USDAApiClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, *args: object) -> None:
        """Async context manager exit."""
        await self.aclose()

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout_seconds))
        return self._http

    async def aclose(self) -> None:
        """Close the private HTTP client, if any."""
        if self._http is not None and self._owns_http:
            await self._http.aclose()
            self._http = None

    async def _search(self, query: str, page_size: int) -> List[Dict[str, Any]]:
        """Run foods/search with retry on transport failures.

        Returns:
            List of food hits (possibly empty)
        """
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff_s, max=4),
            retry=retry_if_exception_type(TransportError),
            reraise=True,
        ):
            with attempt:
                return await self._search_once(query, page_size)
        return []

    async def _search_once(self, query: str, page_size: int) -> List[Dict[str, Any]]:
        params = {"query": query, "pageSize": page_size, "api_key": self.api_key}
        url = f"{self.base_url}/foods/search"

        try:
            response = await self._client().get(url, params=params, timeout=self.timeout_seconds)
        except httpx.TransportError as e:
            logger.warning("USDA unreachable", query=query, error=str(e))
            raise TransportError(f"USDA API unreachable: {e}") from e

        if response.status_code == 404:
            return []

        if response.status_code >= 400:
            if response.status_code == 429:
                logger.warning("USDA API rate limit", query=query)
            raise ProviderError(f"USDA API error: {response.status_code}", status_code=response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            raise ParseError(f"USDA API returned invalid JSON: {e}") from e

        foods = data.get("foods") if isinstance(data, dict) else None
        return [f for f in foods if isinstance(f, dict)] if isinstance(foods, list) else []

    async def lookup(self, barcode: Barcode) -> Optional[NutritionItem]:
        """Search USDA database by barcode.

        Args:
            barcode: Product barcode

        Returns:
            NutritionItem from the first hit, or None if no hit

        Raises:
            TransportError: If the API is unreachable after retries
            ProviderError: If API error
            ParseError: If body is not JSON
        """
        foods = await self._search(barcode.value, page_size=1)
        if not foods:
            logger.info("Barcode not found in USDA", barcode=barcode.value)
            return None

        try:
            item = map_usda_food(foods[0])
        except (AttributeError, TypeError, ValueError) as e:
            raise ParseError(f"USDA API returned a malformed food: {e}") from e

        logger.info("USDA lookup successful", barcode=barcode.value, product_name=item.name)
        return item

    async def search_by_description(self, description: str, max_results: int = 5) -> List[NutritionItem]:
        """Search USDA database by food description.

        Args:
            description: Free-text food name
            max_results: Max results to return

        Returns:
            Matching items (possibly empty)
        """
        foods = await self._search(description, page_size=max_results)
        return [
            map_usda_food(food, default_name="Food Item", carbs_name="Carbohydrate", fat_name="Total lipid")
            for food in foods[:max_results]
        ]
