"""OpenFoodFacts API client - primary nutrition database.

Key Features:
- OpenFoodFacts API v2 product lookup
- Circuit breaker (5 failures → 60s open)
- Retry of transport failures (exponential backoff)
- Name required; missing nutriments default to 0
"""

from typing import Any, Optional

import httpx
import structlog
from circuitbreaker import CircuitBreaker, CircuitBreakerError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from snapmeal.domain.meal.barcode.mappers import map_openfoodfacts_product
from snapmeal.domain.meal.nutrition.models import NutritionItem
from snapmeal.domain.shared.errors import DomainError, ParseError, ProviderError, TransportError
from snapmeal.domain.shared.value_objects import Barcode

logger = structlog.get_logger(__name__)


class OpenFoodFactsClient:
    """
    OpenFoodFacts product database.

    Implements the NutritionDatabase protocol.

    Example:
        >>> async with OpenFoodFactsClient() as client:
        ...     item = await client.lookup(Barcode(value="3017620422003"))
        ...     if item:
        ...         print(f"Found: {item.name}")
    """

    BASE_URL = "https://world.openfoodfacts.org/api/v2/product"
    TIMEOUT_S = 8.0

    name = "openfoodfacts"

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        base_url: str = BASE_URL,
        timeout_s: float = TIMEOUT_S,
        max_attempts: int = 2,
        backoff_s: float = 0.5,
    ) -> None:
        """Initialize client.

        Args:
            http_client: Shared client (a private one is created if None)
            base_url: Product endpoint
            timeout_s: Per-request timeout
            max_attempts: Attempts for transport failures
            backoff_s: Exponential backoff multiplier
        """
        self._http = http_client
        self._owns_http = http_client is None
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self.max_attempts = max_attempts
        self.backoff_s = backoff_s
        self._breaker = CircuitBreaker(
            failure_threshold=5,
            recovery_timeout=60,
            expected_exception=DomainError,
            name="openfoodfacts_lookup",
        )
        self._guarded_lookup = self._breaker(self._lookup_with_retry)

    async def __aenter__(self) -> "OpenFoodFactsClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.aclose()

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout_s))
        return self._http

    async def aclose(self) -> None:
        """Close the private HTTP client, if any."""
        if self._http is not None and self._owns_http:
            await self._http.aclose()
            self._http = None

    async def lookup(self, barcode: Barcode) -> Optional[NutritionItem]:
        """
        Look up product by barcode.

        Args:
            barcode: Product code

        Returns:
            NutritionItem if found and named, None otherwise

        Raises:
            TransportError: Network failure after retries, or circuit open
            ProviderError: Non-2xx status other than 404
            ParseError: Malformed JSON body
        """
        try:
            return await self._guarded_lookup(barcode)
        except CircuitBreakerError as e:
            raise TransportError(f"OpenFoodFacts temporarily disabled: {e}") from e

    async def _lookup_with_retry(self, barcode: Barcode) -> Optional[NutritionItem]:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff_s, max=4),
            retry=retry_if_exception_type(TransportError),
            reraise=True,
        ):
            with attempt:
                return await self._fetch_product(barcode)
        return None

    async def _fetch_product(self, barcode: Barcode) -> Optional[NutritionItem]:
        url = f"{self.base_url}/{barcode.value}"

        logger.debug("Looking up barcode", source=self.name, barcode=barcode.value)

        try:
            response = await self._client().get(url, timeout=self.timeout_s)
        except httpx.TransportError as e:
            logger.warning("OpenFoodFacts unreachable", barcode=barcode.value, error=str(e))
            raise TransportError(f"OpenFoodFacts unreachable: {e}") from e

        # Product not found
        if response.status_code == 404:
            logger.info("Barcode not found", source=self.name, barcode=barcode.value)
            return None

        if response.status_code >= 400:
            raise ProviderError(
                f"OpenFoodFacts error: {response.status_code}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ParseError(f"OpenFoodFacts returned invalid JSON: {e}") from e

        # API returns status=0 for not found
        if not isinstance(data, dict) or data.get("status") != 1 or not data.get("product"):
            logger.info("Product not found (status=0)", barcode=barcode.value)
            return None

        try:
            item = map_openfoodfacts_product(data["product"])
        except (AttributeError, TypeError, ValueError) as e:
            raise ParseError(f"OpenFoodFacts returned a malformed product: {e}") from e

        if item is None:
            logger.info("Product has no name", barcode=barcode.value)
            return None

        logger.info("Barcode lookup successful", source=self.name, barcode=barcode.value, product_name=item.name)
        return item
