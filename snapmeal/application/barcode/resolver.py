"""
Nutrition resolver (barcode path).

Queries an ordered list of nutrition databases for a product code and
returns the first usable record. The primary database's answer always
wins over the secondary's, whichever strategy is used.
"""

import asyncio
import time
from enum import Enum
from typing import List, Optional, Sequence, Union

import structlog
from pydantic import ValidationError

from snapmeal.domain.meal.nutrition.models import NutritionItem
from snapmeal.domain.meal.orchestration.ports import IFoodSearch, INutritionDatabase
from snapmeal.domain.shared.errors import DomainError, NotFoundError
from snapmeal.domain.shared.value_objects import Barcode
from snapmeal.metrics import MetricsRegistry

logger = structlog.get_logger(__name__)


class ResolverStrategy(str, Enum):
    """Database query strategy."""

    SEQUENTIAL = "sequential"  # Early exit on first usable hit
    CONCURRENT = "concurrent"  # All at once, consumed in priority order


class NutritionResolver:
    """Resolves product codes against ordered nutrition databases.

    Flow (sequential):
    1. Query primary database (OpenFoodFacts)
    2. Query secondary database (USDA) only if primary had nothing usable
    3. NotFoundError if none answered

    Each query has its own timeout; a failing database is logged and
    skipped.
    """

    def __init__(
        self,
        databases: Sequence[INutritionDatabase],
        strategy: Union[ResolverStrategy, str] = ResolverStrategy.SEQUENTIAL,
        timeout_s: float = 8.0,
        search: Optional[IFoodSearch] = None,
        metrics: Optional[MetricsRegistry] = None,
    ) -> None:
        """Initialize resolver.

        Args:
            databases: Databases in priority order
            strategy: Sequential or concurrent querying
            timeout_s: Per-database query timeout
            search: Optional free-text search backend
            metrics: Optional metrics registry
        """
        if not databases:
            raise ValueError("At least one nutrition database is required")
        self.databases = list(databases)
        self.strategy = ResolverStrategy(strategy)
        self.timeout_s = timeout_s
        self.search = search
        self._metrics = metrics

    def _count(self, database: str, outcome: str) -> None:
        if self._metrics is not None:
            self._metrics.counter("resolver_lookups", database=database, outcome=outcome).inc()

    async def _query(self, database: INutritionDatabase, barcode: Barcode) -> Optional[NutritionItem]:
        start_time = time.time()
        try:
            item = await asyncio.wait_for(database.lookup(barcode), timeout=self.timeout_s)
        except asyncio.TimeoutError:
            self._count(database.name, "timeout")
            logger.warning(
                "Database lookup timed out",
                database=database.name,
                barcode=barcode.value,
                timeout_s=self.timeout_s,
            )
            return None
        except DomainError as e:
            self._count(database.name, "error")
            logger.warning(
                "Database lookup failed",
                database=database.name,
                barcode=barcode.value,
                error=str(e),
            )
            return None
        except Exception as e:
            self._count(database.name, "error")
            logger.warning(
                "Database lookup crashed",
                database=database.name,
                barcode=barcode.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

        time_ms = round((time.time() - start_time) * 1000, 2)
        if item is None:
            self._count(database.name, "miss")
            logger.debug("Not found in database", database=database.name, barcode=barcode.value, time_ms=time_ms)
            return None

        self._count(database.name, "hit")
        logger.info(
            "Found in database",
            database=database.name,
            barcode=barcode.value,
            name=item.name,
            time_ms=time_ms,
        )
        return item

    async def resolve_by_code(self, code: Union[Barcode, str]) -> NutritionItem:
        """Resolve nutrition data for a product code.

        Args:
            code: Product code (opaque string)

        Returns:
            NutritionItem from the highest-priority database that knows it

        Raises:
            NotFoundError: If no database yields a usable record

        Example:
            >>> resolver = NutritionResolver([off_client, usda_client])
            >>> item = await resolver.resolve_by_code("3017620422003")
        """
        try:
            barcode = code if isinstance(code, Barcode) else Barcode.from_string(code)
        except ValidationError as e:
            raise NotFoundError(f"Invalid product code: {code!r}") from e

        logger.info("Starting barcode resolution", barcode=barcode.value, strategy=self.strategy.value)

        if self.strategy is ResolverStrategy.CONCURRENT:
            item = await self._resolve_concurrently(barcode)
        else:
            item = await self._resolve_sequentially(barcode)

        if item is None:
            raise NotFoundError(f"Product {barcode.value} not found in any database")
        return item

    async def _resolve_sequentially(self, barcode: Barcode) -> Optional[NutritionItem]:
        for database in self.databases:
            item = await self._query(database, barcode)
            if item is not None:
                return item
        return None

    async def _resolve_concurrently(self, barcode: Barcode) -> Optional[NutritionItem]:
        tasks = [asyncio.create_task(self._query(database, barcode)) for database in self.databases]
        try:
            # Priority order: a later database never pre-empts an earlier one
            for task in tasks:
                item = await task
                if item is not None:
                    return item
            return None
        finally:
            pending = [task for task in tasks if not task.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

    async def search_by_name(self, query: str, limit: int = 5) -> List[NutritionItem]:
        """Free-text food search.

        Args:
            query: Food name
            limit: Max results

        Returns:
            Matching items, [] on failure or when no search backend is set
        """
        if self.search is None or not query.strip():
            return []

        try:
            return await asyncio.wait_for(
                self.search.search_by_description(query.strip(), max_results=limit),
                timeout=self.timeout_s,
            )
        except Exception as e:
            logger.warning("Food search failed", query=query, error=str(e) or type(e).__name__)
            return []
