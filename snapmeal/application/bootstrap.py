"""
Pipeline wiring.

Builds every component explicitly from Settings. All outbound provider and
database traffic shares one httpx client whose transport is the edge
response cache; image uploads use their own client.
"""

from __future__ import annotations

from typing import Optional

import httpx
import structlog

from snapmeal.application.barcode.resolver import NutritionResolver
from snapmeal.application.meal.pipeline import PipelineCoordinator
from snapmeal.config import Settings
from snapmeal.domain.meal.insights.service import MealInsightService
from snapmeal.domain.meal.recognition.service import VisionAnalysisOrchestrator
from snapmeal.infrastructure.ai.llm_client import LLMClient
from snapmeal.infrastructure.cache.edge_cache import EdgeCacheTransport
from snapmeal.infrastructure.cache.result_cache import ResultCache
from snapmeal.infrastructure.cache.stores import FileKeyValueStore, InMemoryKeyValueStore, KeyValueStore
from snapmeal.infrastructure.imaging.imgbb_client import ImgBBClient
from snapmeal.infrastructure.openfoodfacts.api_client import OpenFoodFactsClient
from snapmeal.infrastructure.usda.api_client import USDAApiClient
from snapmeal.metrics import MetricsRegistry

logger = structlog.get_logger(__name__)


class Pipeline(PipelineCoordinator):
    """Coordinator that owns its HTTP resources.

    Use as an async context manager, or call aclose() when done.
    """

    def __init__(
        self,
        *args,
        http_client: httpx.AsyncClient,
        upload_client: httpx.AsyncClient,
        edge_cache: EdgeCacheTransport,
        **kwargs,
    ):
        super().__init__(*args, **kwargs)
        self.http_client = http_client
        self.upload_client = upload_client
        self.edge_cache = edge_cache

    async def __aenter__(self) -> Pipeline:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close HTTP clients (also cancels edge cache refreshes)."""
        await self.http_client.aclose()
        await self.upload_client.aclose()


def build_store(settings: Settings) -> KeyValueStore:
    """File store when a cache directory is configured, memory otherwise."""
    if settings.cache_dir is not None:
        return FileKeyValueStore(settings.cache_dir)
    return InMemoryKeyValueStore()


def build_pipeline(
    settings: Settings,
    metrics: Optional[MetricsRegistry] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    upload_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Pipeline:
    """
    Build a fully wired pipeline.

    Args:
        settings: Pipeline settings
        metrics: Metrics registry (a fresh one if None)
        transport: Network transport under the edge cache (default: real network)
        upload_transport: Transport for image uploads (default: real network)

    Returns:
        Pipeline ready to use
    """
    metrics = metrics if metrics is not None else MetricsRegistry()

    edge_cache = EdgeCacheTransport(inner=transport, max_entries=settings.edge_cache_entries, metrics=metrics)
    http_client = httpx.AsyncClient(transport=edge_cache, timeout=httpx.Timeout(settings.http_timeout_s))
    upload_client = httpx.AsyncClient(
        transport=upload_transport if upload_transport is not None else httpx.AsyncHTTPTransport(),
        timeout=httpx.Timeout(settings.http_timeout_s),
    )

    llm = LLMClient(
        api_key=settings.groq_api_key,
        base_url=settings.groq_base_url,
        timeout=settings.http_timeout_s,
        http_client=http_client,
    )

    off_client = OpenFoodFactsClient(http_client=http_client, timeout_s=settings.db_timeout_s)
    usda_client = USDAApiClient(
        api_key=settings.usda_api_key,
        http_client=http_client,
        timeout_seconds=settings.db_timeout_s,
    )

    resolver = NutritionResolver(
        databases=[off_client, usda_client],
        strategy=settings.resolver_strategy,
        timeout_s=settings.db_timeout_s,
        search=usda_client,
        metrics=metrics,
    )

    cache = ResultCache(
        store=build_store(settings),
        default_ttl_seconds=settings.cache_ttl_s,
        prefix=settings.cache_prefix,
        metrics=metrics,
    )

    logger.debug(
        "Pipeline built",
        llm_configured=llm.is_configured(),
        resolver_strategy=settings.resolver_strategy,
        cache_dir=str(settings.cache_dir) if settings.cache_dir else None,
    )

    return Pipeline(
        image_host=ImgBBClient(api_key=settings.imgbb_api_key, http_client=upload_client),
        orchestrator=VisionAnalysisOrchestrator(
            llm, vision_model=settings.vision_model, text_model=settings.text_model, metrics=metrics
        ),
        insights=MealInsightService(llm, text_model=settings.text_model, metrics=metrics),
        resolver=resolver,
        cache=cache,
        metrics=metrics,
        http_client=http_client,
        upload_client=upload_client,
        edge_cache=edge_cache,
    )
