"""
Pipeline coordinator.

Drives a single request from input (photo or product code) to a published
MealRecord, recording every state change on a PipelineRun.

Flow (image):
1. Result cache lookup by upload fingerprint (hit → publish, no network)
2. Upload image (failure → ERRORED, surfaced to caller)
3. Vision analysis with fallback chain (never fails)
4. Summary and tips (never fail)
5. Write-through to the result cache (best-effort, shielded)
6. Publish
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Callable, List, Optional

import structlog

from snapmeal.application.barcode.resolver import NutritionResolver
from snapmeal.domain.meal.insights.service import MealInsightService
from snapmeal.domain.meal.nutrition.models import (
    AnalysisResult,
    AnalysisTier,
    MealRecord,
    NutritionItem,
    Provenance,
)
from snapmeal.domain.meal.orchestration.pipeline_state import PipelineRun, PipelineState
from snapmeal.domain.meal.orchestration.ports import IImageHost
from snapmeal.domain.meal.recognition.service import VisionAnalysisOrchestrator
from snapmeal.domain.meal.upload.models import ImageUpload
from snapmeal.domain.shared.errors import ConfigError, UploadError
from snapmeal.domain.shared.value_objects import FileFingerprint, MealId
from snapmeal.infrastructure.cache.result_cache import ResultCache
from snapmeal.metrics import MetricsRegistry

logger = structlog.get_logger(__name__)


class PipelineCoordinator:
    """
    Coordinates upload, analysis, enrichment and caching.

    Example:
        >>> pipeline = build_pipeline(Settings.from_env())
        >>> record = await pipeline.analyze_image(upload)
        >>> record.analysis.provenance
        'AUTHORITATIVE'
    """

    def __init__(
        self,
        image_host: IImageHost,
        orchestrator: VisionAnalysisOrchestrator,
        insights: MealInsightService,
        resolver: NutritionResolver,
        cache: ResultCache,
        metrics: Optional[MetricsRegistry] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize coordinator.

        Args:
            image_host: Image hosting adapter
            orchestrator: Vision fallback chain
            insights: Summary and tips generator
            resolver: Barcode resolver
            cache: Result cache
            metrics: Optional metrics registry
            clock: Time source in epoch seconds
        """
        self.image_host = image_host
        self.orchestrator = orchestrator
        self.insights = insights
        self.resolver = resolver
        self.cache = cache
        self._metrics = metrics
        self._clock = clock

    def _observe(self, path: str, outcome: str, start_time: float) -> None:
        if self._metrics is None:
            return
        self._metrics.counter("pipeline_runs", path=path, outcome=outcome).inc()
        self._metrics.histogram("pipeline_latency_ms", path=path).observe((self._clock() - start_time) * 1000)

    def _new_record(self, image_ref: str, analysis: AnalysisResult) -> MealRecord:
        now = self._clock()
        return MealRecord(
            id=MealId.generate(now_ms=int(now * 1000)).value,
            created_at=datetime.fromtimestamp(now, tz=timezone.utc),
            image_ref=image_ref,
            analysis=analysis,
        )

    async def analyze_image(self, upload: ImageUpload, run: Optional[PipelineRun] = None) -> MealRecord:
        """
        Analyze a food photo.

        Args:
            upload: Image file
            run: Optional run to record transitions on

        Returns:
            Published MealRecord

        Raises:
            InvalidImageError: File rejected before upload
            UploadError: Upload failed
            ConfigError: Image hosting not configured
        """
        run = run if run is not None else PipelineRun(clock=self._clock)
        start_time = self._clock()
        fingerprint = upload.fingerprint()

        cached = await self.cache.get_analysis(fingerprint)
        if cached is not None:
            logger.info("Serving cached analysis", fingerprint=fingerprint.value)
            record = self._new_record(f"local:{upload.filename}", cached)
            run.transition(PipelineState.PUBLISHED, detail="cache_hit")
            self._observe("image", "cache_hit", start_time)
            return record

        run.transition(PipelineState.UPLOADING)
        try:
            image_url = await self.image_host.upload(upload)
        except (UploadError, ConfigError) as e:
            run.transition(PipelineState.ERRORED, detail=str(e))
            self._observe("image", "upload_failed", start_time)
            logger.error("Upload failed", filename=upload.filename, error=str(e))
            raise

        run.transition(PipelineState.ANALYZING_PRIMARY)
        analysis = await self.orchestrator.analyze(
            image_url,
            on_fallback=lambda reason: run.transition(PipelineState.ANALYZING_FALLBACK, detail=reason),
        )

        record = await self._enrich_and_publish(run, image_url, analysis, fingerprint)
        self._observe("image", str(record.analysis.provenance).lower(), start_time)
        return record

    async def analyze_barcode(self, code: str, run: Optional[PipelineRun] = None) -> MealRecord:
        """
        Resolve a scanned product code.

        Args:
            code: Product code
            run: Optional run to record transitions on

        Returns:
            Published MealRecord

        Raises:
            NotFoundError: If no database knows the code
        """
        run = run if run is not None else PipelineRun(clock=self._clock)
        start_time = self._clock()

        run.transition(PipelineState.ANALYZING_PRIMARY)
        item = await self.resolver.resolve_by_code(code)
        analysis = AnalysisResult(items=[item], provenance=Provenance.AUTHORITATIVE, tier=AnalysisTier.DATABASE)

        record = await self._enrich_and_publish(run, f"barcode:{code.strip()}", analysis, None)
        self._observe("barcode", "resolved", start_time)
        return record

    async def _enrich_and_publish(
        self,
        run: PipelineRun,
        image_ref: str,
        analysis: AnalysisResult,
        fingerprint: Optional[FileFingerprint],
    ) -> MealRecord:
        run.transition(PipelineState.ENRICHING)
        insights = await self.insights.describe(analysis.items)
        analysis = analysis.with_insights(insights.summary, insights.tips)

        record = self._new_record(image_ref, analysis)

        run.transition(PipelineState.CACHING)
        # A started write completes even if the caller goes away
        await asyncio.shield(self._persist(record, fingerprint))

        run.transition(PipelineState.PUBLISHED)
        logger.info(
            "Meal published",
            meal_id=record.id,
            provenance=record.analysis.provenance,
            tier=record.analysis.tier,
            items=len(record.analysis.items),
        )
        return record

    async def _persist(self, record: MealRecord, fingerprint: Optional[FileFingerprint]) -> None:
        await self.cache.put_meal(record)
        # Estimates are not reused for later uploads of the same file
        if fingerprint is not None and not record.analysis.is_estimated():
            await self.cache.put_analysis(fingerprint, record.analysis)

    async def get_meal(self, meal_id: str) -> Optional[MealRecord]:
        """Get a published meal record from the cache."""
        return await self.cache.get_meal(meal_id)

    async def search_foods(self, query: str, limit: int = 5) -> List[NutritionItem]:
        """Free-text food search."""
        return await self.resolver.search_by_name(query, limit=limit)

    async def sweep_expired(self) -> int:
        """Remove expired cache entries."""
        return await self.cache.sweep_expired()
