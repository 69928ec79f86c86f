"""
Result cache with TTL support.

Stores resolved analyses and meal records under content-derived keys so a
repeated request is served without touching the network. Writes are
best-effort: a failing store never fails the caller.
"""

from __future__ import annotations

import json
import time
from typing import Any, Callable, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from snapmeal.domain.meal.nutrition.models import AnalysisResult, MealRecord
from snapmeal.domain.shared.errors import CacheError
from snapmeal.domain.shared.value_objects import FileFingerprint
from snapmeal.infrastructure.cache.stores import InMemoryKeyValueStore, KeyValueStore
from snapmeal.metrics import MetricsRegistry

logger = structlog.get_logger(__name__)

DEFAULT_TTL_SECONDS = 24 * 60 * 60


class CacheEntry(BaseModel):
    """
    Persisted cache record.

    Usable only while now < expires_at.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    value: Any = Field(..., description="Cached JSON value")
    stored_at: float = Field(..., alias="timestamp", description="Write time (epoch s)")
    expires_at: float = Field(..., description="Expiry time (epoch s)")

    def is_expired(self, now: float) -> bool:
        """Check if entry is expired at the given time."""
        return now >= self.expires_at


class ResultCache:
    """
    Prefixed, TTL-bound cache over a KeyValueStore.

    Keys are "{prefix}-{key}". Expired entries are deleted lazily on read
    and eagerly by sweep_expired().

    Example:
        >>> cache = ResultCache(InMemoryKeyValueStore())
        >>> await cache.put("analysis-lunch.jpg-204800-1700000000000", {"items": []})
        >>> await cache.get("analysis-lunch.jpg-204800-1700000000000")
        {'items': []}
    """

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        default_ttl_seconds: float = DEFAULT_TTL_SECONDS,
        prefix: str = "snapmeal",
        clock: Callable[[], float] = time.time,
        metrics: Optional[MetricsRegistry] = None,
    ) -> None:
        """Initialize cache.

        Args:
            store: Backing store (default in-memory)
            default_ttl_seconds: TTL applied when put() gets none (default 24h)
            prefix: Prefix for every stored key
            clock: Time source in epoch seconds
            metrics: Optional metrics registry
        """
        self.store: KeyValueStore = store if store is not None else InMemoryKeyValueStore()
        self.default_ttl = default_ttl_seconds
        self.prefix = prefix
        self._clock = clock
        self._metrics = metrics

    def _full_key(self, key: str) -> str:
        return f"{self.prefix}-{key}"

    def _make_key(self, namespace: str, value: str) -> str:
        """Generate namespaced key (without prefix).

        Args:
            namespace: Key namespace (e.g., 'meal', 'analysis')
            value: Key value

        Returns:
            Cache key string
        """
        return f"{namespace}-{value}"

    def _count(self, event: str) -> None:
        if self._metrics is not None:
            self._metrics.counter("result_cache_events", event=event).inc()

    async def put(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        """Store value with expiry. Never raises on store failure.

        Args:
            key: Cache key (without prefix)
            value: JSON-serializable value
            ttl_seconds: TTL (default: cache default)
        """
        full_key = self._full_key(key)
        ttl = self.default_ttl if ttl_seconds is None else ttl_seconds
        now = self._clock()
        entry = CacheEntry(value=value, stored_at=now, expires_at=now + ttl)

        try:
            payload = json.dumps(entry.model_dump(by_alias=True))
            await self.store.set(full_key, payload)
        except (CacheError, TypeError, ValueError) as e:
            self._count("write_failed")
            logger.warning("Cache write failed", key=full_key, error=str(e))
            return

        logger.debug("Cached item", key=full_key, ttl=ttl)

    async def _read_entry(self, full_key: str) -> Optional[CacheEntry]:
        raw = await self.store.get(full_key)
        if raw is None:
            return None
        return CacheEntry.model_validate(json.loads(raw))

    async def get(self, key: str) -> Optional[Any]:
        """Get cached value, None if absent, expired or unreadable.

        Args:
            key: Cache key (without prefix)

        Returns:
            Cached value or None
        """
        full_key = self._full_key(key)
        try:
            entry = await self._read_entry(full_key)
        except (CacheError, OSError, ValueError, ValidationError) as e:
            self._count("read_failed")
            logger.warning("Cache read failed", key=full_key, error=str(e))
            return None

        if entry is None:
            self._count("miss")
            logger.debug("Cache miss", key=full_key)
            return None

        if entry.is_expired(self._clock()):
            self._count("expired")
            logger.debug("Cache expired", key=full_key)
            await self._delete_quietly(full_key)
            return None

        self._count("hit")
        logger.debug("Cache hit", key=full_key)
        return entry.value

    async def _delete_quietly(self, full_key: str) -> None:
        try:
            await self.store.delete(full_key)
        except (CacheError, OSError) as e:
            logger.warning("Cache delete failed", key=full_key, error=str(e))

    async def sweep_expired(self) -> int:
        """Remove expired and unreadable entries.

        Idempotent: a second call right after returns 0.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        removed = 0

        for full_key in await self.store.keys(f"{self.prefix}-"):
            try:
                entry = await self._read_entry(full_key)
            except (CacheError, OSError, ValueError, ValidationError):
                stale = True
            else:
                stale = entry is not None and entry.is_expired(now)

            if stale:
                await self._delete_quietly(full_key)
                removed += 1

        if removed:
            logger.info("Removed expired entries", count=removed)

        return removed

    async def size_bytes(self) -> int:
        """Approximate footprint of prefixed records in bytes."""
        total = 0
        for full_key in await self.store.keys(f"{self.prefix}-"):
            raw = await self.store.get(full_key)
            if raw is not None:
                total += len(full_key.encode("utf-8")) + len(raw.encode("utf-8"))
        return total

    # ═══════════════════════════════════════════════════════════
    # TYPED HELPERS
    # ═══════════════════════════════════════════════════════════

    async def get_analysis(self, fingerprint: FileFingerprint) -> Optional[AnalysisResult]:
        """Get cached analysis for an upload fingerprint."""
        raw = await self.get(self._make_key("analysis", fingerprint.value))
        if raw is None:
            return None
        try:
            return AnalysisResult.from_wire(raw)
        except ValidationError as e:
            logger.warning("Discarding malformed cached analysis", error=str(e))
            return None

    async def put_analysis(
        self,
        fingerprint: FileFingerprint,
        analysis: AnalysisResult,
        ttl_seconds: Optional[float] = None,
    ) -> None:
        """Cache analysis under the upload fingerprint."""
        await self.put(
            self._make_key("analysis", fingerprint.value), analysis.to_wire(), ttl_seconds
        )

    async def get_meal(self, meal_id: str) -> Optional[MealRecord]:
        """Get cached meal record by ID."""
        raw = await self.get(self._make_key("meal", meal_id))
        if raw is None:
            return None
        try:
            return MealRecord.from_wire(raw)
        except ValidationError as e:
            logger.warning("Discarding malformed cached meal", meal_id=meal_id, error=str(e))
            return None

    async def put_meal(self, record: MealRecord, ttl_seconds: Optional[float] = None) -> None:
        """Cache meal record under its ID."""
        await self.put(self._make_key("meal", record.id), record.to_wire(), ttl_seconds)
