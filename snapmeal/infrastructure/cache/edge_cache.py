"""
Edge response cache.

httpx transport that sits between every outbound client and the network
and picks a caching strategy per request class:

- API and navigation requests: network-first, last good response on
  transport failure
- Static assets: cache-first
- Everything else: stale-while-revalidate

Usage:
    >>> transport = EdgeCacheTransport(httpx.AsyncHTTPTransport())
    >>> client = httpx.AsyncClient(transport=transport)
"""

from __future__ import annotations

import asyncio
import hashlib
import time
from enum import Enum
from typing import Dict, Iterable, List, MutableMapping, Optional, Set, Tuple

import httpx
import structlog
from cachetools import LRUCache
from pydantic import BaseModel, ConfigDict

from snapmeal.metrics import MetricsRegistry

logger = structlog.get_logger(__name__)

DEFAULT_STATIC_PATHS = ("/", "/manifest.json", "/icon-192x192.png", "/icon-512x512.png", "/favicon.ico")
DEFAULT_MAX_ENTRIES = 256
STATIC_EXTENSIONS = (".css", ".js", ".png", ".jpg", ".jpeg", ".svg", ".ico", ".woff", ".woff2", ".webp")


class RequestClass(str, Enum):
    """Request classes with their caching strategy."""

    API = "API"  # network-first
    STATIC_ASSET = "STATIC_ASSET"  # cache-first
    NAVIGATION = "NAVIGATION"  # network-first, offline page fallback
    DYNAMIC = "DYNAMIC"  # stale-while-revalidate


def classify(request: httpx.Request, static_paths: Iterable[str] = DEFAULT_STATIC_PATHS) -> RequestClass:
    """
    Classify an outbound request.

    Example:
        >>> classify(httpx.Request("POST", "https://api.groq.com/openai/v1/chat/completions"))
        <RequestClass.API: 'API'>
    """
    path = request.url.path
    host = request.url.host or ""

    if "/api/" in path or host.startswith("api."):
        return RequestClass.API

    if path in static_paths or path.lower().endswith(STATIC_EXTENSIONS):
        return RequestClass.STATIC_ASSET

    accept = request.headers.get("accept", "")
    if request.headers.get("sec-fetch-mode") == "navigate" or "text/html" in accept:
        return RequestClass.NAVIGATION

    return RequestClass.DYNAMIC


def request_key(method: str, url: str, body: bytes = b"") -> str:
    """Identity of a request: method, URL and body digest."""
    digest = hashlib.sha256(body).hexdigest()
    return f"{method.upper()} {url}#{digest}"


class CachedResponse(BaseModel):
    """Stored copy of a 2xx response (raw, still content-encoded body)."""

    model_config = ConfigDict(frozen=True)

    status_code: int
    headers: List[Tuple[str, str]]
    content: bytes
    stored_at: float

    def to_response(self, request: httpx.Request) -> httpx.Response:
        """Build a fresh httpx response for the given request."""
        return httpx.Response(
            self.status_code,
            headers=self.headers,
            content=self.content,
            request=request,
        )


class EdgeCacheTransport(httpx.AsyncBaseTransport):
    """
    Caching transport wrapping another async transport.

    Only 2xx responses are stored, and a new 2xx response always replaces
    the previous one. Static and dynamic responses live in separate
    namespaces, each an LRU of at most max_entries responses. Background
    refreshes are tracked and cancelled by aclose().

    Args:
        inner: Transport performing the real network IO
        static_paths: Paths served cache-first
        max_entries: Responses kept per namespace
        metrics: Optional metrics registry
    """

    def __init__(
        self,
        inner: Optional[httpx.AsyncBaseTransport] = None,
        static_paths: Iterable[str] = DEFAULT_STATIC_PATHS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        metrics: Optional[MetricsRegistry] = None,
    ) -> None:
        self._inner = inner if inner is not None else httpx.AsyncHTTPTransport()
        self.static_paths = tuple(static_paths)
        self._metrics = metrics
        self._static: LRUCache[str, CachedResponse] = LRUCache(maxsize=max_entries)
        self._dynamic: LRUCache[str, CachedResponse] = LRUCache(maxsize=max_entries)
        self._refreshes: Dict[str, asyncio.Task] = {}
        self._background: Set[asyncio.Task] = set()

    def _count(self, strategy: str, outcome: str) -> None:
        if self._metrics is not None:
            self._metrics.counter("edge_cache_events", strategy=strategy, outcome=outcome).inc()

    def cached(self, request: httpx.Request) -> Optional[CachedResponse]:
        """Look up the stored response for a request in either namespace."""
        key = request_key(request.method, str(request.url), request.content)
        return self._dynamic.get(key) or self._static.get(key)

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        await request.aread()
        key = request_key(request.method, str(request.url), request.content)
        request_class = classify(request, self.static_paths)

        if request_class is RequestClass.STATIC_ASSET:
            return await self._cache_first(request, key)
        if request_class is RequestClass.DYNAMIC:
            return await self._stale_while_revalidate(request, key)
        return await self._network_first(request, key, request_class)

    async def _fetch(
        self, request: httpx.Request, key: str, namespace: MutableMapping[str, CachedResponse]
    ) -> httpx.Response:
        upstream = await self._inner.handle_async_request(request)
        try:
            raw = b"".join([chunk async for chunk in upstream.aiter_raw()])
        except httpx.StreamConsumed:
            # Responses built from in-memory content arrive already read
            raw = upstream.content
        finally:
            await upstream.aclose()

        stored = CachedResponse(
            status_code=upstream.status_code,
            headers=list(upstream.headers.multi_items()),
            content=raw,
            stored_at=time.time(),
        )
        if 200 <= upstream.status_code < 300:
            namespace[key] = stored
        return stored.to_response(request)

    async def _cache_first(self, request: httpx.Request, key: str) -> httpx.Response:
        cached = self._static.get(key)
        if cached is not None:
            self._count("cache_first", "hit")
            return cached.to_response(request)

        self._count("cache_first", "miss")
        return await self._fetch(request, key, self._static)

    async def _network_first(self, request: httpx.Request, key: str, request_class: RequestClass) -> httpx.Response:
        try:
            response = await self._fetch(request, key, self._dynamic)
        except httpx.TransportError as e:
            cached = self._dynamic.get(key)
            if cached is not None:
                self._count("network_first", "fallback")
                logger.info("Serving cached response", url=str(request.url), error=str(e))
                return cached.to_response(request)

            if request_class is RequestClass.NAVIGATION:
                offline_key = request_key("GET", str(request.url.copy_with(raw_path=b"/")))
                offline = self._static.get(offline_key)
                if offline is not None:
                    self._count("network_first", "offline_page")
                    return offline.to_response(request)

            self._count("network_first", "failed")
            raise

        self._count("network_first", "network")
        return response

    async def _stale_while_revalidate(self, request: httpx.Request, key: str) -> httpx.Response:
        cached = self._dynamic.get(key)
        if cached is None:
            self._count("stale_while_revalidate", "miss")
            return await self._fetch(request, key, self._dynamic)

        self._count("stale_while_revalidate", "hit")
        if key not in self._refreshes:
            task = asyncio.create_task(self._refresh(request, key))
            self._refreshes[key] = task
            self._background.add(task)
            task.add_done_callback(lambda t, k=key: self._forget(k, t))
        return cached.to_response(request)

    def _forget(self, key: str, task: asyncio.Task) -> None:
        self._background.discard(task)
        if self._refreshes.get(key) is task:
            del self._refreshes[key]

    async def _refresh(self, request: httpx.Request, key: str) -> None:
        try:
            await self._fetch(request, key, self._dynamic)
        except httpx.HTTPError as e:
            logger.debug("Background refresh failed", url=str(request.url), error=str(e))

    async def aclose(self) -> None:
        """Cancel pending refreshes and close the inner transport."""
        pending = list(self._background)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._refreshes.clear()
        await self._inner.aclose()
