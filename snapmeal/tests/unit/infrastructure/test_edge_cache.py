"""
Unit tests for the edge response cache transport.

The network is an httpx.MockTransport whose behaviour each test switches
between answering and failing.
"""

import asyncio
from typing import List, Optional

import httpx
import pytest

from snapmeal.infrastructure.cache.edge_cache import (
    EdgeCacheTransport,
    RequestClass,
    classify,
    request_key,
)
from snapmeal.metrics import MetricsRegistry


class FakeNetwork:
    """Scriptable upstream: answers with a counter-stamped body or fails."""

    def __init__(self) -> None:
        self.calls: List[httpx.Request] = []
        self.offline = False
        self.status = 200
        self.delay: Optional[float] = None

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.offline:
            raise httpx.ConnectError("network unreachable", request=request)
        return httpx.Response(self.status, json={"call": len(self.calls)})


@pytest.fixture
def network() -> FakeNetwork:
    return FakeNetwork()


@pytest.fixture
async def client(network: FakeNetwork, metrics: MetricsRegistry):
    transport = EdgeCacheTransport(httpx.MockTransport(network), metrics=metrics)
    async with httpx.AsyncClient(transport=transport) as client:
        yield client


# ═══════════════════════════════════════════════════════════
# CLASSIFICATION
# ═══════════════════════════════════════════════════════════


class TestClassify:
    @pytest.mark.parametrize(
        "url, headers, expected",
        [
            ("https://api.groq.com/openai/v1/chat/completions", {}, RequestClass.API),
            ("https://world.openfoodfacts.org/api/v2/product/123", {}, RequestClass.API),
            ("https://app.example.com/manifest.json", {}, RequestClass.STATIC_ASSET),
            ("https://app.example.com/assets/app.css", {}, RequestClass.STATIC_ASSET),
            ("https://app.example.com/history", {"sec-fetch-mode": "navigate"}, RequestClass.NAVIGATION),
            ("https://app.example.com/history", {"accept": "text/html,*/*"}, RequestClass.NAVIGATION),
            ("https://cdn.example.com/feed", {"accept": "application/json"}, RequestClass.DYNAMIC),
        ],
    )
    def test_classify(self, url: str, headers: dict, expected: RequestClass) -> None:
        assert classify(httpx.Request("GET", url, headers=headers)) == expected

    def test_request_key_includes_body(self) -> None:
        a = request_key("POST", "https://api.groq.com/x", b'{"image": "a"}')
        b = request_key("POST", "https://api.groq.com/x", b'{"image": "b"}')
        assert a != b
        assert a.startswith("POST https://api.groq.com/x#")


# ═══════════════════════════════════════════════════════════
# NETWORK-FIRST
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_network_first_prefers_fresh_response(client: httpx.AsyncClient, network: FakeNetwork) -> None:
    url = "https://api.groq.com/openai/v1/models"

    first = await client.get(url)
    second = await client.get(url)

    assert first.json() == {"call": 1}
    assert second.json() == {"call": 2}


@pytest.mark.asyncio
async def test_network_first_serves_cache_when_offline(client: httpx.AsyncClient, network: FakeNetwork) -> None:
    url = "https://api.nal.usda.gov/fdc/v1/foods/search?query=apple"
    await client.get(url)

    network.offline = True
    response = await client.get(url)

    assert response.status_code == 200
    assert response.json() == {"call": 1}


@pytest.mark.asyncio
async def test_network_first_distinguishes_request_bodies(client: httpx.AsyncClient, network: FakeNetwork) -> None:
    url = "https://api.groq.com/openai/v1/chat/completions"
    await client.post(url, json={"image": "a"})

    network.offline = True

    assert (await client.post(url, json={"image": "a"})).json() == {"call": 1}
    with pytest.raises(httpx.ConnectError):
        await client.post(url, json={"image": "b"})


@pytest.mark.asyncio
async def test_non_2xx_not_cached(client: httpx.AsyncClient, network: FakeNetwork) -> None:
    url = "https://api.groq.com/openai/v1/models"
    network.status = 503
    assert (await client.get(url)).status_code == 503

    network.offline = True
    with pytest.raises(httpx.ConnectError):
        await client.get(url)


@pytest.mark.asyncio
async def test_navigation_falls_back_to_cached_root(client: httpx.AsyncClient, network: FakeNetwork) -> None:
    await client.get("https://app.example.com/")
    network.offline = True

    response = await client.get("https://app.example.com/history", headers={"sec-fetch-mode": "navigate"})

    assert response.json() == {"call": 1}


@pytest.mark.asyncio
async def test_stored_responses_are_bounded(network: FakeNetwork) -> None:
    transport = EdgeCacheTransport(httpx.MockTransport(network), max_entries=2)
    url = "https://api.groq.com/openai/v1/chat/completions"

    async with httpx.AsyncClient(transport=transport) as client:
        for image in ("a", "b", "c"):
            await client.post(url, json={"image": image})

        assert transport.cached(httpx.Request("POST", url, json={"image": "a"})) is None
        assert transport.cached(httpx.Request("POST", url, json={"image": "c"})) is not None


@pytest.mark.asyncio
async def test_least_recently_stored_response_evicted_first(network: FakeNetwork) -> None:
    transport = EdgeCacheTransport(httpx.MockTransport(network), max_entries=2)
    url = "https://api.nal.usda.gov/fdc/v1/foods/search"

    async with httpx.AsyncClient(transport=transport) as client:
        await client.get(url, params={"query": "apple"})
        await client.get(url, params={"query": "pear"})
        await client.get(url, params={"query": "apple"})
        await client.get(url, params={"query": "plum"})

        network.offline = True

        assert (await client.get(url, params={"query": "apple"})).json() == {"call": 3}
        assert (await client.get(url, params={"query": "plum"})).json() == {"call": 4}
        with pytest.raises(httpx.ConnectError):
            await client.get(url, params={"query": "pear"})


# ═══════════════════════════════════════════════════════════
# CACHE-FIRST
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_cache_first_for_static_assets(
    client: httpx.AsyncClient, network: FakeNetwork, metrics: MetricsRegistry
) -> None:
    url = "https://app.example.com/icon-192x192.png"

    await client.get(url)
    response = await client.get(url)

    assert response.json() == {"call": 1}
    assert len(network.calls) == 1
    assert metrics.counter_value("edge_cache_events", strategy="cache_first", outcome="hit") == 1


# ═══════════════════════════════════════════════════════════
# STALE-WHILE-REVALIDATE
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_stale_while_revalidate_refreshes_in_background(
    client: httpx.AsyncClient, network: FakeNetwork
) -> None:
    url = "https://cdn.example.com/feed"

    first = await client.get(url)
    stale = await client.get(url)

    assert first.json() == {"call": 1}
    assert stale.json() == {"call": 1}

    # Let the background refresh land
    for _ in range(10):
        await asyncio.sleep(0)
    assert len(network.calls) == 2

    network.offline = True
    refreshed = await client.get(url)
    assert refreshed.json() == {"call": 2}


@pytest.mark.asyncio
async def test_stale_while_revalidate_refresh_failure_is_silent(
    client: httpx.AsyncClient, network: FakeNetwork
) -> None:
    url = "https://cdn.example.com/feed"
    await client.get(url)

    network.offline = True
    response = await client.get(url)
    for _ in range(10):
        await asyncio.sleep(0)

    assert response.json() == {"call": 1}


@pytest.mark.asyncio
async def test_aclose_cancels_pending_refreshes(network: FakeNetwork) -> None:
    transport = EdgeCacheTransport(httpx.MockTransport(network))
    client = httpx.AsyncClient(transport=transport)
    url = "https://cdn.example.com/feed"

    await client.get(url)
    network.delay = 10
    await client.get(url)
    await asyncio.sleep(0)

    await client.aclose()

    assert not transport._background
