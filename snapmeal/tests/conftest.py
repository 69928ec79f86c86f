"""
Shared fixtures for snapmeal tests.

Collaborators are mocked with AsyncMock; HTTP is mocked with
httpx.MockTransport. No test touches the real network.
"""

from typing import Any, Callable, Dict
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from snapmeal.domain.meal.nutrition.models import NutritionItem
from snapmeal.domain.meal.upload.models import ImageUpload
from snapmeal.domain.shared.value_objects import Barcode
from snapmeal.infrastructure.cache.result_cache import ResultCache
from snapmeal.infrastructure.cache.stores import InMemoryKeyValueStore
from snapmeal.metrics import MetricsRegistry

T0 = 1_700_000_000.0


class FakeClock:
    """Manually advanced clock (epoch seconds)."""

    def __init__(self, now: float = T0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def chat_completion_body(content: str, model: str = "llama-3.1-70b-versatile") -> Dict[str, Any]:
    """OpenAI-compatible chat completion response body."""
    return {
        "id": "chatcmpl-test",
        "object": "chat.completion",
        "created": 1700000000,
        "model": model,
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": "stop",
            }
        ],
        "usage": {"prompt_tokens": 10, "completion_tokens": 10, "total_tokens": 20},
    }


# ═══════════════════════════════════════════════════════════
# DOMAIN MODEL FIXTURES
# ═══════════════════════════════════════════════════════════


@pytest.fixture
def sample_barcode() -> Barcode:
    """Sample barcode for Nutella."""
    return Barcode(value="3017620422003")


@pytest.fixture
def sample_item() -> NutritionItem:
    """Nutella per 100g."""
    return NutritionItem(name="Nutella", calories=539, protein_g=6, carbs_g=58, fat_g=31)


@pytest.fixture
def grilled_chicken_wire() -> Dict[str, Any]:
    """Vision provider item in wire format."""
    return {
        "item_name": "Grilled Chicken Breast",
        "total_calories": 165,
        "total_protien": 31,
        "toal_carbs": 0,
        "toal_fats": 3.6,
    }


@pytest.fixture
def lunch_upload() -> ImageUpload:
    """Upload whose fingerprint is lunch.jpg-204800-1700000000000."""
    return ImageUpload(
        filename="lunch.jpg",
        content=b"\xff" * 204800,
        content_type="image/jpeg",
        last_modified_ms=1700000000000,
    )


# ═══════════════════════════════════════════════════════════
# INFRASTRUCTURE FIXTURES
# ═══════════════════════════════════════════════════════════


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def metrics() -> MetricsRegistry:
    return MetricsRegistry()


@pytest.fixture
def memory_store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def result_cache(memory_store: InMemoryKeyValueStore, clock: FakeClock, metrics: MetricsRegistry) -> ResultCache:
    """Result cache over an in-memory store with a fake clock."""
    return ResultCache(store=memory_store, clock=clock, metrics=metrics)


@pytest.fixture
def mock_llm() -> AsyncMock:
    """Configured chat completion client; set complete.side_effect per test."""
    llm = AsyncMock()
    llm.is_configured = MagicMock(return_value=True)
    return llm


@pytest.fixture
def make_transport() -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.MockTransport]:
    """Factory for httpx mock transports that record requests."""

    def factory(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.MockTransport:
        def recording(request: httpx.Request) -> httpx.Response:
            factory.requests.append(request)  # type: ignore[attr-defined]
            return handler(request)

        return httpx.MockTransport(recording)

    factory.requests = []  # type: ignore[attr-defined]
    return factory


@pytest.fixture
def chat_body() -> Callable[..., Dict[str, Any]]:
    """Builder for chat completion response bodies."""
    return chat_completion_body
