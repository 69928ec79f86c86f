"""
Chat completion client for the vision and reasoning provider.

Async client over the OpenAI SDK pointed at Groq's OpenAI-compatible
endpoint. Maps SDK failures onto the domain error taxonomy so callers can
decide how to degrade.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Dict, List, Optional, TYPE_CHECKING

import httpx
import openai
import structlog
from openai import AsyncOpenAI

from snapmeal.config import GROQ_BASE_URL, is_placeholder_key
from snapmeal.domain.shared.errors import (
    ConfigError,
    ParseError,
    ProviderError,
    TransportError,
)

if TYPE_CHECKING:
    from openai.types.chat import ChatCompletion

logger = structlog.get_logger(__name__)

_DEPRECATION_MARKERS = ("decommissioned", "deprecated")


class LLMClient:
    """
    Async chat completion client with domain error mapping.

    Features:
    - Lazy SDK client creation (credential validated on first call)
    - Shared httpx client injection, so outbound calls go through the
      edge response cache
    - Rate limiting (requests per minute)
    - No SDK-level retries: the fallback chain decides what happens next

    Example:
        >>> client = LLMClient(api_key="gsk_...")
        >>> content = await client.complete(
        ...     messages=[{"role": "user", "content": "Hello"}],
        ...     model="llama-3.1-70b-versatile",
        ... )
        >>> await client.aclose()
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = GROQ_BASE_URL,
        timeout: float = 30.0,
        rpm_limit: int = 30,
        http_client: Optional[httpx.AsyncClient] = None,
        client: Optional[AsyncOpenAI] = None,
    ):
        """
        Initialize client.

        Args:
            api_key: Provider API key (may be missing; checked per call)
            base_url: OpenAI-compatible endpoint
            timeout: Request timeout in seconds
            rpm_limit: Requests per minute limit
            http_client: Optional shared httpx client (not closed here)
            client: Optional pre-configured SDK client (for testing)
        """
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self.rpm_limit = rpm_limit
        self._http_client = http_client
        self._client: Optional[AsyncOpenAI] = client
        self._owns_client = client is None and http_client is None

        # Rate limiting state
        self._request_times: List[float] = []
        self._lock = asyncio.Lock()

    def is_configured(self) -> bool:
        """Check a usable credential (or injected client) is available."""
        return self._client is not None or not is_placeholder_key(self.api_key)

    def _ensure_client(self) -> AsyncOpenAI:
        if self._client is None:
            if is_placeholder_key(self.api_key):
                raise ConfigError(
                    "Provider API key not configured. Set GROQ_API_KEY in your .env file."
                )
            self._client = AsyncOpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=0,
                http_client=self._http_client,
            )
        return self._client

    async def aclose(self) -> None:
        """Close the SDK client if this instance owns its transport."""
        if self._client is not None and self._owns_client:
            await self._client.close()

    async def _rate_limit(self) -> None:
        """
        Enforce rate limiting.

        Tracks request timestamps over a 60s window and sleeps when the
        limit is reached.
        """
        async with self._lock:
            now = time.time()
            cutoff = now - 60.0
            self._request_times = [t for t in self._request_times if t > cutoff]

            if len(self._request_times) >= self.rpm_limit:
                wait_time = 60.0 - (now - self._request_times[0])
                if wait_time > 0:
                    await asyncio.sleep(wait_time)
                    now = time.time()
                    cutoff = now - 60.0
                    self._request_times = [t for t in self._request_times if t > cutoff]

            self._request_times.append(now)

    async def complete(
        self,
        messages: List[Dict[str, Any]],
        model: str,
        temperature: float = 0.7,
        max_tokens: int = 1024,
    ) -> str:
        """
        Run a chat completion and return the message content.

        Args:
            messages: Chat messages
            model: Model name
            temperature: Sampling temperature
            max_tokens: Max tokens in response

        Returns:
            Raw response text

        Raises:
            ConfigError: If credential missing or placeholder
            TransportError: On network failure or timeout
            ProviderError: On non-2xx status (deprecated flag set when the
                model is reported decommissioned)
            ParseError: If the response carries no content
        """
        client = self._ensure_client()
        await self._rate_limit()

        try:
            completion: ChatCompletion = await client.chat.completions.create(
                model=model,
                messages=messages,  # type: ignore[arg-type]
                temperature=temperature,
                max_tokens=max_tokens,
                top_p=1,
                stream=False,
            )
        except openai.APIStatusError as e:
            detail = f"{e.message} {e.body or ''}".lower()
            deprecated = any(marker in detail for marker in _DEPRECATION_MARKERS)
            logger.warning(
                "Provider returned error status",
                model=model,
                status=e.status_code,
                deprecated=deprecated,
            )
            raise ProviderError(
                f"Provider error: {e.status_code}",
                status_code=e.status_code,
                deprecated=deprecated,
            ) from e
        except openai.APIConnectionError as e:
            logger.warning("Provider unreachable", model=model, error=str(e))
            raise TransportError(f"Provider unreachable: {e}") from e
        except openai.APIError as e:
            raise ProviderError(f"Provider error: {e}") from e

        if not completion.choices:
            raise ParseError("No choices received from provider")

        content = completion.choices[0].message.content
        if not content or not content.strip():
            raise ParseError("No content received from provider")

        return content

    def get_stats(self) -> Dict[str, Any]:
        """
        Get client statistics.

        Returns:
            Dict with rpm_limit and requests_last_minute
        """
        cutoff = time.time() - 60.0
        recent = [t for t in self._request_times if t > cutoff]
        return {
            "base_url": self.base_url,
            "rpm_limit": self.rpm_limit,
            "requests_last_minute": len(recent),
        }
