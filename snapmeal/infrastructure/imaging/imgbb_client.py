"""
ImgBB image hosting client.

Uploads the captured photo so the vision provider can fetch it by URL.
Upload requests bypass the edge response cache: they are never replayed.
"""

from typing import Optional

import httpx
import structlog

from snapmeal.config import is_placeholder_key
from snapmeal.domain.meal.upload.models import ImageUpload
from snapmeal.domain.shared.errors import ConfigError, UploadError

logger = structlog.get_logger(__name__)


class ImgBBClient:
    """
    Image hosting adapter.

    Example:
        >>> client = ImgBBClient(api_key="...")
        >>> url = await client.upload(upload)
        >>> url.startswith("https://")
        True
    """

    UPLOAD_URL = "https://api.imgbb.com/1/upload"

    def __init__(
        self,
        api_key: Optional[str],
        http_client: Optional[httpx.AsyncClient] = None,
        timeout_s: float = 30.0,
    ) -> None:
        self.api_key = api_key
        self._http = http_client
        self._owns_http = http_client is None
        self.timeout_s = timeout_s

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout_s))
        return self._http

    async def aclose(self) -> None:
        if self._http is not None and self._owns_http:
            await self._http.aclose()
            self._http = None

    async def upload(self, image: ImageUpload) -> str:
        """
        Upload image and return its public URL.

        Args:
            image: Image to upload

        Returns:
            Hosted image URL

        Raises:
            InvalidImageError: File rejected before sending
            ConfigError: Hosting key missing
            UploadError: Network failure, non-2xx or malformed response
        """
        image.validate_image()

        if is_placeholder_key(self.api_key):
            raise ConfigError("Image hosting key not configured. Set IMGBB_API_KEY in your .env file.")

        files = {"image": (image.filename, image.content, image.content_type)}

        try:
            response = await self._client().post(
                self.UPLOAD_URL,
                params={"key": self.api_key},
                files=files,
                timeout=self.timeout_s,
            )
        except httpx.HTTPError as e:
            logger.error("Image upload failed", filename=image.filename, error=str(e))
            raise UploadError(f"Failed to upload image: {e}") from e

        if response.status_code >= 400:
            logger.error(
                "ImgBB upload error",
                status=response.status_code,
                body=response.text[:200],
            )
            raise UploadError(f"Image upload failed: {response.status_code} {response.reason_phrase}")

        try:
            data = response.json()
        except ValueError as e:
            raise UploadError("Invalid response from image upload service") from e

        url = (data.get("data") or {}).get("url") if isinstance(data, dict) else None
        if not url or not data.get("success"):
            raise UploadError("Invalid response from image upload service")

        logger.info("Image uploaded", filename=image.filename, size=image.size)
        return str(url)
