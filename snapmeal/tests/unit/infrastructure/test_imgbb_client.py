"""
Tests for ImgBBClient.
"""

from typing import List

import httpx
import pytest

from snapmeal.domain.meal.upload.models import ImageUpload
from snapmeal.domain.shared.errors import ConfigError, InvalidImageError, UploadError
from snapmeal.infrastructure.imaging.imgbb_client import ImgBBClient

HOSTED_URL = "https://i.ibb.co/abc123/lunch.jpg"


def _client(handler, api_key: str = "imgbb_test") -> ImgBBClient:
    return ImgBBClient(api_key=api_key, http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


@pytest.mark.asyncio
async def test_upload_returns_hosted_url(lunch_upload: ImageUpload) -> None:
    requests: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"success": True, "data": {"url": HOSTED_URL}})

    url = await _client(handler).upload(lunch_upload)

    assert url == HOSTED_URL
    request = requests[0]
    assert request.method == "POST"
    assert request.url.host == "api.imgbb.com"
    assert request.url.params["key"] == "imgbb_test"
    assert request.headers["content-type"].startswith("multipart/form-data")
    assert b'name="image"; filename="lunch.jpg"' in request.read()


@pytest.mark.asyncio
async def test_invalid_image_rejected_before_sending() -> None:
    calls = []
    client = _client(lambda request: calls.append(request) or httpx.Response(200))
    upload = ImageUpload(filename="notes.txt", content=b"hi", content_type="text/plain", last_modified_ms=1)

    with pytest.raises(InvalidImageError, match="must be an image"):
        await client.upload(upload)

    assert calls == []


@pytest.mark.asyncio
async def test_missing_key_is_config_error(lunch_upload: ImageUpload) -> None:
    client = _client(lambda request: httpx.Response(200), api_key="your_imgbb_api_key_here")

    with pytest.raises(ConfigError):
        await client.upload(lunch_upload)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(400, json={"error": {"message": "Invalid API v1 key"}}),
        httpx.Response(200, text="not json"),
        httpx.Response(200, json={"success": False, "data": {"url": HOSTED_URL}}),
        httpx.Response(200, json={"success": True, "data": {}}),
        httpx.Response(200, json=["unexpected"]),
    ],
)
async def test_bad_responses_are_upload_errors(lunch_upload: ImageUpload, response: httpx.Response) -> None:
    with pytest.raises(UploadError):
        await _client(lambda request: response).upload(lunch_upload)


@pytest.mark.asyncio
async def test_network_failure_is_upload_error(lunch_upload: ImageUpload) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(UploadError, match="Failed to upload"):
        await _client(handler).upload(lunch_upload)
