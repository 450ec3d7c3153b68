"""
SeriCare Backend — Inference Client Unit Tests
===============================================

What:  The HTTP classifier client: request shape, verdict parsing, and the
       mapping of every failure to ServiceUnavailableError / ServiceError.
How:   httpx.MockTransport stands in for the model server; no sockets.
"""

import json

import httpx
import pytest

from sericare.exceptions import ServiceError, ServiceUnavailableError
from sericare.services.inference_client import InferenceClient

ENDPOINT = "http://inference.test/predict"


def _client(handler):
    return InferenceClient(endpoint=ENDPOINT, timeout=5.0, transport=httpx.MockTransport(handler))


class TestClassify:

    @pytest.mark.asyncio
    async def test_posts_image_as_multipart_file_field(self, files, incoming_image, sample_image_bytes):
        stored = await files.accept(incoming_image)
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["url"] = str(request.url)
            seen["content_type"] = request.headers["content-type"]
            seen["body"] = request.read()
            return httpx.Response(200, json={"label": "Healthy", "confidence": 0.97})

        prediction = await _client(handler).classify(stored)

        assert seen["method"] == "POST"
        assert seen["url"] == ENDPOINT
        assert seen["content_type"].startswith("multipart/form-data")
        assert b'name="file"; filename="worm.jpg"' in seen["body"]
        assert sample_image_bytes in seen["body"]
        assert prediction.label == "healthy"
        assert prediction.confidence == 0.97

    @pytest.mark.asyncio
    async def test_label_normalized_and_probabilities_kept(self, files, incoming_image):
        stored = await files.accept(incoming_image)
        body = {"label": "DISEASED", "confidence": 0.81, "probabilities": {"Healthy": 0.19, "Diseased": 0.81}}

        prediction = await _client(lambda request: httpx.Response(200, json=body)).classify(stored)

        assert prediction.label == "diseased"
        assert prediction.is_diseased
        assert prediction.probabilities == {"Healthy": 0.19, "Diseased": 0.81}


class TestFailureMapping:
    """One attempt, no retries; every failure becomes a SeriCareError."""

    @pytest.mark.asyncio
    async def test_connection_refused_is_unavailable(self, files, incoming_image):
        stored = await files.accept(incoming_image)
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("Connection refused", request=request)

        with pytest.raises(ServiceUnavailableError) as exc_info:
            await _client(handler).classify(stored)
        assert exc_info.value.status_code == 503
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_timeout_is_service_error(self, files, incoming_image):
        stored = await files.accept(incoming_image)

        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(ServiceError, match="timed out"):
            await _client(handler).classify(stored)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [400, 422, 500, 502])
    async def test_non_2xx_is_service_error(self, files, incoming_image, status):
        stored = await files.accept(incoming_image)
        with pytest.raises(ServiceError) as exc_info:
            await _client(lambda request: httpx.Response(status, json={"detail": "nope"})).classify(stored)
        assert exc_info.value.context["status_code"] == status
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_non_json_body(self, files, incoming_image):
        stored = await files.accept(incoming_image)
        with pytest.raises(ServiceError, match="unreadable"):
            await _client(lambda request: httpx.Response(200, text="<html>oops</html>")).classify(stored)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [
            {"label": "sick", "confidence": 0.5},
            {"label": "healthy", "confidence": 1.2},
            {"label": "diseased", "confidence": -0.1},
            {"label": "healthy"},
            {"confidence": 0.5},
            {"label": "healthy", "confidence": 0.9, "probabilities": {"Healthy": 1.4, "Diseased": -0.4}},
            {"label": "diseased", "confidence": 0.6, "probabilities": {"Diseased": "high"}},
            ["healthy", 0.5],
        ],
    )
    async def test_invalid_verdict(self, files, incoming_image, body):
        stored = await files.accept(incoming_image)
        handler = lambda request: httpx.Response(200, content=json.dumps(body).encode())  # noqa: E731
        with pytest.raises(ServiceError, match="invalid prediction"):
            await _client(handler).classify(stored)


class TestHealthCheck:

    @pytest.mark.asyncio
    async def test_any_response_means_available(self):
        assert await _client(lambda request: httpx.Response(404)).health_check()

    @pytest.mark.asyncio
    async def test_connect_error_means_unavailable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        assert not await _client(handler).health_check()
