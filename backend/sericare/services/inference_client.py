"""
SeriCare Backend — Inference Service Client
============================================

What:  Sends a stored silkworm image to the external classifier over HTTP and
       parses its verdict into a Prediction.
Why:   The classifier is a separate process (model server); this is the only
       module that knows its URL, wire format and failure modes.
How:   One multipart POST per image via httpx.AsyncClient, bounded by
       `inference_timeout` (30 s by default). No retries: a failed attempt
       is final for that submission.
Who:   Instantiated once at import; called by UploadService.

Wire Format:
    Request:   POST <INFERENCE_URL>, multipart field "file"
               (original file name, image MIME type, raw bytes)
    Response:  200 {"label": "Diseased", "confidence": 0.81,
                    "probabilities": {"Healthy": 0.19, "Diseased": 0.81}}

Failure Mapping:
    httpx.ConnectError (refused / unreachable)   → ServiceUnavailableError (503)
    httpx.TimeoutException                       → ServiceError (500)
    any other httpx.HTTPError                    → ServiceError (500)
    non-2xx status                               → ServiceError (500)
    body not JSON / fails Prediction validation  → ServiceError (500)
"""

import logging
import time
import uuid
from typing import Optional
from urllib.parse import urlsplit

import aiofiles
import httpx
from pydantic import ValidationError as PydanticValidationError

from sericare.config import settings
from sericare.exceptions import ServiceError, ServiceUnavailableError
from sericare.schemas.upload import Prediction
from sericare.services.classifier_base import Classifier
from sericare.services.file_service import StoredFile

logger = logging.getLogger(__name__)


class InferenceClient(Classifier):
    """
    HTTP implementation of Classifier.

    A fresh AsyncClient is opened per call; the classifier is called once per
    upload, so connection reuse buys little and per-call clients keep the
    service free of shutdown hooks.
    """

    def __init__(
        self,
        endpoint: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            endpoint: Override the classifier URL (defaults to settings.inference_url).
            timeout: Override the call timeout in seconds.
            transport: Custom httpx transport (tests use httpx.MockTransport).
        """
        self.endpoint = endpoint or settings.inference_url
        self.timeout = timeout or settings.inference_timeout
        self._transport = transport
        logger.info(
            "InferenceClient initialized with endpoint=%s, timeout=%.0fs",
            self.endpoint,
            self.timeout,
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def classify(self, stored: StoredFile) -> Prediction:
        """
        Classify one stored image.

        Flow:
            1. Read the stored bytes
            2. POST them as multipart field "file"
            3. Map transport failures and non-2xx statuses
            4. Validate the body into a Prediction
        """
        request_id = str(uuid.uuid4())[:8]
        logger.info("[%s] Classifying %s", request_id, stored.file_name)

        async with aiofiles.open(stored.path, "rb") as f:
            content = await f.read()

        files = {"file": (stored.original_name, content, stored.mime_type)}
        start_time = time.perf_counter()

        try:
            async with self._client() as client:
                response = await client.post(self.endpoint, files=files)
                response.raise_for_status()

        except httpx.ConnectError as e:
            logger.error("[%s] Inference service unreachable at %s: %s", request_id, self.endpoint, str(e))
            raise ServiceUnavailableError(
                message="AI service unavailable. Please try again later.",
                context={"request_id": request_id, "endpoint": self.endpoint},
            )
        except httpx.TimeoutException as e:
            logger.error("[%s] Inference call timed out after %.0fs", request_id, self.timeout)
            raise ServiceError(
                message="AI service timed out while analyzing the image.",
                context={"request_id": request_id, "error_type": type(e).__name__},
            )
        except httpx.HTTPStatusError as e:
            logger.error(
                "[%s] Inference service returned HTTP %d",
                request_id,
                e.response.status_code,
            )
            raise ServiceError(
                message="AI service failed to analyze the image.",
                context={"request_id": request_id, "status_code": e.response.status_code},
            )
        except httpx.HTTPError as e:
            logger.error("[%s] Inference transport error: %s", request_id, str(e))
            raise ServiceError(
                message="AI service failed to analyze the image.",
                context={"request_id": request_id, "error_type": type(e).__name__},
            )

        duration_ms = (time.perf_counter() - start_time) * 1000
        prediction = self._parse(response, request_id)

        logger.info(
            "[%s] Classified %s as %s (%.2f) in %.0fms",
            request_id,
            stored.file_name,
            prediction.label,
            prediction.confidence,
            duration_ms,
        )
        return prediction

    def _parse(self, response: httpx.Response, request_id: str) -> Prediction:
        """Turn a 2xx response body into a validated Prediction."""
        try:
            body = response.json()
        except ValueError:
            logger.error("[%s] Inference response is not JSON", request_id)
            raise ServiceError(
                message="AI service returned an unreadable response.",
                context={"request_id": request_id},
            )

        try:
            return Prediction.model_validate(body)
        except PydanticValidationError as e:
            logger.error("[%s] Inference response rejected: %s", request_id, str(e))
            raise ServiceError(
                message="AI service returned an invalid prediction.",
                context={"request_id": request_id, "errors": e.error_count()},
            )

    async def health_check(self) -> bool:
        """
        Reachability probe against the classifier's origin.

        Any HTTP answer (even 404) means the process is up; only transport
        errors count as unavailable.
        """
        parts = urlsplit(self.endpoint)
        origin = f"{parts.scheme}://{parts.netloc}/"
        try:
            async with httpx.AsyncClient(timeout=5.0, transport=self._transport) as client:
                await client.get(origin)
            return True
        except httpx.HTTPError as e:
            logger.warning("Inference health check failed: %s", str(e))
            return False


inference_client = InferenceClient()
