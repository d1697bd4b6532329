"""Integration with the upstream PDF classification service."""
from __future__ import annotations

import json
import logging
from typing import Any, Protocol
from urllib.parse import quote, urlparse

import httpx
from pydantic import ValidationError

from backend.core.schema import ClassificationResult
from backend.core.settings import TriageSettings, get_settings

logger = logging.getLogger(__name__)


class ClassifierError(RuntimeError):
    """Raised when the classification request does not yield a usable result."""

    def __init__(self, code: str, message: str, **details: Any) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, **self.details}


class ClassifierClient(Protocol):
    """Contract for classification integrations."""

    api_base: str

    async def classify(self, correlation_id: str, content: bytes) -> ClassificationResult:
        """Classify one PDF, raising :class:`ClassifierError` on failure."""


class HttpClassifierClient:
    """Posts raw PDF bytes to ``<api_base>/classify/<correlation_id>``."""

    def __init__(
        self,
        api_base: str,
        *,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        parsed = urlparse(api_base)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError("api_base must include scheme and host")

        self.api_base = api_base.rstrip("/")
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = http_client is None

    def _request_url(self, correlation_id: str) -> str:
        return f"{self.api_base}/classify/{quote(correlation_id, safe='')}"

    async def classify(self, correlation_id: str, content: bytes) -> ClassificationResult:
        url = self._request_url(correlation_id)
        try:
            response = await self._client.post(
                url,
                content=content,
                headers={"Content-Type": "application/pdf", "Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            raise ClassifierError("upstream_unavailable", str(exc) or exc.__class__.__name__) from exc

        if not response.is_success:
            raise ClassifierError(
                "upstream_http_error",
                f"classifier HTTP {response.status_code}",
                status=response.status_code,
                statusText=response.reason_phrase,
                body=response.text,
            )

        try:
            payload = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise ClassifierError("bad_upstream_response", "response is not JSON", body=response.text) from exc

        try:
            return ClassificationResult.from_payload(payload)
        except (ValueError, ValidationError) as exc:
            raise ClassifierError("bad_upstream_response", f"unexpected response shape: {exc}") from exc

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


_client: ClassifierClient | None = None


def configure_classifier_client(client: ClassifierClient | None) -> None:
    """Install the classifier client used by the document service."""

    global _client
    _client = client


def get_classifier_client(settings: TriageSettings | None = None) -> ClassifierClient:
    """Return the configured client, building the HTTP one on first use."""

    global _client
    if _client is None:
        settings = settings or get_settings()
        _client = HttpClassifierClient(settings.classifier_api_base, timeout=settings.classifier_timeout)
        logger.info("classifier client configured for %s", settings.classifier_api_base)
    return _client


async def close_classifier_client() -> None:
    """Close and forget the HTTP client built by :func:`get_classifier_client`."""

    global _client
    if isinstance(_client, HttpClassifierClient):
        await _client.aclose()
        _client = None


__all__ = [
    "ClassifierClient",
    "ClassifierError",
    "HttpClassifierClient",
    "close_classifier_client",
    "configure_classifier_client",
    "get_classifier_client",
]
