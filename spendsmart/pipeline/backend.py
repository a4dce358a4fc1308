"""
Backend proxy client.

Thin JSON-over-HTTP wrapper around the SpendSmart backend, shared by the AI
gateway and the image uploader.  Every non-2xx status and transport failure
is translated into the ``spendsmart.errors`` taxonomy here, so nothing above
this layer ever sees an ``httpx`` exception.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from spendsmart.errors import BackendAPIError, DecodingError, NetworkError, error_for_status

logger = logging.getLogger(__name__)

GENERATE_ENDPOINT = "/api/ai/generate"
VALIDATE_RECEIPT_ENDPOINT = "/api/ai/validate-receipt"
UPLOAD_IMAGE_ENDPOINT = "/api/images/upload"
UPLOAD_IMAGES_ENDPOINT = "/api/images/upload-multiple"


def _classify(exc: httpx.HTTPError) -> BackendAPIError:
    # Content-encoding failures are response faults
    if isinstance(exc, httpx.DecodingError):
        return DecodingError(str(exc))
    return NetworkError(str(exc))


class BackendClient:
    """POSTs JSON bodies to the backend and returns decoded JSON objects.

    ``http`` is an injected ``httpx.AsyncClient`` whose ``base_url`` points at
    the backend; the caller owns its lifecycle.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        auth_token: Optional[str] = None,
        secret_key: Optional[str] = None,
    ) -> None:
        self._http = http
        self.auth_token = auth_token or None
        self._secret_key = secret_key or None

    def _headers(self, requires_auth: bool, use_secret_key: bool) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if requires_auth:
            if self.auth_token:
                headers["Authorization"] = f"Bearer {self.auth_token}"
            else:
                logger.warning("Auth required but no token available")
        if use_secret_key and self._secret_key:
            headers["X-API-Key"] = self._secret_key
        return headers

    async def post_json(
        self,
        endpoint: str,
        body: dict[str, Any],
        requires_auth: bool = False,
        use_secret_key: bool = False,
    ) -> dict[str, Any]:
        logger.info("POST %s (auth=%s)", endpoint, requires_auth)
        try:
            resp = await self._http.post(
                endpoint,
                json=body,
                headers=self._headers(requires_auth, use_secret_key),
            )
        except httpx.HTTPError as exc:
            logger.warning("Request to %s failed: %s", endpoint, exc)
            raise _classify(exc) from exc

        if not resp.is_success:
            logger.warning("%s returned HTTP %d", endpoint, resp.status_code)
            raise error_for_status(resp.status_code, resp.text[:200] or None)

        try:
            payload = resp.json()
        except ValueError as exc:
            raise DecodingError(f"{endpoint}: response body is not JSON") from exc
        if not isinstance(payload, dict):
            raise DecodingError(f"{endpoint}: expected a JSON object")
        return payload

    async def get_bytes(self, url: str) -> bytes:
        """Download a hosted file (absolute URL or backend-relative path)."""
        try:
            resp = await self._http.get(url)
        except httpx.HTTPError as exc:
            raise _classify(exc) from exc
        if not resp.is_success:
            raise error_for_status(resp.status_code)
        return resp.content
