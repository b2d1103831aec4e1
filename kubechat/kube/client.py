"""Read-only Kubernetes API client using bearer-token auth."""

from __future__ import annotations

import json
import logging
import ssl
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class KubeError(Exception):
    """Structured error from a Kubernetes API call."""

    def __init__(self, message: str, code: str = ""):
        super().__init__(message)
        self.code = code


class KubeClient:
    """
    Minimal GET-only client for the Kubernetes API server.

    Parameters
    ----------
    api_server:
        Base URL, e.g. ``"https://kubernetes.default.svc"``.
    token:
        Service account bearer token.
    ca_cert_path:
        CA bundle used to verify the API server.  System CAs when empty.
    timeout:
        Per-request timeout in seconds.
    transport:
        Optional ``httpx`` transport, used by tests.
    """

    def __init__(
        self,
        api_server: str,
        token: str,
        ca_cert_path: str = "",
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_server = api_server.rstrip("/")
        self._token = token
        self._timeout = timeout
        self._transport = transport
        self._ca_cert_path = ca_cert_path
        self._ssl_context: ssl.SSLContext | None = None

    def _verify(self) -> ssl.SSLContext | bool:
        """TLS verification setting, loading the CA bundle on first use."""
        if not self._ca_cert_path:
            return True
        if self._ssl_context is None:
            try:
                self._ssl_context = ssl.create_default_context(cafile=self._ca_cert_path)
            except (OSError, ssl.SSLError) as e:
                raise KubeError(
                    f"Cannot load CA bundle {self._ca_cert_path}: {e}", code="tls_error"
                ) from e
        return self._ssl_context

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def get(self, endpoint: str) -> Any:
        """GET *endpoint* and return the decoded JSON body."""
        url = f"{self.api_server}{endpoint}"
        logger.debug("GET %s", url)
        verify = self._verify()

        try:
            async with httpx.AsyncClient(
                timeout=self._timeout,
                verify=verify,
                transport=self._transport,
            ) as client:
                resp = await client.get(url, headers=self._headers())
        except httpx.HTTPError as e:
            logger.error("Error sending request to Kubernetes API server: %s", e)
            raise KubeError(
                f"Kubernetes API request failed: {e}", code="transport_error"
            ) from e

        if resp.status_code >= 400:
            raise KubeError(
                f"Kubernetes API returned HTTP {resp.status_code} for {endpoint}: "
                f"{_status_message(resp)}",
                code=f"http_{resp.status_code}",
            )

        try:
            return resp.json()
        except json.JSONDecodeError as e:
            logger.error("Error parsing JSON response from %s: %s", endpoint, e)
            raise KubeError(
                f"Invalid JSON from Kubernetes API for {endpoint}", code="parse_error"
            ) from e


def _status_message(resp: httpx.Response) -> str:
    """Pull the ``message`` out of a Kubernetes ``Status`` body if present."""
    try:
        payload = resp.json()
    except json.JSONDecodeError:
        return resp.text[:200]
    if isinstance(payload, dict) and payload.get("message"):
        return str(payload["message"])
    return resp.text[:200]
