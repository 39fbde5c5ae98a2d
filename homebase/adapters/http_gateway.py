"""HTTP gateway adapter — implements RemoteGateway over httpx.

Every call sends JSON, unwraps the backend's {success, data, message}
envelope and turns failures into RemoteError with a structured cause.
No retries here: falling back is the orchestrator's job.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from homebase.ports.remote_port import ErrorCause, RemoteError

logger = logging.getLogger(__name__)

_ENVELOPE_KEYS = {"success", "data"}


def unwrap_envelope(body: Any) -> Any:
    """Return body["data"] for {success, data, message} envelopes, else body.

    The backend is not uniform: some routes answer with the bare payload.
    """
    if isinstance(body, dict) and _ENVELOPE_KEYS.issubset(body):
        return body["data"]
    return body


def _error_message(response: httpx.Response) -> tuple[str, list[dict]]:
    """Pull a message (and field errors) out of an error body, if any."""
    generic = f"HTTP error! status: {response.status_code}"
    try:
        body = response.json()
    except ValueError:
        return generic, []
    if not isinstance(body, dict):
        return generic, []
    errors = body.get("errors") if isinstance(body.get("errors"), list) else []
    return body.get("message") or generic, errors


class HttpGateway:
    """httpx implementation of RemoteGateway."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if base_url is None or timeout is None:
            from homebase.config import settings
            base_url = base_url or settings.API_BASE_URL
            timeout = timeout if timeout is not None else settings.REQUEST_TIMEOUT_SECONDS

        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    @property
    def base_url(self) -> str:
        return self._base_url

    async def _request(
        self,
        method: str,
        path: str,
        body: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        url = f"{self._base_url}{path}"
        logger.debug("%s %s", method, url)

        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport,
            ) as client:
                resp = await client.request(
                    method,
                    url,
                    json=body,
                    params=params,
                    headers={"Content-Type": "application/json"},
                )
        except httpx.TransportError as exc:
            # Connection refused, DNS, TLS, timeouts: the host is unreachable
            raise RemoteError(
                0, f"Cannot connect to API at {url}: {exc}", ErrorCause.TRANSPORT,
            ) from exc

        if not resp.is_success:
            message, errors = _error_message(resp)
            logger.debug("%s %s failed with %d: %s", method, url, resp.status_code, message)
            raise RemoteError(resp.status_code, message, ErrorCause.HTTP, errors)

        if not resp.content:
            return None
        try:
            payload = resp.json()
        except ValueError as exc:
            raise RemoteError(
                resp.status_code, "Response body is not valid JSON", ErrorCause.APPLICATION,
            ) from exc

        if isinstance(payload, dict) and payload.get("success") is False:
            errors = payload.get("errors") if isinstance(payload.get("errors"), list) else []
            raise RemoteError(
                resp.status_code,
                payload.get("message") or "Request was not successful",
                ErrorCause.APPLICATION,
                errors,
            )

        return unwrap_envelope(payload)

    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return await self._request("GET", path, params=params)

    async def post(self, path: str, body: dict[str, Any]) -> Any:
        return await self._request("POST", path, body=body)

    async def put(self, path: str, body: dict[str, Any]) -> Any:
        return await self._request("PUT", path, body=body)

    async def delete(self, path: str) -> None:
        await self._request("DELETE", path)
