"""Async client for the remote AMS REST backend.

Every call returns decoded JSON exactly as the backend sent it (possibly
wrapped in ``$values``/``values``/``data``); the resource modules decode
the envelope once via :mod:`ams.backend.envelope`.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from ams.backend.utils import DEFAULT_TIMEOUT, retry_request
from ams.core.config import Settings

logger = logging.getLogger(__name__)


class BackendClient:
    """Async client for the AMS backend API.

    Args:
        base_url: Backend root, e.g. ``https://moca.mom/api``.
        token: Bearer token forwarded from the caller, if any.
        timeout: Per-request timeout in seconds.
        max_retries: Retries for GET requests on 429/5xx and transport errors.
        transport: Optional httpx transport (used by tests).
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = 0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.max_retries = max_retries
        self._transport = transport

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> BackendClient:
        return cls(
            settings.backend_api_url,
            token=token,
            timeout=settings.backend_timeout,
            max_retries=settings.backend_max_retries,
            transport=transport,
        )

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json_body: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Make an HTTP request to the backend and decode the JSON body."""
        url = f"{self.base_url}{path}"
        max_retries = self.max_retries if method == "GET" else 0
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await retry_request(
                client,
                method,
                url,
                max_retries=max_retries,
                headers=self._headers(),
                json=json_body,
                params=params,
            )
        logger.debug("%s %s -> %d", method, path, response.status_code)
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except json.JSONDecodeError:
            return response.text

    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return await self._request("GET", path, params=params)

    async def post(self, path: str, json_body: Any = None) -> Any:
        return await self._request("POST", path, json_body=json_body)

    async def put(self, path: str, json_body: Any = None) -> Any:
        return await self._request("PUT", path, json_body=json_body)

    async def delete(self, path: str) -> Any:
        return await self._request("DELETE", path)

    async def verify_connectivity(self) -> bool:
        """Check whether the backend answers at all."""
        try:
            await self._request("GET", "/Audits", params={"pageSize": 1})
            return True
        except httpx.HTTPStatusError as exc:
            # Any HTTP answer (even 401) means the backend is reachable.
            return exc.response.status_code < 500
        except httpx.RequestError:
            logger.warning("AMS backend connectivity check failed")
            return False
