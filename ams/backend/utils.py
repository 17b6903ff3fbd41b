"""Retry helper for idempotent backend reads.

Writes issued by plan submission are never retried here; their retry is
driven explicitly from the submission journal.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_RETRY_DELAYS = (0.5, 1.0, 2.0)
DEFAULT_TIMEOUT = 30.0
RETRY_ON_STATUS = (429, 500, 502, 503, 504)


async def retry_request(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    max_retries: int = 2,
    retry_delays: tuple[float, ...] = DEFAULT_RETRY_DELAYS,
    retry_on_status: tuple[int, ...] = RETRY_ON_STATUS,
    **kwargs: Any,
) -> httpx.Response:
    """Make an HTTP request with exponential backoff retry.

    Args:
        client: The httpx AsyncClient to use.
        method: HTTP method.
        url: The URL to request.
        max_retries: Maximum number of retry attempts (0 disables retry).
        retry_delays: Delay in seconds before each retry.
        retry_on_status: HTTP status codes that trigger a retry.
        **kwargs: Additional arguments passed to client.request().

    Returns:
        The HTTP response.

    Raises:
        httpx.HTTPStatusError: If the final response is not a success.
        httpx.RequestError: If the transport keeps failing.
    """
    for attempt in range(max_retries + 1):
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.RequestError as exc:
            if attempt >= max_retries:
                raise
            delay = retry_delays[min(attempt, len(retry_delays) - 1)]
            logger.warning(
                "%s %s failed: %s, retrying in %.1fs (attempt %d/%d)",
                method, url, exc, delay, attempt + 1, max_retries,
            )
            await asyncio.sleep(delay)
            continue

        if response.status_code in retry_on_status and attempt < max_retries:
            delay = retry_delays[min(attempt, len(retry_delays) - 1)]
            logger.warning(
                "%s %s returned %d, retrying in %.1fs (attempt %d/%d)",
                method, url, response.status_code, delay, attempt + 1, max_retries,
            )
            await asyncio.sleep(delay)
            continue

        response.raise_for_status()
        return response

    raise RuntimeError("Unexpected retry loop exit")
