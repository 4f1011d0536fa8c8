"""HTTP adapter producing normalised ``ProbeResponse`` objects.

Every outbound request of the engine (probe requests through a node's local
port and calls to the core control API) goes through ``HttpAdapter`` so that
timeouts, retries and response shapes are handled in one place.

Retries are whole-request retries with linear backoff: after the n-th failed
attempt the adapter waits ``retry_delay × n`` before trying again, for at most
``retries`` extra attempts. Only transport failures are retried; any HTTP
response, whatever its status, is returned as-is. A URL httpx cannot parse
fails at once with ``TransportError``.
"""

from __future__ import annotations

import asyncio
import logging
import time

import httpx

from nodeprobe.middleware.error_handler import TransportError
from nodeprobe.models.probe import ProbeResponse

logger = logging.getLogger(__name__)


def describe_error(exc: BaseException) -> str:
    """Readable one-line description; httpx timeouts often have an empty message."""
    text = str(exc).strip()
    return f"{exc.__class__.__name__}: {text}" if text else exc.__class__.__name__


class HttpAdapter:
    """Issues HTTP requests with a per-request timeout and linear-backoff retries.

    Parameters
    ----------
    timeout_ms:
        Per-attempt timeout in milliseconds.
    retries:
        Extra attempts after the first one fails (0 disables retrying).
    retry_delay_ms:
        Base backoff in milliseconds; attempt *n* waits ``n × retry_delay_ms``.
    """

    def __init__(
        self,
        *,
        timeout_ms: int = 5000,
        retries: int = 1,
        retry_delay_ms: int = 1000,
    ) -> None:
        self._timeout = timeout_ms / 1000.0
        self._retries = retries
        self._retry_delay = retry_delay_ms / 1000.0

    async def request(
        self,
        method: str,
        url: str,
        *,
        proxy: str | None = None,
        headers: dict[str, str] | None = None,
        json: object | None = None,
        retries: int | None = None,
    ) -> ProbeResponse:
        """Send one request, retrying transport failures.

        Raises
        ------
        TransportError
            When every attempt failed below HTTP.
        """
        max_retries = self._retries if retries is None else retries
        last_exception: Exception | None = None

        for attempt in range(max_retries + 1):
            started = time.monotonic()
            try:
                async with httpx.AsyncClient(
                    proxy=proxy,
                    timeout=httpx.Timeout(self._timeout),
                    follow_redirects=False,
                ) as client:
                    response = await client.request(method, url, headers=headers, json=json)
                    body = response.text
                return ProbeResponse(
                    status=response.status_code,
                    body=body,
                    latency_ms=(time.monotonic() - started) * 1000,
                )
            except httpx.InvalidURL as exc:
                raise TransportError(describe_error(exc), url=url, attempts=attempt + 1) from exc
            except httpx.HTTPError as exc:
                last_exception = exc
                if attempt < max_retries:
                    delay = self._retry_delay * (attempt + 1)
                    logger.debug(
                        "%s %s failed (attempt %d/%d): %s, retrying in %.1fs",
                        method,
                        url,
                        attempt + 1,
                        max_retries + 1,
                        describe_error(exc),
                        delay,
                    )
                    await asyncio.sleep(delay)

        raise TransportError(
            describe_error(last_exception) if last_exception else "request failed",
            url=url,
            attempts=max_retries + 1,
        ) from last_exception
