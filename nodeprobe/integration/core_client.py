"""Client for the local proxy core's HTTP control API.

The core exposes every submitted node as its own local HTTP forwarding
listener:

- ``POST /start`` with ``{"proxies": [...], "timeout": <ms>}`` returns
  ``{"pid": <id>, "ports": [<port per node, submission order>]}``. The core
  kills itself after ``timeout`` ms if nobody stops it.
- ``POST /stop`` with ``{"pid": [<id>]}`` shuts it down.

Starting is fatal-on-failure and never retried. Stopping is best effort:
failures are logged, never raised, since the batch result already exists by
then. ``session()`` ties the two together so that a started core is stopped
exactly once on every exit path.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from nodeprobe.http.client import HttpAdapter
from nodeprobe.middleware.error_handler import CoreStartError, CoreStopError, TransportError

logger = logging.getLogger(__name__)


@dataclass
class CoreSession:
    """A running core process and the local ports it allocated."""

    pid: int | str
    ports: list[int]
    deadline: float  # time.monotonic() after which the core exits on its own

    @property
    def expired(self) -> bool:
        return time.monotonic() >= self.deadline


class ProxyCoreClient:
    """Starts and stops proxy core processes through the control API.

    Parameters
    ----------
    api_url:
        Control API base URL, e.g. ``"http://127.0.0.1:9876"``.
    authorization:
        Value for the ``Authorization`` header; omitted when empty.
    http:
        Adapter used for the control calls (its retry policy applies to stop).
    """

    def __init__(
        self,
        api_url: str,
        *,
        authorization: str = "",
        http: HttpAdapter | None = None,
    ) -> None:
        self._api_url = api_url.rstrip("/")
        self._authorization = authorization
        self._http = http or HttpAdapter()
        self._stop_calls = 0

    @property
    def stop_calls(self) -> int:
        return self._stop_calls

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._authorization:
            headers["Authorization"] = self._authorization
        return headers

    async def start(self, nodes: list[dict], timeout_ms: int) -> CoreSession:
        """Submit *nodes* to the core and return the session it created.

        Raises
        ------
        CoreStartError
            If the control API is unreachable or the response lacks a pid or
            a port per node.
        """
        try:
            response = await self._http.request(
                "POST",
                f"{self._api_url}/start",
                headers=self._headers(),
                json={"proxies": nodes, "timeout": timeout_ms},
                retries=0,
            )
        except TransportError as exc:
            raise CoreStartError(f"Proxy core control API unreachable: {exc.message}") from exc

        try:
            payload = json.loads(response.body)
        except ValueError:
            payload = None

        pid = payload.get("pid") if isinstance(payload, dict) else None
        ports = payload.get("ports") if isinstance(payload, dict) else None
        if response.status >= 300 or not pid or not ports:
            raise CoreStartError(
                f"Proxy core did not start (status {response.status})",
                body=response.body[:500],
            )
        if len(ports) != len(nodes):
            raise CoreStartError(
                f"Proxy core returned {len(ports)} ports for {len(nodes)} nodes",
                pid=pid,
            )

        session = CoreSession(
            pid=pid,
            ports=[int(port) for port in ports],
            deadline=time.monotonic() + timeout_ms / 1000.0,
        )
        logger.info(
            "Proxy core started, exits on its own after %.1f min if not stopped",
            timeout_ms / 60_000,
            extra={"pid": pid, "ports": session.ports},
        )
        return session

    async def stop(self, pid: int | str) -> bool:
        """Stop the core process *pid*. Never raises; returns whether it worked."""
        self._stop_calls += 1
        try:
            response = await self._http.request(
                "POST",
                f"{self._api_url}/stop",
                headers=self._headers(),
                json={"pid": [pid]},
            )
            if response.status >= 400:
                raise CoreStopError(f"Proxy core stop returned status {response.status}", pid=pid)
        except (TransportError, CoreStopError) as exc:
            logger.error(
                "Failed to stop proxy core: %s",
                exc.message,
                extra={"pid": pid, "error_reason": exc.message},
            )
            return False

        logger.info("Proxy core stopped", extra={"pid": pid})
        return True

    @asynccontextmanager
    async def session(self, nodes: list[dict], timeout_ms: int) -> AsyncIterator[CoreSession]:
        """Start a core for *nodes* and stop it when the block exits, however it exits."""
        session = await self.start(nodes, timeout_ms)
        try:
            yield session
        finally:
            await self.stop(session.pid)
