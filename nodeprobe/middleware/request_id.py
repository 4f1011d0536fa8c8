"""Request ID middleware.

Generates (or propagates) a request ID for every incoming request, stores it
in ``request.state.request_id`` and in the ``current_request_id`` context
variable, and echoes it back in the ``X-Request-ID`` response header. The
context variable lets ``JsonFormatter`` tag every log line emitted while a
batch runs, including lines from the probe workers it spawns.
"""

from __future__ import annotations

import uuid
from contextvars import ContextVar

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

current_request_id: ContextVar[str | None] = ContextVar("current_request_id", default=None)


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Assign a request ID to each request and expose it to logging."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id
        token = current_request_id.set(request_id)
        try:
            response: Response = await call_next(request)
        finally:
            current_request_id.reset(token)
        response.headers["X-Request-ID"] = request_id
        return response
