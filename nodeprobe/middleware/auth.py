"""X-Service-Key authentication middleware.

Only installed when ``ProbeSettings.service_key`` is set. Health and metrics
endpoints stay public so that supervisors can poll them without a key.
"""

from __future__ import annotations

import hmac
import logging

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from nodeprobe.middleware.error_handler import AuthenticationError, _envelope

logger = logging.getLogger(__name__)

_PUBLIC_PATHS: frozenset[str] = frozenset({"/health", "/metrics"})


class ServiceKeyAuthMiddleware(BaseHTTPMiddleware):
    """Reject requests whose ``X-Service-Key`` does not match the configured key.

    The comparison uses ``hmac.compare_digest`` so that response timing does
    not leak how much of the key matched.
    """

    def __init__(self, app, service_key: str) -> None:  # noqa: ANN001
        super().__init__(app)
        self._service_key = service_key

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in _PUBLIC_PATHS:
            return await call_next(request)

        provided_key = request.headers.get("x-service-key", "")
        if provided_key and hmac.compare_digest(provided_key, self._service_key):
            return await call_next(request)

        logger.warning(
            "Rejected request to %s",
            request.url.path,
            extra={
                "error_reason": "invalid_service_key" if provided_key else "missing_service_key",
                "source_ip": request.client.host if request.client else "unknown",
            },
        )
        return _envelope(
            status_code=AuthenticationError.status_code,
            error=AuthenticationError.message,
        )
