"""Global error hierarchy and FastAPI exception handlers.

All engine-specific errors extend ProbeEngineError. The FastAPI exception
handlers catch these errors (plus Pydantic's RequestValidationError and
unhandled exceptions) and return a consistent JSON envelope:
{ success, data, error, meta }.

Inside a batch the same classes mark how far a failure reaches: a
ConfigurationError or CoreStartError aborts the batch, a TransportError or
NodeConversionError stays local to one probe or one node, and a
CoreStopError is only ever logged.
"""

from __future__ import annotations

import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Error hierarchy
# ---------------------------------------------------------------------------


class ProbeEngineError(Exception):
    """Base error for all probing-engine errors."""

    status_code: int = 500
    message: str = "Internal server error"

    def __init__(self, message: str | None = None, **kwargs: object) -> None:
        self.message = message or self.__class__.message
        self.details = kwargs
        super().__init__(self.message)


class AuthenticationError(ProbeEngineError):
    """Invalid or missing service key."""

    status_code = 401
    message = "Invalid or missing service key"


class ConfigurationError(ProbeEngineError):
    """The batch cannot run with the given configuration (e.g. no targets)."""

    status_code = 422
    message = "No probe targets configured"


class CoreStartError(ProbeEngineError):
    """The proxy core did not return a pid and port list."""

    status_code = 502
    message = "Proxy core failed to start"


class CoreStopError(ProbeEngineError):
    """The proxy core could not be stopped."""

    status_code = 502
    message = "Proxy core failed to stop"


class TransportError(ProbeEngineError):
    """A probe request failed below HTTP (connect error, timeout, proxy error)."""

    status_code = 502
    message = "Probe request failed"


class NodeConversionError(ProbeEngineError):
    """A node could not be converted into a configuration the core accepts."""

    status_code = 422
    message = "Node is not supported by the proxy core"


class BatchCancelledError(ProbeEngineError):
    """The batch was cancelled before all nodes were probed."""

    status_code = 503
    message = "Batch cancelled"


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------


def _envelope(
    status_code: int,
    error: str,
    meta: dict | None = None,
) -> JSONResponse:
    """Build a JSON envelope error response."""
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "data": None,
            "error": error,
            "meta": meta,
        },
    )


async def _engine_error_handler(_request: Request, exc: ProbeEngineError) -> JSONResponse:
    """Handle ProbeEngineError subclasses."""
    meta = exc.details if exc.details else None
    return _envelope(exc.status_code, exc.message, meta=meta)


async def _validation_error_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle FastAPI / Pydantic RequestValidationError (422)."""
    field_errors = [
        {
            "field": " -> ".join(str(loc) for loc in err["loc"]),
            "message": err["msg"],
            "type": err["type"],
        }
        for err in exc.errors()
    ]
    return _envelope(
        status_code=422,
        error="Validation error",
        meta={"fields": field_errors},
    )


async def _unhandled_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions, log traceback, return generic 500."""
    logger.error(
        "Unhandled exception: %s\n%s",
        exc,
        traceback.format_exc(),
    )
    return _envelope(status_code=500, error="Internal server error")


# ---------------------------------------------------------------------------
# Registration helper
# ---------------------------------------------------------------------------


def register_error_handlers(app: FastAPI) -> None:
    """Wire up all exception handlers on the FastAPI application."""
    app.add_exception_handler(ProbeEngineError, _engine_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _unhandled_error_handler)  # type: ignore[arg-type]
