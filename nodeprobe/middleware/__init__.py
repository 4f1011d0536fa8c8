"""Middleware package: error hierarchy, auth, and request ID."""

from nodeprobe.middleware.auth import ServiceKeyAuthMiddleware
from nodeprobe.middleware.error_handler import (
    AuthenticationError,
    BatchCancelledError,
    ConfigurationError,
    CoreStartError,
    CoreStopError,
    NodeConversionError,
    ProbeEngineError,
    TransportError,
    register_error_handlers,
)
from nodeprobe.middleware.request_id import RequestIdMiddleware, current_request_id

__all__ = [
    "AuthenticationError",
    "BatchCancelledError",
    "ConfigurationError",
    "CoreStartError",
    "CoreStopError",
    "NodeConversionError",
    "ProbeEngineError",
    "RequestIdMiddleware",
    "ServiceKeyAuthMiddleware",
    "TransportError",
    "current_request_id",
    "register_error_handlers",
]
