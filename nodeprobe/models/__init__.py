"""Public models for the probing engine."""

from nodeprobe.models.node import ProxyNode, apply_prefix, stable_config
from nodeprobe.models.probe import (
    LATENCY_TRANSPORT_ERROR,
    STATUS_TRANSPORT_ERROR,
    NodeOutcome,
    ProbeOutcome,
    ProbeResponse,
    ProbeTarget,
    TargetCategory,
)
from nodeprobe.models.requests import CheckOptions, CheckRequest
from nodeprobe.models.responses import ApiResponse, BatchSummary, CheckData

__all__ = [
    "LATENCY_TRANSPORT_ERROR",
    "STATUS_TRANSPORT_ERROR",
    "ApiResponse",
    "BatchSummary",
    "CheckData",
    "CheckOptions",
    "CheckRequest",
    "NodeOutcome",
    "ProbeOutcome",
    "ProbeResponse",
    "ProbeTarget",
    "ProxyNode",
    "TargetCategory",
    "apply_prefix",
    "stable_config",
]
