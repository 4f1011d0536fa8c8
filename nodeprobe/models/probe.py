"""Probe targets, per-request responses and per-node outcomes."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from nodeprobe.targets.rules import TargetRule

# Sentinels recorded when a request never produced an HTTP response
STATUS_TRANSPORT_ERROR = -1
LATENCY_TRANSPORT_ERROR = -1.0


class TargetCategory(str, Enum):
    """Closed set of target categories; each has its own pass/fail rule."""

    CHAT = "chat"  # chat-style service, region lock reported in the body
    LOGIN_GATED = "login_gated"  # login page, bans reported in the body
    REDIRECT_HEAVY = "redirect_heavy"  # redirects a lot, may 200 with a block page
    CUSTOM = "custom"  # user-supplied URL


@dataclass(frozen=True)
class ProbeTarget:
    """A remote endpoint and the rule that decides whether a node reaches it."""

    id: str
    name: str
    url: str
    category: TargetCategory
    rule: "TargetRule"

    def evaluate(self, status: int, body: str) -> tuple[bool, str]:
        return self.rule.evaluate(status, body)


@dataclass(frozen=True)
class ProbeResponse:
    """Normalised HTTP response produced by the HTTP adapter."""

    status: int
    body: str
    latency_ms: float


@dataclass(frozen=True)
class ProbeOutcome:
    """Result of probing one target through one node."""

    status: int
    latency_ms: float
    passed: bool
    message: str

    @property
    def is_transport_error(self) -> bool:
        return self.status == STATUS_TRANSPORT_ERROR

    @classmethod
    def transport_error(cls, message: str) -> ProbeOutcome:
        return cls(
            status=STATUS_TRANSPORT_ERROR,
            latency_ms=LATENCY_TRANSPORT_ERROR,
            passed=False,
            message=message,
        )

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "latency_ms": self.latency_ms,
            "passed": self.passed,
            "message": self.message,
        }

    @classmethod
    def from_dict(cls, data: dict) -> ProbeOutcome:
        return cls(
            status=int(data["status"]),
            latency_ms=float(data["latency_ms"]),
            passed=bool(data["passed"]),
            message=str(data.get("message", "")),
        )


@dataclass
class NodeOutcome:
    """Aggregated result for one node across the active target set."""

    available: bool
    pass_count: int
    latency_ms: float | None
    results: dict[str, ProbeOutcome] = field(default_factory=dict)
    from_cache: bool = False
    error: str | None = None  # set when the node's task crashed; results is then empty

    @classmethod
    def failed(cls, message: str) -> NodeOutcome:
        """Outcome for a node whose probing task crashed before finishing."""
        return cls(available=False, pass_count=0, latency_ms=None, error=message)
