"""Proxy node state as seen by the probing engine.

Callers hand the engine plain dicts (one per proxy, in the shape the proxy
core accepts). ``ProxyNode`` splits such a dict into the stable configuration
that identifies the node and everything else (display name, bookkeeping
keys, previously attached ``_``-prefixed annotations), and carries the
annotations this engine computes until they are merged back.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from nodeprobe.models.probe import NodeOutcome, ProbeOutcome

# Keys that never identify a node: display/bookkeeping names and every
# ``_``-prefixed annotation, ours included.
_VOLATILE_KEY = re.compile(r"^(name|collectionName|subName|id|_.*)$", re.IGNORECASE)

AVAILABLE_FIELD = "_ai_available"
LATENCY_FIELD = "_ai_latency"
PASS_COUNT_FIELD = "_ai_pass_count"
RESULTS_FIELD = "_ai_results"
ERROR_FIELD = "_ai_error"


def stable_config(raw: dict) -> dict:
    """Return the subset of *raw* that identifies the node."""
    return {key: value for key, value in raw.items() if not _VOLATILE_KEY.match(str(key))}


def apply_prefix(name: str, prefix: str) -> str:
    """Prefix *name* once; an already-prefixed name is returned unchanged."""
    if not prefix or name.startswith(prefix):
        return name
    return f"{prefix}{name}"


@dataclass
class ProxyNode:
    """One convertible input node plus its probe annotations."""

    index: int  # position in the caller's list
    name: str
    config: dict  # what is submitted to the core
    attached: dict = field(default_factory=dict)  # preserved ``_``-prefixed fields
    ai_available: bool = False
    ai_latency: float | None = None
    ai_pass_count: int = 0
    ai_results: dict[str, ProbeOutcome] = field(default_factory=dict)
    ai_error: str | None = None

    @classmethod
    def from_dict(cls, index: int, raw: dict, config: dict | None = None) -> ProxyNode:
        attached = {key: value for key, value in raw.items() if str(key).startswith("_")}
        return cls(
            index=index,
            name=str(raw.get("name", "")),
            config=config if config is not None else dict(raw),
            attached=attached,
        )

    @property
    def stable_config(self) -> dict:
        return stable_config(self.config)

    def annotate(self, outcome: NodeOutcome) -> None:
        self.ai_available = outcome.available
        self.ai_latency = outcome.latency_ms
        self.ai_pass_count = outcome.pass_count
        self.ai_results = dict(outcome.results)
        self.ai_error = outcome.error

    def annotations(self) -> dict:
        """Annotation fields in the shape written back onto the caller's dict."""
        return {
            AVAILABLE_FIELD: self.ai_available,
            LATENCY_FIELD: self.ai_latency,
            PASS_COUNT_FIELD: self.ai_pass_count,
            RESULTS_FIELD: {target_id: outcome.to_dict() for target_id, outcome in self.ai_results.items()},
            ERROR_FIELD: self.ai_error,
        }

    def merge_into(self, raw: dict, prefix: str) -> None:
        """Write annotations onto *raw*, prefixing its name when available."""
        raw.update(self.annotations())
        if self.ai_available:
            raw["name"] = apply_prefix(str(raw.get("name", "")), prefix)
