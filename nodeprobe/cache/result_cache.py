"""Content-addressed cache of per-node probe outcomes.

Entries are keyed by a fingerprint of the node's stable configuration plus
the sorted URLs of the active targets, so renaming a node or re-annotating it
never invalidates its entry, while changing the target set always does.

Storage is pluggable (``ResultCache``); the engine only reads and writes JSON
compatible dicts and leaves retention to the store. ``InMemoryResultCache``
is the store used by the service, with a monotonic-clock TTL.
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass, field

from nodeprobe.models.node import stable_config
from nodeprobe.models.probe import NodeOutcome, ProbeOutcome

logger = logging.getLogger(__name__)

FINGERPRINT_PREFIX = "node-probe:"


def fingerprint(node_config: dict, target_urls: Iterable[str]) -> str:
    """Cache key for a node and an active target set.

    Volatile keys (name, ids, ``_``-prefixed annotations) are dropped from
    *node_config* and key order does not matter.
    """
    canonical = json.dumps(
        {"node": stable_config(node_config), "targets": sorted(target_urls)},
        sort_keys=True,
        separators=(",", ":"),
        default=str,
        ensure_ascii=False,
    )
    return FINGERPRINT_PREFIX + hashlib.sha256(canonical.encode("utf-8")).hexdigest()


@dataclass
class CacheEntry:
    """Stored outcome for one fingerprint."""

    available: bool
    latency_ms: float | None
    results: dict[str, ProbeOutcome] = field(default_factory=dict)
    pass_count: int = 0
    error: str | None = None

    @classmethod
    def from_outcome(cls, outcome: NodeOutcome) -> CacheEntry:
        return cls(
            available=outcome.available,
            latency_ms=outcome.latency_ms,
            results=dict(outcome.results),
            pass_count=outcome.pass_count,
            error=outcome.error,
        )

    def to_outcome(self) -> NodeOutcome:
        return NodeOutcome(
            available=self.available,
            pass_count=self.pass_count,
            latency_ms=self.latency_ms,
            results=dict(self.results),
            from_cache=True,
            error=self.error,
        )

    def to_dict(self) -> dict:
        return {
            "available": self.available,
            "latency_ms": self.latency_ms,
            "pass_count": self.pass_count,
            "results": {target_id: outcome.to_dict() for target_id, outcome in self.results.items()},
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: dict) -> CacheEntry:
        results = {
            target_id: ProbeOutcome.from_dict(outcome)
            for target_id, outcome in (data.get("results") or {}).items()
        }
        return cls(
            available=bool(data["available"]),
            latency_ms=data.get("latency_ms"),
            results=results,
            pass_count=int(data.get("pass_count", sum(1 for o in results.values() if o.passed))),
            error=data.get("error"),
        )


class ResultCache(ABC):
    """Key/value store for cache entries. Implementations own expiry."""

    @abstractmethod
    def get(self, key: str) -> dict | None:
        ...

    @abstractmethod
    def set(self, key: str, value: dict) -> None:
        ...


class InMemoryResultCache(ResultCache):
    """Process-local store with an optional TTL (``None`` keeps entries forever)."""

    def __init__(self, ttl_seconds: float | None = None) -> None:
        self._ttl_seconds = ttl_seconds
        self._entries: dict[str, tuple[dict, float | None]] = {}

    def get(self, key: str) -> dict | None:
        item = self._entries.get(key)
        if item is None:
            return None
        value, expiry = item
        if expiry is not None and time.monotonic() >= expiry:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: dict) -> None:
        expiry = time.monotonic() + self._ttl_seconds if self._ttl_seconds is not None else None
        self._entries[key] = (value, expiry)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class ProbeResultCache:
    """Cache policy on top of a ``ResultCache`` store.

    The failure policy is passed per call because batches may override it:
    with ``cache_failures=False`` failure outcomes are neither written nor
    trusted, so a failed node is always re-probed.
    """

    def __init__(self, store: ResultCache) -> None:
        self._store = store
        self._hits = 0
        self._misses = 0
        self._writes = 0

    def lookup(self, key: str) -> CacheEntry | None:
        """Return the stored entry for *key*, or ``None`` (unreadable entries count as misses)."""
        raw = self._store.get(key)
        if raw is None:
            return None
        try:
            return CacheEntry.from_dict(raw)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Discarding unreadable cache entry: %s", exc, extra={"fingerprint": key})
            return None

    @staticmethod
    def usable(entry: CacheEntry | None, *, cache_failures: bool) -> bool:
        """Whether *entry* can stand in for a fresh probe."""
        if entry is None:
            return False
        return entry.available or cache_failures

    def get_usable(self, key: str, *, cache_failures: bool) -> CacheEntry | None:
        entry = self.lookup(key)
        if self.usable(entry, cache_failures=cache_failures):
            self._hits += 1
            return entry
        self._misses += 1
        return None

    def store(self, key: str, outcome: NodeOutcome, *, cache_failures: bool) -> bool:
        """Persist *outcome* unless it is a failure and failures are not cached."""
        if not outcome.available and not cache_failures:
            return False
        self._store.set(key, CacheEntry.from_outcome(outcome).to_dict())
        self._writes += 1
        return True

    def get_stats(self) -> dict:
        return {"hits": self._hits, "misses": self._misses, "writes": self._writes}
