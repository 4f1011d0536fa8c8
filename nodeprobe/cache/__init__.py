"""Probe result cache."""

from nodeprobe.cache.result_cache import (
    FINGERPRINT_PREFIX,
    CacheEntry,
    InMemoryResultCache,
    ProbeResultCache,
    ResultCache,
    fingerprint,
)

__all__ = [
    "FINGERPRINT_PREFIX",
    "CacheEntry",
    "InMemoryResultCache",
    "ProbeResultCache",
    "ResultCache",
    "fingerprint",
]
