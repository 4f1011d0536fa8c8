"""Response models for the HTTP API.

Every response is wrapped in the same envelope:
{ success: bool, data: T | None, error: str | None, meta: dict | None }

``CheckData`` is the payload of ``POST /api/v1/check``: the caller's nodes
with their ``_ai_*`` annotations merged in, plus the batch summary.
"""

from __future__ import annotations

from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """JSON envelope for all API responses."""

    success: bool
    data: T | None = None
    error: str | None = None
    meta: dict | None = None


class BatchSummary(BaseModel):
    """Counters and diagnostics for one batch check."""

    total: int
    supported: int
    skipped: int
    probed: int
    cached: int
    available: int
    failed_tasks: int
    targets: list[str]
    short_circuited: bool
    core_pid: int | str | None = None
    duration_ms: float
    error: str | None = None


class CheckData(BaseModel):
    # Node dicts are passed through untouched apart from their annotations,
    # so their shape stays open.
    nodes: list[dict]
    summary: BatchSummary
