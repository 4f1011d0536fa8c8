"""Health and metrics endpoints.

These endpoints do NOT require X-Service-Key authentication.
- GET /health: service status
- GET /metrics: cache counters and the last batch summary
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter

from nodeprobe.models.responses import ApiResponse

if TYPE_CHECKING:
    from nodeprobe.services.orchestrator import BatchOrchestrator


def create_health_router(*, orchestrator: BatchOrchestrator | None = None) -> APIRouter:
    """Factory that creates the health router with injected dependencies."""

    health_router = APIRouter(tags=["health"])

    @health_router.get("/health")
    async def health() -> dict:
        return ApiResponse(success=True, data={"status": "healthy"}).model_dump()

    @health_router.get("/metrics")
    async def metrics() -> dict:
        """Operational metrics endpoint."""
        stats = orchestrator.get_stats() if orchestrator else {}
        return ApiResponse(success=True, data=stats).model_dump()

    return health_router
