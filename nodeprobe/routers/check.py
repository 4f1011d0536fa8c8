"""Batch check endpoint.

- POST /api/v1/check: probe a batch of nodes and return them annotated

The payload is ``ApiResponse[CheckData]``; a configuration problem (no
targets resolved) still answers 200 with ``success: false`` and the nodes
returned unannotated.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import APIRouter

from nodeprobe.models.requests import CheckRequest
from nodeprobe.models.responses import ApiResponse, BatchSummary, CheckData

if TYPE_CHECKING:
    from nodeprobe.services.orchestrator import BatchOrchestrator

logger = logging.getLogger(__name__)


def create_check_router(*, orchestrator: BatchOrchestrator) -> APIRouter:
    """Factory that creates the check router with an injected orchestrator."""

    check_router = APIRouter(prefix="/api/v1", tags=["check"])

    @check_router.post("/check")
    async def check(body: CheckRequest) -> dict:
        """Run one batch check; blocks until every node has been probed."""
        result = await orchestrator.check(body.nodes, options=body.options)
        report = result.report

        return ApiResponse[CheckData](
            success=report.error is None,
            data=CheckData(nodes=result.nodes, summary=BatchSummary(**report.to_dict())),
            error=report.error,
            meta={"duration_ms": report.duration_ms},
        ).model_dump()

    return check_router
