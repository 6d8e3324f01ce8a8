"""
Verification Routes
===================

Main API endpoint for running control/test verifications.
"""

import time
import uuid
from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request

from api.schemas import (
    ErrorResponse,
    VerificationRequest,
    VerificationResponse,
    VerificationResultResponse,
)
from query_verifier.manager import VerificationManager

router = APIRouter(prefix="/api/v1", tags=["Verification"])
logger = structlog.get_logger(__name__)


def get_manager(request: Request) -> VerificationManager:
    """Dependency to get the configured verification manager from app state."""
    manager = getattr(request.app.state, "manager", None)
    if manager is None:
        raise HTTPException(
            status_code=503,
            detail={
                "error": "NotConfigured",
                "message": "No control and test clusters are configured",
            },
        )
    return manager


def get_request_id(request: Request) -> str:
    """Reuse the telemetry request ID, or generate one."""
    return getattr(request.state, "request_id", None) or str(uuid.uuid4())


@router.post(
    "/verifications",
    response_model=VerificationResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid request"},
        503: {"model": ErrorResponse, "description": "Clusters not configured"},
    },
    summary="Verify queries against the control and test clusters",
    description="Runs every source query on both clusters and classifies the outcome",
)
async def run_verifications(
    body: VerificationRequest,
    manager: Annotated[VerificationManager, Depends(get_manager)],
    request_id: Annotated[str, Depends(get_request_id)],
) -> VerificationResponse:
    """
    Verify a batch of source queries.

    The endpoint:
    1. Rewrites each query for both clusters
    2. Runs control and test and compares result checksums
    3. Re-runs control on mismatch to rule out non-determinism
    4. Returns each outcome plus a summary

    Args:
        body: Queries to verify
        manager: Injected VerificationManager instance
        request_id: Request identifier from the telemetry middleware

    Returns:
        VerificationResponse with per-query outcomes
    """
    start_time = time.perf_counter()
    queries = [q.to_source_query() for q in body.queries]

    try:
        results = await manager.run(queries)
    except ValueError as e:
        raise HTTPException(
            status_code=400,
            detail={
                "error": "InvalidRequest",
                "message": str(e),
                "request_id": request_id,
            },
        ) from e

    processing_time_ms = (time.perf_counter() - start_time) * 1000
    summary = manager.summarize(results)
    logger.info(
        "Verification request finished",
        request_id=request_id,
        queries=len(queries),
        processing_time_ms=round(processing_time_ms, 2),
        **summary,
    )

    return VerificationResponse(
        results=[
            VerificationResultResponse.from_result(r, body.include_context) for r in results
        ],
        summary=summary,
        request_id=request_id,
        processing_time_ms=processing_time_ms,
    )
