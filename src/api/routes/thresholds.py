"""Threshold endpoints: read and update per-metric warn/critical levels."""

import time

import structlog
from fastapi import APIRouter, Depends, HTTPException, Path, status

from src.api.auth import verify_api_key
from src.api.dependencies import get_threshold_repository
from src.api.models import (
    ErrorResponse,
    ThresholdItem,
    ThresholdResponse,
    ThresholdsResponse,
    ThresholdUpdateRequest,
)
from src.thresholds.repository import ThresholdRepository

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.get(
    "/thresholds",
    response_model=ThresholdsResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid API key"},
        500: {"model": ErrorResponse, "description": "Server error"},
    },
    summary="List thresholds",
    description="Current warn and critical levels for every metric, ordered by metric.",
)
async def list_thresholds(
    api_key: str = Depends(verify_api_key),
    repo: ThresholdRepository = Depends(get_threshold_repository),
) -> ThresholdsResponse:
    try:
        thresholds = await repo.get_all()
        return ThresholdsResponse(
            thresholds=[ThresholdItem.from_threshold(t) for t in thresholds],
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to list thresholds: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list thresholds",
        )


@router.put(
    "/thresholds/{metric}",
    response_model=ThresholdResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid API key"},
        422: {"model": ErrorResponse, "description": "Unknown metric or warn >= critical"},
        500: {"model": ErrorResponse, "description": "Server error"},
    },
    summary="Update a metric's thresholds",
    description=(
        "Replace the warn and critical levels of one metric. warn must be "
        "strictly below critical; a rejected update leaves the stored levels unchanged."
    ),
)
async def update_threshold(
    body: ThresholdUpdateRequest,
    metric: str = Path(..., description="traffic, air_quality, waste or power"),
    api_key: str = Depends(verify_api_key),
    repo: ThresholdRepository = Depends(get_threshold_repository),
) -> ThresholdResponse:
    start_time = time.perf_counter()
    metric = metric.strip().lower()

    try:
        threshold = await repo.upsert(metric, body.warn, body.critical)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        )
    except Exception as e:
        logger.error(f"Failed to update threshold: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update threshold",
        )

    logger.info(
        "Threshold updated",
        metric=metric,
        warn=threshold.warn,
        critical=threshold.critical,
        latency_ms=round((time.perf_counter() - start_time) * 1000, 2),
    )
    return ThresholdResponse(threshold=ThresholdItem.from_threshold(threshold))
