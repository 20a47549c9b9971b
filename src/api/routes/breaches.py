"""Breach endpoints: list, detail, acknowledge and on-demand evaluation."""

import time
from typing import Literal

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status

from src.api.auth import get_operator_id, verify_api_key
from src.api.dependencies import get_breach_config, get_breach_repository, get_evaluator
from src.api.models import (
    BreachAckResponse,
    BreachesResponse,
    BreachItem,
    ErrorResponse,
    EvaluationResponse,
)
from src.breaches.config import BreachConfig
from src.breaches.evaluator import BreachEvaluator
from src.breaches.repository import BreachRepository
from src.observability.metrics import get_metrics

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.get(
    "/breaches",
    response_model=BreachesResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid API key"},
        422: {"model": ErrorResponse, "description": "Invalid filter parameter"},
        500: {"model": ErrorResponse, "description": "Server error"},
    },
    summary="List breaches",
    description=(
        "Most recent breaches first, at most BREACHES_LIST_LIMIT (100). "
        "status=active hides acknowledged ones."
    ),
)
async def list_breaches(
    breach_status: Literal["active", "all"] = Query(
        default="all",
        alias="status",
        description="active: unacknowledged only; all: every breach",
    ),
    limit: int | None = Query(
        default=None, ge=1, le=100, description="Maximum breaches to return",
    ),
    api_key: str = Depends(verify_api_key),
    repo: BreachRepository = Depends(get_breach_repository),
    config: BreachConfig = Depends(get_breach_config),
) -> BreachesResponse:
    start_time = time.perf_counter()
    limit = min(limit or config.list_limit, config.list_limit)

    try:
        breaches = await repo.list_recent(
            active_only=breach_status == "active",
            limit=limit,
        )
        items = [BreachItem.from_breach(b) for b in breaches]
        latency_ms = (time.perf_counter() - start_time) * 1000

        logger.info(
            "Breaches listed",
            total=len(items),
            status=breach_status,
            latency_ms=round(latency_ms, 2),
        )
        return BreachesResponse(
            breaches=items,
            total=len(items),
            latency_ms=round(latency_ms, 2),
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to list breaches: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list breaches",
        )


@router.get(
    "/breaches/{breach_id}",
    response_model=BreachItem,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid API key"},
        404: {"model": ErrorResponse, "description": "Breach not found"},
        500: {"model": ErrorResponse, "description": "Server error"},
    },
    summary="Get a breach",
)
async def get_breach(
    breach_id: int,
    api_key: str = Depends(verify_api_key),
    repo: BreachRepository = Depends(get_breach_repository),
) -> BreachItem:
    try:
        breach = await repo.get_by_id(breach_id)
    except Exception as e:
        logger.error(f"Failed to get breach: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get breach",
        )

    if breach is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Breach {breach_id} not found",
        )
    return BreachItem.from_breach(breach)


@router.post(
    "/breaches/{breach_id}/ack",
    response_model=BreachAckResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid API key or missing operator"},
        404: {"model": ErrorResponse, "description": "Already acknowledged or not found"},
        500: {"model": ErrorResponse, "description": "Server error"},
    },
    summary="Acknowledge a breach",
    description=(
        "Record the calling operator as having acknowledged an active breach. "
        "Succeeds exactly once per breach."
    ),
)
async def acknowledge_breach(
    breach_id: int,
    api_key: str = Depends(verify_api_key),
    operator_id: int = Depends(get_operator_id),
    repo: BreachRepository = Depends(get_breach_repository),
) -> BreachAckResponse:
    start_time = time.perf_counter()

    try:
        breach = await repo.acknowledge(breach_id, operator_id)
    except Exception as e:
        logger.error(f"Failed to acknowledge breach: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to acknowledge breach",
        )

    if breach is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Already acked or not found",
        )

    get_metrics().record_ack()
    latency_ms = (time.perf_counter() - start_time) * 1000
    logger.info(
        "Breach acknowledged",
        breach_id=breach_id,
        operator_id=operator_id,
        latency_ms=round(latency_ms, 2),
    )
    return BreachAckResponse(
        breach=BreachItem.from_breach(breach),
        latency_ms=round(latency_ms, 2),
    )


@router.post(
    "/breaches/evaluate",
    response_model=EvaluationResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid API key"},
        500: {"model": ErrorResponse, "description": "Server error"},
    },
    summary="Evaluate now",
    description="Run one evaluation pass immediately. Skipped if a pass is already running.",
)
async def evaluate_now(
    api_key: str = Depends(verify_api_key),
    evaluator: BreachEvaluator = Depends(get_evaluator),
) -> EvaluationResponse:
    try:
        report = await evaluator.evaluate()
    except Exception as e:
        logger.error(f"Evaluation failed: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Evaluation failed",
        )

    return EvaluationResponse(
        skipped=report.skipped,
        created=[BreachItem.from_breach(b) for b in report.created],
        suppressed=report.suppressed,
        failed_metrics=report.failed_metrics,
        evaluated_at=report.evaluated_at.isoformat() if report.evaluated_at else None,
    )
