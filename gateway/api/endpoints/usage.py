"""
Usage Endpoints
===============
API endpoints for usage statistics, budgets, and budget alerts.
"""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status

from gateway.api.deps import get_orchestrator
from gateway.schemas.usage import (
    BudgetAlertResponse,
    BudgetConfigRequest,
    BudgetConfigResponse,
    BudgetStatus,
    PeriodType,
    UsageStats,
    UsageTrendItem,
)
from gateway.services.orchestrator import CompletionOrchestrator

router = APIRouter()
logger = structlog.get_logger()

Orchestrator = Annotated[CompletionOrchestrator, Depends(get_orchestrator)]


@router.get(
    "/total",
    response_model=UsageStats,
    summary="Get total usage",
    description="Firm-wide usage over a trailing window",
)
async def get_total_usage(
    orchestrator: Orchestrator,
    days: int = Query(default=30, ge=1, le=366),
) -> UsageStats:
    return await orchestrator.usage.get_total_usage(days)


@router.get(
    "/trends",
    response_model=list[UsageTrendItem],
    summary="Get usage trends",
    description="Per-day usage, optionally for one user",
)
async def get_usage_trends(
    orchestrator: Orchestrator,
    user_id: str | None = None,
    days: int = Query(default=30, ge=1, le=366),
) -> list[UsageTrendItem]:
    return await orchestrator.usage.get_usage_trends(user_id, days)


@router.get(
    "/{user_id}",
    response_model=UsageStats,
    summary="Get user usage",
    description="Usage statistics for a user over a trailing window",
)
async def get_user_usage(
    user_id: str,
    orchestrator: Orchestrator,
    days: int = Query(default=30, ge=1, le=366),
) -> UsageStats:
    return await orchestrator.get_user_usage(user_id, days)


@router.get(
    "/{user_id}/budget",
    response_model=BudgetStatus,
    summary="Get budget status",
    description="Spend against the user's budget for the current period",
)
async def get_budget_status(
    user_id: str,
    orchestrator: Orchestrator,
    period: PeriodType = "monthly",
) -> BudgetStatus:
    return await orchestrator.check_budget(user_id, period)


@router.put(
    "/{user_id}/budget/{period}",
    response_model=BudgetConfigResponse,
    summary="Set budget",
    description="Create or replace the user's budget for a period",
)
async def set_budget(
    user_id: str,
    period: PeriodType,
    body: BudgetConfigRequest,
    orchestrator: Orchestrator,
) -> BudgetConfigResponse:
    try:
        config = await orchestrator.usage.set_budget(
            user_id,
            period,
            body.limit_amount,
            body.alert_threshold,
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        ) from e
    return BudgetConfigResponse.model_validate(config)


@router.get(
    "/{user_id}/alerts",
    response_model=list[BudgetAlertResponse],
    summary="Get budget alerts",
    description="Most recent budget alerts for a user",
)
async def get_budget_alerts(
    user_id: str,
    orchestrator: Orchestrator,
    limit: int = Query(default=50, ge=1, le=500),
) -> list[BudgetAlertResponse]:
    alerts = await orchestrator.usage.get_alerts(user_id, limit)
    return [BudgetAlertResponse.model_validate(a) for a in alerts]
