"""
Completion Endpoints
====================
Reliable LLM completions.
"""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from gateway.api.deps import get_orchestrator
from gateway.core.errors import (
    AggregateExhaustionError,
    BudgetExceededError,
    PermanentRequestError,
)
from gateway.schemas.completion import CompletionRequest, CompletionResponse
from gateway.services.orchestrator import CompletionOrchestrator

router = APIRouter()
logger = structlog.get_logger()


@router.post(
    "",
    response_model=CompletionResponse,
    summary="Create a completion",
    description="Generate a completion with caching, deduplication, retries and failover",
)
async def create_completion(
    request: CompletionRequest,
    orchestrator: Annotated[CompletionOrchestrator, Depends(get_orchestrator)],
) -> CompletionResponse:
    """
    Generate a completion.

    - Identical requests are served from cache or coalesced while in flight
    - Transient provider failures are retried with exponential backoff
    - Exhausted providers fail over to the best remaining provider
    """
    try:
        return await orchestrator.complete(request)
    except BudgetExceededError as e:
        raise HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail=str(e),
        ) from e
    except PermanentRequestError as e:
        logger.warning("Completion rejected by provider", provider=e.provider, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        ) from e
    except AggregateExhaustionError as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=str(e),
        ) from e
