"""
Health Check Endpoints
======================
Liveness and readiness probes for the gateway process.

Ready means a reachable store and at least one configured provider.
"""

from typing import Annotated, Literal

import structlog
from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from gateway import __version__
from gateway.api.deps import get_orchestrator
from gateway.database import STORE_ERRORS, get_session
from gateway.services.orchestrator import CompletionOrchestrator

router = APIRouter()
logger = structlog.get_logger()


class HealthResponse(BaseModel):
    status: str
    version: str


class ReadinessResponse(BaseModel):
    status: Literal["ok", "degraded"]
    database: Literal["connected", "disconnected"]
    providers: list[str]
    default_provider: str
    in_flight: int
    version: str


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Liveness probe: the process is up and serving."""
    return HealthResponse(status="ok", version=__version__)


@router.get("/ready", response_model=ReadinessResponse)
async def readiness_check(
    response: Response,
    orchestrator: Annotated[CompletionOrchestrator, Depends(get_orchestrator)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> ReadinessResponse:
    """
    Readiness probe.

    Returns 503 when the store is unreachable or no provider has credentials.
    """
    try:
        await session.execute(text("SELECT 1"))
        database = "connected"
    except STORE_ERRORS as e:
        logger.warning("Readiness database check failed", error=str(e))
        database = "disconnected"

    providers = orchestrator.provider_names
    ready = database == "connected" and bool(providers)
    if not ready:
        logger.warning("Gateway not ready", database=database, providers=providers)
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return ReadinessResponse(
        status="ok" if ready else "degraded",
        database=database,
        providers=providers,
        default_provider=orchestrator.settings.default_provider,
        in_flight=orchestrator.get_dedupe_stats().total_pending,
        version=__version__,
    )
