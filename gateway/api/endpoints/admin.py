"""
Admin Endpoints
===============
Cache and deduplication maintenance.
"""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends

from gateway.api.deps import get_orchestrator
from gateway.schemas.usage import CacheStats, DedupStats
from gateway.services.orchestrator import CompletionOrchestrator

router = APIRouter()
logger = structlog.get_logger()

Orchestrator = Annotated[CompletionOrchestrator, Depends(get_orchestrator)]


@router.get("/cache/stats", response_model=CacheStats, summary="Get cache statistics")
async def get_cache_stats(orchestrator: Orchestrator) -> CacheStats:
    return await orchestrator.get_cache_stats()


@router.get("/dedup/stats", response_model=DedupStats, summary="Get in-flight request statistics")
async def get_dedup_stats(orchestrator: Orchestrator) -> DedupStats:
    return orchestrator.get_dedupe_stats()


@router.post("/cache/clean", summary="Remove expired cache entries")
async def clean_cache(orchestrator: Orchestrator) -> dict[str, int]:
    return {"removed": await orchestrator.clean_expired_cache()}


@router.post("/dedup/clean", summary="Clear stale in-flight entries")
async def clean_dedup(orchestrator: Orchestrator) -> dict[str, int]:
    return {"removed": orchestrator.clean_stale_dedup_entries()}


@router.post("/clear", summary="Clear cache and in-flight table")
async def clear_all(orchestrator: Orchestrator) -> dict[str, int]:
    """
    Delete every cache entry and clear the in-flight table.
    Requests already in flight still complete for their callers.
    """
    result = await orchestrator.clear_all()
    logger.warning("Admin cleared cache and in-flight table", **result)
    return result
