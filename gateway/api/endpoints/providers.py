"""
Provider Endpoints
==================
API endpoints for provider health and pricing.
"""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from gateway.api.deps import get_orchestrator
from gateway.schemas.usage import ModelPricing, ProviderHealthResponse, ProviderModelsResponse
from gateway.services.orchestrator import KNOWN_PROVIDERS, CompletionOrchestrator

router = APIRouter()
logger = structlog.get_logger()


@router.get(
    "/health",
    response_model=ProviderHealthResponse,
    summary="Get provider health",
    description="Rolling-window health of each configured provider",
)
async def get_provider_health(
    orchestrator: Annotated[CompletionOrchestrator, Depends(get_orchestrator)],
) -> ProviderHealthResponse:
    return ProviderHealthResponse(
        best_provider=await orchestrator.get_best_provider(),
        providers=await orchestrator.get_provider_health(),
    )


@router.post(
    "/health/check",
    response_model=ProviderHealthResponse,
    summary="Check providers now",
    description="Run an availability check against each configured provider",
)
async def check_providers(
    orchestrator: Annotated[CompletionOrchestrator, Depends(get_orchestrator)],
) -> ProviderHealthResponse:
    await orchestrator.check_providers()
    return ProviderHealthResponse(
        best_provider=await orchestrator.get_best_provider(),
        providers=await orchestrator.get_provider_health(),
    )

@router.get(
    "/{provider}/models",
    response_model=ProviderModelsResponse,
    summary="Get provider models",
    description="Get priced models for a provider",
)
async def get_provider_models(
    provider: str,
    orchestrator: Annotated[CompletionOrchestrator, Depends(get_orchestrator)],
) -> ProviderModelsResponse:
    """
    Get priced models for a provider.

    Supported providers:
    - openai (OpenAI)
    - gemini (Google Gemini)
    """
    if provider not in KNOWN_PROVIDERS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid provider. Must be one of: {', '.join(KNOWN_PROVIDERS)}",
        )

    models = orchestrator.usage.pricing.get_provider_models(provider)
    return ProviderModelsResponse(
        provider=provider,
        models=[
            ModelPricing(
                model=m["model"],
                input_price_per_1k=m["input_price_per_1k"],
                output_price_per_1k=m["output_price_per_1k"],
            )
            for m in models
        ],
    )


@router.post(
    "/pricing/reload",
    summary="Reload pricing configuration",
    description="Reload pricing configuration from the YAML file",
)
async def reload_pricing(
    orchestrator: Annotated[CompletionOrchestrator, Depends(get_orchestrator)],
) -> dict[str, str]:
    """
    Reload pricing configuration from the YAML file.

    Useful for updating pricing without restarting the service.
    """
    orchestrator.usage.pricing.reload()
    logger.info("Pricing configuration reloaded")
    return {"status": "ok", "message": "Pricing configuration reloaded"}
