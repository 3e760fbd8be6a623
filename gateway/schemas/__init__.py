"""
Pydantic Schemas
================
Request/Response models for API validation.
"""

from gateway.schemas.completion import CompletionRequest, CompletionResponse, Message
from gateway.schemas.usage import (
    BudgetAlertResponse,
    BudgetConfigRequest,
    BudgetConfigResponse,
    BudgetStatus,
    CacheStats,
    DedupStats,
    ModelPricing,
    ProviderHealthResponse,
    ProviderHealthSummary,
    ProviderModelsResponse,
    UsageRecordCreate,
    UsageStats,
    UsageTrendItem,
)

__all__ = [
    "Message",
    "CompletionRequest",
    "CompletionResponse",
    "UsageRecordCreate",
    "UsageStats",
    "UsageTrendItem",
    "BudgetStatus",
    "BudgetConfigRequest",
    "BudgetConfigResponse",
    "BudgetAlertResponse",
    "CacheStats",
    "DedupStats",
    "ProviderHealthSummary",
    "ProviderHealthResponse",
    "ModelPricing",
    "ProviderModelsResponse",
]
