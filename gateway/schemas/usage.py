"""
Usage Schemas
=============
Pydantic models for usage tracking, budgets, and operational stats.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

UsageStatus = Literal["success", "error", "fallback", "cached"]
PeriodType = Literal["daily", "weekly", "monthly"]
BudgetState = Literal["ok", "warning", "critical", "exceeded"]
HealthState = Literal["healthy", "degraded", "unhealthy"]


class UsageRecordCreate(BaseModel):
    """
    A usage record to log.
    One per completion served, including cache hits and failures.
    """

    user_id: str = Field(..., min_length=1, max_length=255)
    document_id: str | None = None
    matter_id: str | None = None
    provider: str = Field(..., min_length=1, max_length=50)
    model: str = Field(..., min_length=1, max_length=255)
    endpoint: str = "completion"
    prompt_tokens: int = Field(default=0, ge=0)
    completion_tokens: int = Field(default=0, ge=0)
    duration_ms: int = Field(default=0, ge=0)
    status: UsageStatus = "success"
    error_message: str | None = None
    fallback_provider: str | None = None
    cache_hit: bool = False


class UsageStats(BaseModel):
    """Aggregate usage over a trailing window."""

    user_id: str | None = None
    days: int
    total_requests: int = 0
    total_tokens: int = 0
    total_cost: Decimal = Decimal("0")
    success_count: int = 0
    error_count: int = 0
    fallback_count: int = 0
    cache_hits: int = 0
    avg_duration_ms: float = 0.0
    cost_by_provider: dict[str, Decimal] = Field(default_factory=dict)
    requests_by_provider: dict[str, int] = Field(default_factory=dict)


class UsageTrendItem(BaseModel):
    """Usage for a single day."""

    date: date
    total_requests: int
    total_tokens: int
    total_cost: Decimal


class BudgetStatus(BaseModel):
    """Spend against a budget for the current period. ``limit`` of None is unlimited."""

    user_id: str
    period_type: PeriodType
    limit: Decimal | None = None
    current_usage: Decimal = Decimal("0")
    percentage_used: float = 0.0
    remaining: Decimal | None = None
    alert_threshold: float
    status: BudgetState = "ok"
    period_start: datetime | None = None


class BudgetConfigRequest(BaseModel):
    limit_amount: Decimal = Field(..., gt=0)
    alert_threshold: float | None = Field(default=None, gt=0, le=1)


class BudgetConfigResponse(BaseModel):
    user_id: str
    period_type: PeriodType
    limit_amount: Decimal
    alert_threshold: float
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class BudgetAlertResponse(BaseModel):
    id: UUID
    user_id: str
    period_type: str
    alert_type: str
    current_usage: Decimal
    limit_amount: Decimal
    percentage_used: float
    notified: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CacheStats(BaseModel):
    """Snapshot of the response cache."""

    total_entries: int = 0
    total_hits: int = 0
    hit_rate: float = 0.0
    size_bytes: int = 0
    oldest_entry: datetime | None = None
    newest_entry: datetime | None = None


class DedupStats(BaseModel):
    total_pending: int = 0
    avg_age_ms: float = 0.0
    oldest_age_ms: float = 0.0


class ProviderHealthSummary(BaseModel):
    """Rolling-window health of one provider."""

    provider: str
    status: HealthState = "healthy"
    total_requests: int = 0
    success_count: int = 0
    error_count: int = 0
    error_rate: float = 0.0
    avg_latency_ms: float | None = None
    consecutive_failures: int = 0
    last_success: datetime | None = None
    last_error: datetime | None = None
    last_error_message: str | None = None


class ProviderHealthResponse(BaseModel):
    best_provider: str | None
    providers: dict[str, ProviderHealthSummary]


class ModelPricing(BaseModel):
    """Pricing information for a model."""

    model: str
    input_price_per_1k: Decimal
    output_price_per_1k: Decimal


class ProviderModelsResponse(BaseModel):
    """Available models for a provider."""

    provider: str
    models: list[ModelPricing]
