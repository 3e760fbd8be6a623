"""
Token Usage Models
==================
Models for tracking token usage, costs, and budgets.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Float,
    Index,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from gateway.models.base import Base, TimestampMixin, utc_now


class AIUsageLog(Base, TimestampMixin):
    """
    Raw usage records.
    Stores every completion served through the gateway, including cache hits.
    """

    __tablename__ = "ai_usage_log"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    document_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    matter_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    provider: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    model: Mapped[str] = mapped_column(String(255), nullable=False)
    endpoint: Mapped[str] = mapped_column(String(100), nullable=False, default="completion")
    prompt_tokens: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    completion_tokens: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_tokens: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    estimated_cost: Mapped[Decimal] = mapped_column(
        Numeric(20, 10),
        nullable=False,
        default=Decimal("0"),
    )
    duration_ms: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    fallback_provider: Mapped[str | None] = mapped_column(String(50), nullable=True)
    cache_hit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("idx_usage_user_created", "user_id", "created_at"),
    )


class AIBudgetConfig(Base, TimestampMixin):
    """
    Spend limit for a user over a budget period.
    Overrides the settings-level default limits.
    """

    __tablename__ = "ai_budget_config"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    period_type: Mapped[str] = mapped_column(String(20), nullable=False)
    limit_amount: Mapped[Decimal] = mapped_column(Numeric(20, 10), nullable=False)
    alert_threshold: Mapped[float] = mapped_column(Float, nullable=False, default=0.8)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    __table_args__ = (
        UniqueConstraint("user_id", "period_type", name="uq_budget_user_period"),
    )


class AIBudgetAlert(Base, TimestampMixin):
    """Budget threshold crossing, raised at most once per status per 24 hours."""

    __tablename__ = "ai_budget_alerts"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    period_type: Mapped[str] = mapped_column(String(20), nullable=False)
    alert_type: Mapped[str] = mapped_column(String(20), nullable=False)
    current_usage: Mapped[Decimal] = mapped_column(Numeric(20, 10), nullable=False)
    limit_amount: Mapped[Decimal] = mapped_column(Numeric(20, 10), nullable=False)
    percentage_used: Mapped[float] = mapped_column(Float, nullable=False)
    notified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("idx_alert_user_type_created", "user_id", "alert_type", "created_at"),
    )
