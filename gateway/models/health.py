"""
Provider Health Models
======================
Append-only log of provider call outcomes.
"""

from uuid import UUID, uuid4

from sqlalchemy import BigInteger, Boolean, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from gateway.models.base import Base, TimestampMixin


class ProviderHealthSample(Base, TimestampMixin):
    """
    A single provider call outcome.
    Never updated after insert; pruned by retention.
    """

    __tablename__ = "provider_health_samples"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    is_success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    latency_ms: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    error_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("idx_health_provider_created", "provider", "created_at"),
    )
