"""Initial schema

Revision ID: 20261017_000001
Revises:
Create Date: 2026-10-17 00:00:01

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "20261017_000001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # Create ai_request_cache table
    op.create_table(
        "ai_request_cache",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("request_hash", sa.String(64), nullable=False),
        sa.Column("provider", sa.String(50), nullable=False),
        sa.Column("model", sa.String(255), nullable=False),
        sa.Column("response_content", sa.Text(), nullable=False),
        sa.Column("tokens_used", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("hit_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("request_hash"),
    )
    op.create_index("idx_cache_expires_at", "ai_request_cache", ["expires_at"])
    op.create_index("ix_ai_request_cache_created_at", "ai_request_cache", ["created_at"])

    # Create provider_health_samples table
    op.create_table(
        "provider_health_samples",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("provider", sa.String(50), nullable=False),
        sa.Column("is_success", sa.Boolean(), nullable=False),
        sa.Column("latency_ms", sa.BigInteger(), nullable=True),
        sa.Column("error_type", sa.String(100), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_health_provider_created", "provider_health_samples", ["provider", "created_at"]
    )
    op.create_index(
        "ix_provider_health_samples_created_at", "provider_health_samples", ["created_at"]
    )

    # Create ai_usage_log table
    op.create_table(
        "ai_usage_log",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("document_id", sa.String(255), nullable=True),
        sa.Column("matter_id", sa.String(255), nullable=True),
        sa.Column("provider", sa.String(50), nullable=False),
        sa.Column("model", sa.String(255), nullable=False),
        sa.Column("endpoint", sa.String(100), nullable=False, server_default="completion"),
        sa.Column("prompt_tokens", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("completion_tokens", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("total_tokens", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("estimated_cost", sa.Numeric(20, 10), nullable=False, server_default="0"),
        sa.Column("duration_ms", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("fallback_provider", sa.String(50), nullable=True),
        sa.Column("cache_hit", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ai_usage_log_user_id", "ai_usage_log", ["user_id"])
    op.create_index("ix_ai_usage_log_provider", "ai_usage_log", ["provider"])
    op.create_index("ix_ai_usage_log_created_at", "ai_usage_log", ["created_at"])
    op.create_index("idx_usage_user_created", "ai_usage_log", ["user_id", "created_at"])

    # Create ai_budget_config table
    op.create_table(
        "ai_budget_config",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("period_type", sa.String(20), nullable=False),
        sa.Column("limit_amount", sa.Numeric(20, 10), nullable=False),
        sa.Column("alert_threshold", sa.Float(), nullable=False, server_default="0.8"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "period_type", name="uq_budget_user_period"),
    )
    op.create_index("ix_ai_budget_config_created_at", "ai_budget_config", ["created_at"])

    # Create ai_budget_alerts table
    op.create_table(
        "ai_budget_alerts",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("period_type", sa.String(20), nullable=False),
        sa.Column("alert_type", sa.String(20), nullable=False),
        sa.Column("current_usage", sa.Numeric(20, 10), nullable=False),
        sa.Column("limit_amount", sa.Numeric(20, 10), nullable=False),
        sa.Column("percentage_used", sa.Float(), nullable=False),
        sa.Column("notified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ai_budget_alerts_created_at", "ai_budget_alerts", ["created_at"])
    op.create_index(
        "idx_alert_user_type_created", "ai_budget_alerts", ["user_id", "alert_type", "created_at"]
    )


def downgrade() -> None:
    op.drop_table("ai_budget_alerts")
    op.drop_table("ai_budget_config")
    op.drop_table("ai_usage_log")
    op.drop_table("provider_health_samples")
    op.drop_table("ai_request_cache")
