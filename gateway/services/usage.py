"""
Usage Tracker
=============
Records completion usage, estimates cost, and evaluates spend budgets.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal

import structlog
from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gateway.config import Settings, settings as default_settings
from gateway.core.pricing import PricingEngine, get_pricing_engine
from gateway.database import STORE_ERRORS
from gateway.models.base import utc_now
from gateway.models.usage import AIBudgetAlert, AIBudgetConfig, AIUsageLog
from gateway.schemas.usage import (
    BudgetStatus,
    UsageRecordCreate,
    UsageStats,
    UsageTrendItem,
)

logger = structlog.get_logger()

PERIOD_TYPES = ("daily", "weekly", "monthly")
ALERT_DEDUP_WINDOW = timedelta(hours=24)


def period_start(period_type: str, now: datetime | None = None) -> datetime:
    """Start of the current budget period in UTC. Weeks start on Monday."""
    now = now or utc_now()
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period_type == "daily":
        return midnight
    if period_type == "weekly":
        return midnight - timedelta(days=midnight.weekday())
    if period_type == "monthly":
        return midnight.replace(day=1)
    raise ValueError(f"Unknown budget period: {period_type}")


def budget_state(percentage_used: float, alert_threshold: float, critical_threshold: float) -> str:
    if percentage_used >= 100:
        return "exceeded"
    if percentage_used >= critical_threshold * 100:
        return "critical"
    if percentage_used >= alert_threshold * 100:
        return "warning"
    return "ok"


class UsageTracker:
    """Usage log, cost accounting, and budget evaluation."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        pricing: PricingEngine | None = None,
        settings: Settings | None = None,
    ):
        self._session_factory = session_factory
        self.pricing = pricing or get_pricing_engine()
        self.settings = settings or default_settings

    async def log_usage(self, record: UsageRecordCreate) -> AIUsageLog | None:
        """
        Store a usage record with its estimated cost, then re-evaluate the
        user's budgets. Failures are logged and never raised.
        """
        if record.status == "cached" or record.cache_hit:
            cost = Decimal("0")
        else:
            cost = self.pricing.calculate_cost(
                provider=record.provider,
                model=record.model,
                prompt_tokens=record.prompt_tokens,
                completion_tokens=record.completion_tokens,
            )

        usage = AIUsageLog(
            user_id=record.user_id,
            document_id=record.document_id,
            matter_id=record.matter_id,
            provider=record.provider,
            model=record.model,
            endpoint=record.endpoint,
            prompt_tokens=record.prompt_tokens,
            completion_tokens=record.completion_tokens,
            total_tokens=record.prompt_tokens + record.completion_tokens,
            estimated_cost=cost,
            duration_ms=record.duration_ms,
            status=record.status,
            error_message=record.error_message,
            fallback_provider=record.fallback_provider,
            cache_hit=record.cache_hit or record.status == "cached",
        )

        try:
            async with self._session_factory() as session:
                session.add(usage)
                await session.commit()
        except STORE_ERRORS as e:
            logger.error("Failed to log usage", user_id=record.user_id, error=str(e))
            return None

        logger.info(
            "Logged usage",
            user_id=record.user_id,
            provider=record.provider,
            model=record.model,
            status=record.status,
            tokens=usage.total_tokens,
            cost=float(cost),
        )

        await self.check_budget_and_alert(record.user_id)
        return usage

    def _stats_query(self, since: datetime, user_id: str | None = None):
        stmt = select(
            func.count(AIUsageLog.id).label("total_requests"),
            func.sum(AIUsageLog.total_tokens).label("total_tokens"),
            func.sum(AIUsageLog.estimated_cost).label("total_cost"),
            func.sum(case((AIUsageLog.status == "success", 1), else_=0)).label("success_count"),
            func.sum(case((AIUsageLog.status == "error", 1), else_=0)).label("error_count"),
            func.sum(case((AIUsageLog.status == "fallback", 1), else_=0)).label("fallback_count"),
            func.sum(case((AIUsageLog.cache_hit.is_(True), 1), else_=0)).label("cache_hits"),
            func.avg(AIUsageLog.duration_ms).label("avg_duration_ms"),
        ).where(AIUsageLog.created_at >= since)
        if user_id is not None:
            stmt = stmt.where(AIUsageLog.user_id == user_id)
        return stmt

    async def _get_stats(self, days: int, user_id: str | None = None) -> UsageStats:
        since = utc_now() - timedelta(days=days)
        by_provider = (
            select(
                AIUsageLog.provider,
                func.count(AIUsageLog.id).label("requests"),
                func.sum(AIUsageLog.estimated_cost).label("cost"),
            )
            .where(AIUsageLog.created_at >= since)
            .group_by(AIUsageLog.provider)
        )
        if user_id is not None:
            by_provider = by_provider.where(AIUsageLog.user_id == user_id)

        async with self._session_factory() as session:
            row = (await session.execute(self._stats_query(since, user_id))).one()
            provider_rows = (await session.execute(by_provider)).all()

        return UsageStats(
            user_id=user_id,
            days=days,
            total_requests=row.total_requests or 0,
            total_tokens=row.total_tokens or 0,
            total_cost=Decimal(str(row.total_cost or 0)),
            success_count=row.success_count or 0,
            error_count=row.error_count or 0,
            fallback_count=row.fallback_count or 0,
            cache_hits=row.cache_hits or 0,
            avg_duration_ms=float(row.avg_duration_ms or 0),
            cost_by_provider={r.provider: Decimal(str(r.cost or 0)) for r in provider_rows},
            requests_by_provider={r.provider: r.requests for r in provider_rows},
        )

    async def get_user_usage(self, user_id: str, days: int = 30) -> UsageStats:
        """Usage for one user over the trailing ``days``."""
        return await self._get_stats(days, user_id)

    async def get_total_usage(self, days: int = 30) -> UsageStats:
        """Firm-wide usage over the trailing ``days``."""
        return await self._get_stats(days)

    async def get_usage_trends(self, user_id: str | None = None, days: int = 30) -> list[UsageTrendItem]:
        """Per-day usage, oldest first."""
        day = func.date(AIUsageLog.created_at)
        stmt = (
            select(
                day.label("day"),
                func.count(AIUsageLog.id).label("requests"),
                func.sum(AIUsageLog.total_tokens).label("tokens"),
                func.sum(AIUsageLog.estimated_cost).label("cost"),
            )
            .where(AIUsageLog.created_at >= utc_now() - timedelta(days=days))
            .group_by(day)
            .order_by(day)
        )
        if user_id is not None:
            stmt = stmt.where(AIUsageLog.user_id == user_id)

        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).all()

        return [
            UsageTrendItem(
                date=r.day if isinstance(r.day, date) else date.fromisoformat(str(r.day)),
                total_requests=r.requests,
                total_tokens=r.tokens or 0,
                total_cost=Decimal(str(r.cost or 0)),
            )
            for r in rows
        ]

    async def _resolve_budget(
        self,
        session: AsyncSession,
        user_id: str,
        period_type: str,
    ) -> tuple[Decimal | None, float]:
        """Active limit and alert threshold; a stored config overrides settings."""
        result = await session.execute(
            select(AIBudgetConfig).where(
                AIBudgetConfig.user_id == user_id,
                AIBudgetConfig.period_type == period_type,
                AIBudgetConfig.is_active.is_(True),
            )
        )
        config = result.scalar_one_or_none()
        if config is not None:
            return Decimal(str(config.limit_amount)), config.alert_threshold

        default_limit = self.settings.budget_limits.get(period_type)
        if default_limit is None:
            return None, self.settings.budget_alert_threshold
        return Decimal(str(default_limit)), self.settings.budget_alert_threshold

    async def check_budget(self, user_id: str, period_type: str = "monthly") -> BudgetStatus:
        """
        Spend against the user's budget for the current period.
        Users without a budget are unlimited and always ``ok``.
        """
        start = period_start(period_type)
        try:
            async with self._session_factory() as session:
                limit, threshold = await self._resolve_budget(session, user_id, period_type)
                if limit is None:
                    return BudgetStatus(
                        user_id=user_id,
                        period_type=period_type,
                        alert_threshold=threshold,
                        period_start=start,
                    )

                result = await session.execute(
                    select(func.sum(AIUsageLog.estimated_cost)).where(
                        AIUsageLog.user_id == user_id,
                        AIUsageLog.created_at >= start,
                    )
                )
                current = Decimal(str(result.scalar() or 0))
        except STORE_ERRORS as e:
            logger.warning("Budget check failed", user_id=user_id, error=str(e))
            return BudgetStatus(
                user_id=user_id,
                period_type=period_type,
                alert_threshold=self.settings.budget_alert_threshold,
                period_start=start,
            )

        percentage = float(current / limit * 100) if limit > 0 else 100.0
        return BudgetStatus(
            user_id=user_id,
            period_type=period_type,
            limit=limit,
            current_usage=current,
            percentage_used=percentage,
            remaining=max(Decimal("0"), limit - current),
            alert_threshold=threshold,
            status=budget_state(percentage, threshold, self.settings.budget_critical_threshold),
            period_start=start,
        )

    async def check_budget_and_alert(self, user_id: str) -> list[AIBudgetAlert]:
        """Evaluate every period and raise at most one alert per status per 24 hours."""
        alerts = []
        for period_type in PERIOD_TYPES:
            status = await self.check_budget(user_id, period_type)
            if status.limit is None or status.status == "ok":
                continue
            alert = await self._create_alert(status)
            if alert is not None:
                alerts.append(alert)
        return alerts

    async def _create_alert(self, status: BudgetStatus) -> AIBudgetAlert | None:
        try:
            async with self._session_factory() as session:
                recent = await session.execute(
                    select(AIBudgetAlert.id).where(
                        AIBudgetAlert.user_id == status.user_id,
                        AIBudgetAlert.period_type == status.period_type,
                        AIBudgetAlert.alert_type == status.status,
                        AIBudgetAlert.created_at > utc_now() - ALERT_DEDUP_WINDOW,
                    ).limit(1)
                )
                if recent.first() is not None:
                    return None

                alert = AIBudgetAlert(
                    user_id=status.user_id,
                    period_type=status.period_type,
                    alert_type=status.status,
                    current_usage=status.current_usage,
                    limit_amount=status.limit,
                    percentage_used=status.percentage_used,
                    notified=False,
                )
                session.add(alert)
                await session.commit()
        except STORE_ERRORS as e:
            logger.error("Failed to create budget alert", user_id=status.user_id, error=str(e))
            return None

        logger.warning(
            "Budget alert created",
            user_id=status.user_id,
            period=status.period_type,
            status=status.status,
            percentage_used=round(status.percentage_used, 2),
            remaining=float(status.remaining or 0),
        )
        return alert

    async def set_budget(
        self,
        user_id: str,
        period_type: str,
        limit_amount: Decimal,
        alert_threshold: float | None = None,
    ) -> AIBudgetConfig:
        """Create or replace a user's budget for a period."""
        if period_type not in PERIOD_TYPES:
            raise ValueError(f"Unknown budget period: {period_type}")

        async with self._session_factory() as session:
            result = await session.execute(
                select(AIBudgetConfig).where(
                    AIBudgetConfig.user_id == user_id,
                    AIBudgetConfig.period_type == period_type,
                )
            )
            config = result.scalar_one_or_none()
            threshold = (
                self.settings.budget_alert_threshold if alert_threshold is None else alert_threshold
            )
            if config is None:
                config = AIBudgetConfig(
                    user_id=user_id,
                    period_type=period_type,
                    limit_amount=limit_amount,
                    alert_threshold=threshold,
                    is_active=True,
                )
                session.add(config)
            else:
                config.limit_amount = limit_amount
                config.alert_threshold = threshold
                config.is_active = True
            await session.commit()

        logger.info(
            "Budget set",
            user_id=user_id,
            period=period_type,
            limit=float(limit_amount),
            alert_threshold=threshold,
        )
        return config

    async def get_alerts(self, user_id: str, limit: int = 50) -> list[AIBudgetAlert]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(AIBudgetAlert)
                .where(AIBudgetAlert.user_id == user_id)
                .order_by(AIBudgetAlert.created_at.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

