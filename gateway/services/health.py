"""
Provider Health Monitor
=======================
Records provider call outcomes and ranks providers over a rolling window.
"""

import asyncio
from collections.abc import Mapping, Sequence
from datetime import timedelta
from typing import Any

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gateway.database import STORE_ERRORS
from gateway.models.base import ensure_utc, utc_now
from gateway.models.health import ProviderHealthSample
from gateway.providers import ProviderCheck
from gateway.schemas.usage import ProviderHealthSummary

logger = structlog.get_logger()

MAX_CONSECUTIVE_FAILURES = 3
MIN_SAMPLES_FOR_RATE = 5
ERROR_RATE_CRITICAL = 0.5
ERROR_RATE_WARNING = 0.1
LATENCY_WARNING_MS = 2000
LATENCY_CRITICAL_MS = 5000


def summarize(provider: str, samples: Sequence[ProviderHealthSample]) -> ProviderHealthSummary:
    """Aggregate samples (oldest first) into a health summary."""
    successes = [s for s in samples if s.is_success]
    failures = [s for s in samples if not s.is_success]
    total = len(samples)
    error_rate = len(failures) / total if total else 0.0

    consecutive = 0
    for sample in reversed(samples):
        if sample.is_success:
            break
        consecutive += 1

    latencies = [s.latency_ms for s in successes if s.latency_ms is not None]
    avg_latency = sum(latencies) / len(latencies) if latencies else None
    slow = avg_latency is not None and (
        avg_latency >= LATENCY_WARNING_MS or latencies[-1] >= LATENCY_CRITICAL_MS
    )

    if consecutive >= MAX_CONSECUTIVE_FAILURES or (
        total >= MIN_SAMPLES_FOR_RATE and error_rate >= ERROR_RATE_CRITICAL
    ):
        status = "unhealthy"
    elif slow or (total >= MIN_SAMPLES_FOR_RATE and error_rate >= ERROR_RATE_WARNING):
        status = "degraded"
    else:
        status = "healthy"

    return ProviderHealthSummary(
        provider=provider,
        status=status,
        total_requests=total,
        success_count=len(successes),
        error_count=len(failures),
        error_rate=error_rate,
        avg_latency_ms=avg_latency,
        consecutive_failures=consecutive,
        last_success=ensure_utc(successes[-1].created_at) if successes else None,
        last_error=ensure_utc(failures[-1].created_at) if failures else None,
        last_error_message=failures[-1].error_message if failures else None,
    )


class ProviderHealthMonitor:
    """
    Health tracking backed by the append-only ``provider_health_samples`` table.

    Ranking is advisory: callers may still try an explicitly requested
    provider first.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        providers: Sequence[str] = (),
        window_seconds: int = 3600,
        retention_hours: int = 48,
        check_timeout: float = 10.0,
    ):
        self._session_factory = session_factory
        self.providers = list(providers)
        self.window = timedelta(seconds=window_seconds)
        self.retention = timedelta(hours=retention_hours)
        self.check_timeout = check_timeout

    async def record_health_check(
        self,
        provider: str,
        success: bool,
        latency_ms: int | None = None,
        error: str | None = None,
        error_type: str | None = None,
    ) -> None:
        try:
            async with self._session_factory() as session:
                session.add(ProviderHealthSample(
                    provider=provider,
                    is_success=success,
                    latency_ms=latency_ms,
                    error_type=error_type if not success else None,
                    error_message=error[:2000] if error and not success else None,
                ))
                await session.commit()
        except STORE_ERRORS as e:
            logger.warning("Failed to record health sample", provider=provider, error=str(e))
            return

        logger.debug(
            "Recorded health sample",
            provider=provider,
            success=success,
            latency_ms=latency_ms,
        )

    async def check_providers(self, providers: Mapping[str, Any]) -> list[ProviderCheck]:
        """
        Run an availability check against every provider that supports one and
        record each result as a health sample, so idle providers still get
        fresh samples in the window.
        """
        checkable = {
            name: provider for name, provider in providers.items()
            if hasattr(provider, "check_health")
        }
        results = await asyncio.gather(
            *(provider.check_health(timeout=self.check_timeout) for provider in checkable.values()),
            return_exceptions=True,
        )

        checks: list[ProviderCheck] = []
        for name, result in zip(checkable, results):
            if isinstance(result, Exception):
                logger.warning("Provider check raised", provider=name, error=str(result))
                continue
            await self.record_health_check(
                name,
                result.success,
                result.latency_ms,
                result.error,
                result.error_type,
            )
            logger.info(
                "Provider checked",
                provider=name,
                success=result.success,
                latency_ms=result.latency_ms,
            )
            checks.append(result)
        return checks

    async def _window_samples(
        self,
        providers: Sequence[str],
    ) -> dict[str, list[ProviderHealthSample]]:
        since = utc_now() - self.window
        async with self._session_factory() as session:
            result = await session.execute(
                select(ProviderHealthSample)
                .where(
                    ProviderHealthSample.provider.in_(list(providers)),
                    ProviderHealthSample.created_at >= since,
                )
                .order_by(ProviderHealthSample.created_at)
            )
            rows = result.scalars().all()

        samples: dict[str, list[ProviderHealthSample]] = {p: [] for p in providers}
        for row in rows:
            samples[row.provider].append(row)
        return samples

    async def get_best_provider(self, candidates: Sequence[str] | None = None) -> str | None:
        """
        Pick the provider with the best rolling success ratio.

        Ties go to lower average success latency, then to the earlier
        candidate. Providers without a success in the window rank last but
        remain eligible, so a recovered provider can be rediscovered.
        """
        candidates = list(candidates if candidates is not None else self.providers)
        if not candidates:
            return None

        try:
            samples = await self._window_samples(candidates)
        except STORE_ERRORS as e:
            logger.warning("Health lookup failed", error=str(e))
            return None

        def rank(item: tuple[int, str]) -> tuple:
            order, provider = item
            summary = summarize(provider, samples[provider])
            ratio = summary.success_count / summary.total_requests if summary.total_requests else 0.0
            latency = summary.avg_latency_ms if summary.avg_latency_ms is not None else float("inf")
            return (summary.success_count > 0, ratio, -latency, -order)

        _, best = max(enumerate(candidates), key=rank)
        return best

    async def get_provider_health(
        self,
        providers: Sequence[str] | None = None,
    ) -> dict[str, ProviderHealthSummary]:
        providers = list(providers if providers is not None else self.providers)
        try:
            samples = await self._window_samples(providers)
        except STORE_ERRORS as e:
            logger.warning("Health lookup failed", error=str(e))
            return {p: ProviderHealthSummary(provider=p) for p in providers}

        return {p: summarize(p, samples[p]) for p in providers}

    async def prune(self, retention: timedelta | None = None) -> int:
        """Delete samples older than the retention period."""
        cutoff = utc_now() - (retention or self.retention)
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    delete(ProviderHealthSample).where(ProviderHealthSample.created_at < cutoff)
                )
                await session.commit()
        except STORE_ERRORS as e:
            logger.error("Health prune failed", error=str(e))
            return 0

        count = result.rowcount or 0
        logger.info("Pruned health samples", count=count)
        return count
