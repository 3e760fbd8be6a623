"""
Scheduler Tests
===============
Tests for the maintenance job scheduler.
"""

from datetime import timedelta

import pytest
from sqlalchemy import func, select, update

from gateway.jobs import JobScheduler
from gateway.models.base import utc_now
from gateway.models.cache import AIRequestCache
from gateway.models.health import ProviderHealthSample
from gateway.schemas.completion import CompletionRequest
from tests.conftest import FakeProvider


@pytest.fixture
def orchestrator(make_orchestrator):
    return make_orchestrator(FakeProvider("openai"))


@pytest.fixture
def scheduler(orchestrator, test_settings) -> JobScheduler:
    return JobScheduler(orchestrator, test_settings)


class TestJobScheduler:
    """Tests for JobScheduler."""

    def test_setup_registers_jobs(self, scheduler):
        scheduler.setup()

        assert {job.id for job in scheduler.scheduler.get_jobs()} == {
            "cache_sweep",
            "dedup_sweep",
            "health_prune",
            "provider_check",
        }

    async def test_start_and_stop(self, scheduler):
        scheduler.setup()
        scheduler.start()
        assert scheduler.scheduler.running

        scheduler.stop()

    async def test_cache_sweep(self, scheduler, orchestrator, messages, session_factory):
        await orchestrator.complete(CompletionRequest(messages=messages))
        await orchestrator.cache.put("f" * 64, "old", 1)

        async with session_factory() as session:
            await session.execute(
                update(AIRequestCache)
                .where(AIRequestCache.request_hash == "f" * 64)
                .values(expires_at=utc_now() - timedelta(seconds=1))
            )
            await session.commit()

        await scheduler.run_cache_sweep()
        assert (await orchestrator.get_cache_stats()).total_entries == 1

    async def test_health_prune(self, scheduler, orchestrator, session_factory):
        async with session_factory() as session:
            session.add(ProviderHealthSample(
                provider="openai",
                is_success=True,
                created_at=utc_now() - timedelta(days=5),
            ))
            await session.commit()

        await scheduler.run_health_prune()

        async with session_factory() as session:
            remaining = await session.scalar(select(func.count(ProviderHealthSample.id)))
        assert remaining == 0

    async def test_provider_check(self, scheduler, orchestrator):
        await scheduler.run_provider_check()

        health = await orchestrator.get_provider_health()
        assert health["openai"].success_count == 1
        assert orchestrator.providers["openai"].checks == 1

    async def test_job_failures_are_logged_not_raised(self, scheduler, orchestrator):
        async def broken() -> int:
            raise RuntimeError("boom")

        orchestrator.clean_expired_cache = broken
        orchestrator.prune_health_samples = broken
        orchestrator.check_providers = broken

        await scheduler.run_cache_sweep()
        await scheduler.run_health_prune()
        await scheduler.run_dedup_sweep()
        await scheduler.run_provider_check()
