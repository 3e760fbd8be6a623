"""
Job Scheduler
=============
APScheduler-based housekeeping for the cache, in-flight table, and provider health.
"""

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
import structlog

from gateway.config import Settings
from gateway.services.orchestrator import CompletionOrchestrator

logger = structlog.get_logger()


class JobScheduler:
    """
    Manages scheduled maintenance jobs for a running orchestrator.
    """

    def __init__(self, orchestrator: CompletionOrchestrator, settings: Settings):
        self.orchestrator = orchestrator
        self.settings = settings
        self.scheduler = AsyncIOScheduler(timezone="UTC")

    async def run_cache_sweep(self) -> None:
        """Remove expired cache entries."""
        try:
            count = await self.orchestrator.clean_expired_cache()
            logger.info("Cache sweep completed", removed=count)
        except Exception as e:
            logger.error("Cache sweep failed", error=str(e))

    async def run_dedup_sweep(self) -> None:
        """Clear in-flight entries past the safety-net timeout."""
        try:
            count = self.orchestrator.clean_stale_dedup_entries()
            if count:
                logger.info("Dedup sweep completed", removed=count)
        except Exception as e:
            logger.error("Dedup sweep failed", error=str(e))

    async def run_health_prune(self) -> None:
        """Delete health samples past retention."""
        try:
            count = await self.orchestrator.prune_health_samples()
            logger.info("Health prune completed", removed=count)
        except Exception as e:
            logger.error("Health prune failed", error=str(e))

    async def run_provider_check(self) -> None:
        """Check provider availability so idle providers keep fresh health samples."""
        try:
            checks = await self.orchestrator.check_providers()
            logger.info(
                "Provider check completed",
                checked=len(checks),
                failed=sum(not c.success for c in checks),
            )
        except Exception as e:
            logger.error("Provider check failed", error=str(e))

    def setup(self) -> None:
        """Configure scheduled jobs."""
        self.scheduler.add_job(
            self.run_cache_sweep,
            IntervalTrigger(minutes=self.settings.cache_sweep_minutes),
            id="cache_sweep",
            name="Expired Cache Sweep",
            replace_existing=True,
        )

        self.scheduler.add_job(
            self.run_dedup_sweep,
            IntervalTrigger(seconds=self.settings.dedup_sweep_seconds),
            id="dedup_sweep",
            name="Stale In-Flight Sweep",
            replace_existing=True,
        )

        self.scheduler.add_job(
            self.run_provider_check,
            IntervalTrigger(minutes=self.settings.health_check_minutes),
            id="provider_check",
            name="Provider Availability Check",
            replace_existing=True,
        )

        # Daily at the configured hour (default 3 AM UTC)
        self.scheduler.add_job(
            self.run_health_prune,
            CronTrigger(hour=self.settings.health_prune_hour, minute=0),
            id="health_prune",
            name="Health Sample Prune",
            replace_existing=True,
        )

        logger.info(
            "Scheduler configured",
            cache_sweep_minutes=self.settings.cache_sweep_minutes,
            dedup_sweep_seconds=self.settings.dedup_sweep_seconds,
            health_prune_hour=self.settings.health_prune_hour,
            health_check_minutes=self.settings.health_check_minutes,
        )

    def start(self) -> None:
        """Start the scheduler."""
        self.scheduler.start()
        logger.info("Scheduler started")

    def stop(self) -> None:
        """Stop the scheduler."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
