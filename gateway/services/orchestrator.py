"""
Completion Orchestrator
=======================
Single entry point for LLM completions.

A request goes through the response cache, the budget gate, in-flight
deduplication, and then a retried call to the selected provider with
failover to the best remaining provider. Usage and health recording run as
side effects and never delay or fail the response.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gateway.config import Settings
from gateway.core.dedup import Deduplicator
from gateway.core.errors import (
    AggregateExhaustionError,
    BudgetExceededError,
    ProviderError,
    ProviderFailure,
    ProviderNotConfiguredError,
    describe_error,
    error_type_of,
)
from gateway.core.fingerprint import fingerprint
from gateway.core.metrics import COMPLETION_LATENCY, COMPLETIONS, PROVIDER_ATTEMPTS
from gateway.core.pricing import PricingEngine
from gateway.core.retry import RetryHandler, RetryResult
from gateway.core.tasks import SideEffectQueue
from gateway.providers import (
    CompletionOptions,
    CompletionProvider,
    ProviderCheck,
    ProviderCompletion,
    build_providers,
)
from gateway.schemas.completion import CompletionRequest, CompletionResponse, Message
from gateway.schemas.usage import (
    BudgetStatus,
    CacheStats,
    DedupStats,
    ProviderHealthSummary,
    UsageRecordCreate,
    UsageStats,
)
from gateway.services.cache import CacheStore
from gateway.services.health import ProviderHealthMonitor
from gateway.services.usage import PERIOD_TYPES, UsageTracker

logger = structlog.get_logger()

KNOWN_PROVIDERS = ("openai", "gemini")


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


class CompletionOrchestrator:
    """Composes caching, deduplication, retries, failover, and accounting."""

    def __init__(
        self,
        providers: Mapping[str, CompletionProvider],
        cache: CacheStore,
        deduplicator: Deduplicator,
        retry_handler: RetryHandler,
        health: ProviderHealthMonitor,
        usage: UsageTracker,
        settings: Settings,
        side_effects: SideEffectQueue | None = None,
    ):
        self.providers = dict(providers)
        self.cache = cache
        self.deduplicator = deduplicator
        self.retry_handler = retry_handler
        self.health = health
        self.usage = usage
        self.settings = settings
        self.side_effects = side_effects or SideEffectQueue()

    @property
    def provider_names(self) -> list[str]:
        """Configured providers, default provider first."""
        names = list(self.providers)
        if self.settings.default_provider in names:
            names.remove(self.settings.default_provider)
            names.insert(0, self.settings.default_provider)
        return names

    def default_model(self, provider: str) -> str:
        if provider in self.providers:
            return self.providers[provider].default_model
        return {
            "openai": self.settings.openai_model,
            "gemini": self.settings.gemini_model,
        }.get(provider, self.settings.openai_model)

    async def select_provider(self, requested: str | None = None) -> str:
        """Explicit choice, else the healthiest configured provider, else the default."""
        if requested:
            return requested
        best = await self.health.get_best_provider(self.provider_names)
        return best or self.settings.default_provider

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        start = time.perf_counter()
        provider = await self.select_provider(request.provider)
        model = request.model or self.default_model(provider)
        temperature = (
            request.temperature if request.temperature is not None
            else self.settings.default_temperature
        )
        max_tokens = request.max_tokens or self.settings.default_max_tokens
        fp = fingerprint(provider, model, request.messages, temperature, max_tokens)
        log = logger.bind(fingerprint=fp[:12], provider=provider, model=model)

        if request.use_cache:
            cached = await self.cache.get(fp)
            if cached is not None:
                response = CompletionResponse(
                    content=cached.content,
                    provider=cached.provider or provider,
                    model=cached.model or model,
                    tokens_used=cached.tokens_used,
                    cached=True,
                    total_duration_ms=_elapsed_ms(start),
                )
                if request.user_id:
                    self._queue_usage(request, response, status="cached")
                COMPLETIONS.labels(path="cached").inc()
                COMPLETION_LATENCY.observe(time.perf_counter() - start)
                log.info("Served from cache")
                return response

        await self._enforce_budget(request)

        options = CompletionOptions(
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            json_mode=request.json_mode,
        )

        async def execute() -> CompletionResponse:
            return await self._execute(request, provider, options, fp, start)

        if request.use_dedupe:
            coalesced = await self.deduplicator.coalesce(fp, execute)
            response, deduplicated = coalesced.result, coalesced.was_deduplicated
        else:
            response, deduplicated = await execute(), False

        if deduplicated:
            COMPLETIONS.labels(path="deduplicated").inc()
        COMPLETION_LATENCY.observe(time.perf_counter() - start)
        return response.model_copy(update={
            "deduplicated": deduplicated,
            "total_duration_ms": _elapsed_ms(start),
        })

    async def _enforce_budget(self, request: CompletionRequest) -> None:
        hard = (
            request.enforce_budget if request.enforce_budget is not None
            else self.settings.budget_hard_limit
        )
        if not hard or not request.user_id:
            return

        for period_type in PERIOD_TYPES:
            status = await self.usage.check_budget(request.user_id, period_type)
            if status.status == "exceeded":
                logger.warning(
                    "Completion blocked by budget",
                    user_id=request.user_id,
                    period=period_type,
                    percentage_used=round(status.percentage_used, 2),
                )
                raise BudgetExceededError(request.user_id, period_type, status.percentage_used)

    def _attempt_fn(
        self,
        provider_name: str,
        messages: list[Message],
        options: CompletionOptions,
    ) -> Callable[[], Awaitable[ProviderCompletion]]:
        """One provider call that records its own health sample."""

        async def attempt() -> ProviderCompletion:
            provider = self.providers.get(provider_name)
            if provider is None:
                raise ProviderNotConfiguredError(
                    f"Provider {provider_name} is not configured",
                    provider=provider_name,
                )

            attempt_start = time.perf_counter()
            try:
                completion = await provider.complete(messages, options)
            except asyncio.CancelledError:
                # Raised here when the per-attempt timeout fires
                self._queue_health(
                    provider_name, False, _elapsed_ms(attempt_start), "Attempt timed out", "timeout"
                )
                raise
            except Exception as e:
                self._queue_health(
                    provider_name, False, _elapsed_ms(attempt_start), describe_error(e), error_type_of(e)
                )
                raise

            self._queue_health(provider_name, True, _elapsed_ms(attempt_start))
            return completion

        return attempt

    async def _run_provider(
        self,
        provider_name: str,
        request: CompletionRequest,
        options: CompletionOptions,
    ) -> RetryResult[ProviderCompletion]:
        return await self.retry_handler.retry(
            self._attempt_fn(provider_name, request.messages, options),
            label=f"{provider_name} completion",
            max_attempts=None if request.use_retry else 1,
        )

    async def _select_fallback(self, exclude: str) -> str | None:
        remaining = [p for p in self.provider_names if p != exclude]
        if not remaining:
            return None
        return await self.health.get_best_provider(remaining) or remaining[0]

    async def _execute(
        self,
        request: CompletionRequest,
        primary: str,
        options: CompletionOptions,
        fp: str,
        start: float,
    ) -> CompletionResponse:
        """Retry on the primary, fail over once, then cache and account for the result."""
        failures: list[ProviderFailure] = []
        retry_attempts = 0
        provider_name, current_options = primary, options
        result = await self._run_provider(primary, request, options)
        retry_attempts += max(result.attempts - 1, 0)

        if not result.success:
            failures.append(ProviderFailure(primary, result.error_message or "unknown error", result.attempts))
            error = result.error
            if isinstance(error, ProviderError) and not error.failover_allowed:
                self._record_failure(request, primary, options, start, describe_error(error))
                raise error

            fallback = await self._select_fallback(primary) if self.settings.fallback_enabled else None
            if fallback is not None:
                logger.warning(
                    "Failing over to alternate provider",
                    primary=primary,
                    fallback=fallback,
                    attempts=result.attempts,
                )
                provider_name = fallback
                fallback_options = CompletionOptions(
                    model=self.default_model(fallback),
                    temperature=options.temperature,
                    max_tokens=options.max_tokens,
                    json_mode=options.json_mode,
                )
                current_options = fallback_options
                result = await self._run_provider(fallback, request, fallback_options)
                retry_attempts += max(result.attempts - 1, 0)
                if not result.success:
                    failures.append(ProviderFailure(fallback, result.error_message or "unknown error", result.attempts))
                    error = result.error
                    if isinstance(error, ProviderError) and not error.failover_allowed:
                        self._record_failure(request, fallback, fallback_options, start, describe_error(error))
                        raise error

        if not result.success:
            exhausted = AggregateExhaustionError(failures)
            self._record_failure(request, provider_name, current_options, start, str(exhausted))
            logger.error("All providers failed", fingerprint=fp[:12], failures=len(failures))
            raise exhausted

        completion = result.data
        fallback_used = provider_name != primary
        response = CompletionResponse(
            content=completion.content,
            provider=completion.provider,
            model=completion.model,
            tokens_used=completion.tokens_used,
            prompt_tokens=completion.prompt_tokens,
            completion_tokens=completion.completion_tokens,
            finish_reason=completion.finish_reason,
            fallback_used=fallback_used,
            retry_attempts=retry_attempts,
            total_duration_ms=_elapsed_ms(start),
        )

        if request.use_cache:
            await self.cache.put(
                fp,
                completion.content,
                completion.tokens_used,
                provider=completion.provider,
                model=completion.model,
            )
        if request.user_id:
            self._queue_usage(request, response, status="fallback" if fallback_used else "success")

        COMPLETIONS.labels(path="fallback" if fallback_used else "fresh").inc()
        logger.info(
            "Completion served",
            fingerprint=fp[:12],
            provider=completion.provider,
            model=completion.model,
            tokens=completion.tokens_used,
            retry_attempts=retry_attempts,
            fallback_used=fallback_used,
        )
        return response

    def _queue_health(
        self,
        provider: str,
        success: bool,
        latency_ms: int,
        error: str | None = None,
        error_type: str | None = None,
    ) -> None:
        PROVIDER_ATTEMPTS.labels(provider=provider, outcome="success" if success else "failure").inc()
        self.side_effects.submit(
            self.health.record_health_check(provider, success, latency_ms, error, error_type),
            label="health",
        )

    def _queue_usage(self, request: CompletionRequest, response: CompletionResponse, status: str) -> None:
        record = UsageRecordCreate(
            user_id=request.user_id,
            document_id=request.document_id,
            matter_id=request.matter_id,
            provider=response.provider,
            model=response.model,
            endpoint=request.endpoint,
            prompt_tokens=0 if status == "cached" else response.prompt_tokens,
            completion_tokens=0 if status == "cached" else response.completion_tokens,
            duration_ms=response.total_duration_ms,
            status=status,
            fallback_provider=response.provider if response.fallback_used else None,
            cache_hit=status == "cached",
        )
        self.side_effects.submit(self.usage.log_usage(record), label="usage")

    def _record_failure(
        self,
        request: CompletionRequest,
        provider: str,
        options: CompletionOptions,
        start: float,
        message: str,
    ) -> None:
        COMPLETIONS.labels(path="failed").inc()
        if not request.user_id:
            return
        record = UsageRecordCreate(
            user_id=request.user_id,
            document_id=request.document_id,
            matter_id=request.matter_id,
            provider=provider,
            model=options.model or self.default_model(provider),
            endpoint=request.endpoint,
            duration_ms=_elapsed_ms(start),
            status="error",
            error_message=message[:2000],
        )
        self.side_effects.submit(self.usage.log_usage(record), label="usage")

    async def generate_text(
        self,
        prompt: str,
        system_prompt: str | None = None,
        **kwargs: Any,
    ) -> str:
        """Convenience wrapper returning only the completion text."""
        messages = []
        if system_prompt:
            messages.append(Message(role="system", content=system_prompt))
        messages.append(Message(role="user", content=prompt))
        response = await self.complete(CompletionRequest(messages=messages, **kwargs))
        return response.content

    # Maintenance

    async def clean_expired_cache(self) -> int:
        return await self.cache.sweep_expired()

    def clean_stale_dedup_entries(self) -> int:
        return self.deduplicator.clean_stale()

    async def get_provider_health(self) -> dict[str, ProviderHealthSummary]:
        return await self.health.get_provider_health(self.provider_names or list(KNOWN_PROVIDERS))

    async def get_best_provider(self) -> str | None:
        if not self.provider_names:
            return None
        return await self.health.get_best_provider(self.provider_names)

    async def check_providers(self) -> list[ProviderCheck]:
        """Check every configured provider out of band and record the results."""
        return await self.health.check_providers(self.providers)

    async def prune_health_samples(self) -> int:
        return await self.health.prune()

    async def get_user_usage(self, user_id: str, days: int = 30) -> UsageStats:
        return await self.usage.get_user_usage(user_id, days)

    async def check_budget(self, user_id: str, period_type: str = "monthly") -> BudgetStatus:
        return await self.usage.check_budget(user_id, period_type)

    async def get_cache_stats(self) -> CacheStats:
        return await self.cache.stats()

    def get_dedupe_stats(self) -> DedupStats:
        return DedupStats(**self.deduplicator.stats())

    async def clear_all(self) -> dict[str, int]:
        """Admin reset of the cache and the in-flight table."""
        cache_cleared = await self.cache.clear()
        dedupe_cleared = self.deduplicator.clear()
        return {"cache_cleared": cache_cleared, "dedupe_cleared": dedupe_cleared}

    async def aclose(self) -> None:
        """Finish queued side effects and close provider clients."""
        await self.side_effects.drain()
        for provider in self.providers.values():
            await provider.aclose()


def build_orchestrator(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    providers: Mapping[str, CompletionProvider] | None = None,
    pricing: PricingEngine | None = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> CompletionOrchestrator:
    """Wire an orchestrator and its components from settings."""
    providers = build_providers(settings) if providers is None else providers
    return CompletionOrchestrator(
        providers=providers,
        cache=CacheStore(session_factory, default_ttl=settings.cache_ttl_seconds),
        deduplicator=Deduplicator(timeout_seconds=settings.dedup_timeout_seconds),
        retry_handler=RetryHandler(
            max_attempts=settings.retry_max_attempts,
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
            attempt_timeout=settings.retry_attempt_timeout,
            sleep=sleep,
        ),
        health=ProviderHealthMonitor(
            session_factory,
            providers=list(providers),
            window_seconds=settings.health_window_seconds,
            retention_hours=settings.health_retention_hours,
            check_timeout=settings.health_check_timeout,
        ),
        usage=UsageTracker(session_factory, pricing=pricing, settings=settings),
        settings=settings,
    )
