"""
Test Configuration
==================
Pytest fixtures for the LLM Reliability Gateway tests.
"""

import asyncio
import os
from collections.abc import AsyncGenerator, Callable
from typing import Any

# Configure the app for tests BEFORE importing it
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["LOG_FORMAT"] = "console"

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from gateway.config import Settings
from gateway.core.pricing import PricingEngine
from gateway.database import create_engine, create_session_factory, get_session
from gateway.main import app
from gateway.models.base import Base
from gateway.providers import CompletionOptions, ProviderCheck, ProviderCompletion
from gateway.services.orchestrator import CompletionOrchestrator, build_orchestrator

# Flat, easy-to-check prices: $1 per 1K prompt tokens, $2 per 1K completion tokens
TEST_PRICING = {
    "defaults": {
        "openai": {"input_per_1k": 1.0, "output_per_1k": 2.0},
        "gemini": {"input_per_1k": 1.0, "output_per_1k": 2.0},
    },
    "openai": {
        "gpt-4o-mini": {"input_per_1k": 1.0, "output_per_1k": 2.0},
        "gpt-4o": {"input_per_1k": 2.5, "output_per_1k": 10.0},
    },
    "gemini": {
        "gemini-1.5-flash": {"input_per_1k": 1.0, "output_per_1k": 2.0},
    },
}


class FakeProvider:
    """
    Scripted ``CompletionProvider``.

    Each call consumes the next outcome: a string is returned as content, an
    exception is raised. With no outcomes left every call succeeds.
    """

    def __init__(
        self,
        name: str,
        outcomes: list[Any] | None = None,
        default_model: str | None = None,
        gate: asyncio.Event | None = None,
        available: bool = True,
        check_latency_ms: int = 50,
    ):
        self.name = name
        self.default_model = default_model or {
            "openai": "gpt-4o-mini",
            "gemini": "gemini-1.5-flash",
        }.get(name, f"{name}-model")
        self.outcomes = list(outcomes or [])
        self.gate = gate
        self.calls: list[CompletionOptions] = []
        self.closed = False
        self.available = available
        self.check_latency_ms = check_latency_ms
        self.checks = 0

    async def complete(self, messages, options: CompletionOptions) -> ProviderCompletion:
        self.calls.append(options)
        if self.gate is not None:
            await self.gate.wait()

        outcome = self.outcomes.pop(0) if self.outcomes else f"{self.name} answer"
        if isinstance(outcome, BaseException):
            raise outcome

        return ProviderCompletion(
            content=outcome,
            model=options.model or self.default_model,
            provider=self.name,
            tokens_used=300,
            prompt_tokens=100,
            completion_tokens=200,
            finish_reason="stop",
        )

    async def check_health(self, timeout: float = 10.0) -> ProviderCheck:
        self.checks += 1
        if self.available:
            return ProviderCheck(self.name, True, self.check_latency_ms)
        return ProviderCheck(self.name, False, self.check_latency_ms, "HTTP 503", "transient")

    async def aclose(self) -> None:
        self.closed = True


class BrokenSession:
    """Session stand-in whose every use fails like an unreachable database."""

    def __init__(self, error: BaseException | None = None):
        self.error = error or OperationalError("SELECT 1", {}, Exception("database unavailable"))

    async def __aenter__(self):
        raise self.error

    async def __aexit__(self, *exc_info) -> bool:
        return False


def broken_session_factory() -> BrokenSession:
    return BrokenSession()


def refused_session_factory() -> BrokenSession:
    """asyncpg surfaces a refused connection as a bare OSError."""
    return BrokenSession(ConnectionRefusedError(111, "Connect call failed"))


@pytest.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite so concurrent sessions get their own connections."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'gateway.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest.fixture
def pricing() -> PricingEngine:
    return PricingEngine(pricing_data=TEST_PRICING)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        database_url="sqlite+aiosqlite:///:memory:",
        default_provider="openai",
        retry_max_attempts=3,
        retry_base_delay=1.0,
        retry_max_delay=16.0,
        retry_attempt_timeout=5.0,
        scheduler_enabled=False,
        budget_limits={},
    )


@pytest.fixture
def sleeps() -> list[float]:
    """Backoff delays requested by retry handlers built from ``recording_sleep``."""
    return []


@pytest.fixture
def recording_sleep(sleeps: list[float]) -> Callable:
    async def sleep(delay: float) -> None:
        sleeps.append(delay)

    return sleep


@pytest.fixture
async def make_orchestrator(
    session_factory,
    pricing,
    test_settings,
    recording_sleep,
) -> AsyncGenerator[Callable[..., CompletionOrchestrator], None]:
    """
    Build orchestrators around fake providers, with optional settings overrides.
    Queued side effects are drained before the database goes away.
    """
    built: list[CompletionOrchestrator] = []

    def factory(*providers: FakeProvider, **overrides: Any) -> CompletionOrchestrator:
        settings = test_settings.model_copy(update=overrides) if overrides else test_settings
        orchestrator = build_orchestrator(
            settings,
            session_factory,
            providers={p.name: p for p in providers},
            pricing=pricing,
            sleep=recording_sleep,
        )
        built.append(orchestrator)
        return orchestrator

    yield factory

    for orchestrator in built:
        await orchestrator.side_effects.drain()


@pytest.fixture
def messages() -> list[dict[str, str]]:
    return [
        {"role": "system", "content": "You are a contract analyst."},
        {"role": "user", "content": "Summarize the indemnification clause."},
    ]


@pytest.fixture
def openai_provider() -> FakeProvider:
    return FakeProvider("openai")


@pytest.fixture
def gemini_provider() -> FakeProvider:
    return FakeProvider("gemini")


@pytest.fixture
async def client(
    make_orchestrator,
    session_factory,
    openai_provider,
    gemini_provider,
) -> AsyncGenerator[AsyncClient, None]:
    """API client wired to an orchestrator over fake providers."""
    orchestrator = make_orchestrator(openai_provider, gemini_provider)

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.state.orchestrator = orchestrator
    app.dependency_overrides[get_session] = override_get_session

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()
