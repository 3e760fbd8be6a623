"""
LLM Reliability Gateway
=======================
FastAPI application entry point.
"""

import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import make_asgi_app

from gateway import __version__
from gateway.api import api_router
from gateway.config import settings
from gateway.database import close_db, get_session_factory, init_db
from gateway.jobs.scheduler import JobScheduler
from gateway.services.orchestrator import build_orchestrator


def configure_logging() -> None:
    """Configure structured logging."""
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=settings.log_level)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if settings.log_format == "json"
            else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging()

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    logger.info("Starting LLM Reliability Gateway", env=settings.app_env)
    await init_db(create_tables=settings.database_url.startswith("sqlite"))
    logger.info("Database connected")

    orchestrator = build_orchestrator(settings, get_session_factory())
    app.state.orchestrator = orchestrator

    scheduler = None
    if settings.scheduler_enabled:
        scheduler = JobScheduler(orchestrator, settings)
        scheduler.setup()
        scheduler.start()

    yield

    # Shutdown
    logger.info("Shutting down LLM Reliability Gateway")
    if scheduler is not None:
        scheduler.stop()
    await orchestrator.aclose()
    await close_db()
    logger.info("Database disconnected")


# Create FastAPI application
app = FastAPI(
    title="LLM Reliability Gateway",
    description="Cached, deduplicated, retried and budgeted LLM completions",
    version=__version__,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if not settings.is_production else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount Prometheus metrics endpoint
if settings.metrics_enabled:
    metrics_app = make_asgi_app()
    app.mount("/metrics", metrics_app)

# Include API routes
app.include_router(api_router)


def run() -> None:
    """Run the application with uvicorn."""
    import uvicorn

    uvicorn.run(
        "gateway.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.app_debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
