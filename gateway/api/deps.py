"""
API Dependencies
================
Shared FastAPI dependencies.
"""

from fastapi import Request

from gateway.services.orchestrator import CompletionOrchestrator


def get_orchestrator(request: Request) -> CompletionOrchestrator:
    """The orchestrator created in the application lifespan."""
    return request.app.state.orchestrator
