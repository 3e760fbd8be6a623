"""
API Router
==========
Main API router combining all endpoint modules.
"""

from fastapi import APIRouter

from gateway.api.endpoints import admin, completions, health, providers, usage

api_router = APIRouter()

# Include endpoint routers
api_router.include_router(health.router, tags=["Health"])
api_router.include_router(completions.router, prefix="/completions", tags=["Completions"])
api_router.include_router(providers.router, prefix="/providers", tags=["Providers"])
api_router.include_router(usage.router, prefix="/usage", tags=["Usage"])
api_router.include_router(admin.router, prefix="/admin", tags=["Admin"])
