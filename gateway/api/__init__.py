"""
HTTP API
========
FastAPI routers for the completion gateway.
"""

from gateway.api.router import api_router

__all__ = ["api_router"]
