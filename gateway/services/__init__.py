"""
Business Services
=================
Persistent components and the completion orchestrator.
"""

from gateway.services.cache import CachedResponse, CacheStore
from gateway.services.health import ProviderHealthMonitor
from gateway.services.orchestrator import CompletionOrchestrator, build_orchestrator
from gateway.services.usage import UsageTracker

__all__ = [
    "CacheStore",
    "CachedResponse",
    "ProviderHealthMonitor",
    "UsageTracker",
    "CompletionOrchestrator",
    "build_orchestrator",
]
