"""
Core Building Blocks
====================
Fingerprinting, pricing, retries, deduplication, and the error taxonomy.
"""

from gateway.core.dedup import CoalescedResult, Deduplicator, PendingRequest
from gateway.core.fingerprint import fingerprint, normalize_request
from gateway.core.pricing import PricingEngine, get_pricing_engine
from gateway.core.retry import RetryHandler, RetryResult
from gateway.core.tasks import SideEffectQueue

__all__ = [
    "fingerprint",
    "normalize_request",
    "PricingEngine",
    "get_pricing_engine",
    "RetryHandler",
    "RetryResult",
    "Deduplicator",
    "PendingRequest",
    "CoalescedResult",
    "SideEffectQueue",
]
