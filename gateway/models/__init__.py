"""
Database Models
===============
SQLAlchemy ORM models for the completion gateway.
"""

from gateway.models.base import Base
from gateway.models.cache import AIRequestCache
from gateway.models.health import ProviderHealthSample
from gateway.models.usage import AIBudgetAlert, AIBudgetConfig, AIUsageLog

__all__ = [
    "Base",
    "AIRequestCache",
    "ProviderHealthSample",
    "AIUsageLog",
    "AIBudgetConfig",
    "AIBudgetAlert",
]
