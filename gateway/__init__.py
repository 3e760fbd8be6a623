"""
LLM Reliability Gateway
=======================
Caching, deduplication, retries, failover, and budgets for LLM completions.
"""

__version__ = "1.0.0"
