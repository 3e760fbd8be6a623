"""
Background Jobs
================
Scheduled maintenance for the completion gateway.
"""

from gateway.jobs.scheduler import JobScheduler

__all__ = ["JobScheduler"]
