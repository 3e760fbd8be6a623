"""
Error Taxonomy
==============
Exceptions raised by providers and the completion orchestrator.
"""

import asyncio
from dataclasses import dataclass

import httpx


class GatewayError(Exception):
    """Base class for all gateway errors."""


class ProviderError(GatewayError):
    """
    A provider call failed.

    ``retryable`` controls whether the retry handler tries again;
    ``failover_allowed`` controls whether the orchestrator may switch provider.
    """

    retryable: bool = False
    failover_allowed: bool = True
    error_type: str = "provider_error"

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.status_code = status_code


class TransientProviderError(ProviderError):
    """Network failure, 5xx or rate limit. Retryable."""

    retryable = True
    error_type = "transient"


class PermanentRequestError(ProviderError):
    """Malformed request. Not retryable and not worth another provider."""

    failover_allowed = False
    error_type = "invalid_request"


class ProviderAuthError(PermanentRequestError):
    """Credentials rejected. Another provider has its own credentials."""

    failover_allowed = True
    error_type = "auth"


class ProviderNotConfiguredError(PermanentRequestError):
    """The requested provider has no client configured."""

    failover_allowed = True
    error_type = "not_configured"


class BudgetExceededError(GatewayError):
    """Spend limit reached while budget enforcement is hard."""

    def __init__(self, user_id: str, period_type: str, percentage_used: float):
        super().__init__(
            f"Budget exceeded for user {user_id} ({period_type}): "
            f"{percentage_used:.1f}% used"
        )
        self.user_id = user_id
        self.period_type = period_type
        self.percentage_used = percentage_used


@dataclass(frozen=True)
class ProviderFailure:
    """Last error observed for one provider during a completion."""

    provider: str
    error: str
    attempts: int


class AggregateExhaustionError(GatewayError):
    """Every provider tried for a completion exhausted its retries."""

    def __init__(self, failures: list[ProviderFailure]):
        summary = "; ".join(
            f"{f.provider} after {f.attempts} attempt(s): {f.error}" for f in failures
        )
        super().__init__(f"All providers failed: {summary}")
        self.failures = failures


def classify_http_status(
    status_code: int,
    message: str,
    provider: str,
) -> ProviderError:
    """Map an upstream HTTP status to the matching provider error."""
    if status_code in (408, 409, 429) or status_code >= 500:
        return TransientProviderError(message, provider=provider, status_code=status_code)
    if status_code in (401, 403):
        return ProviderAuthError(message, provider=provider, status_code=status_code)
    return PermanentRequestError(message, provider=provider, status_code=status_code)


def is_retryable(error: BaseException) -> bool:
    """Default retry predicate."""
    if isinstance(error, ProviderError):
        return error.retryable
    return isinstance(error, (asyncio.TimeoutError, TimeoutError, httpx.TransportError))


def error_type_of(error: BaseException) -> str:
    if isinstance(error, ProviderError):
        return error.error_type
    if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
        return "timeout"
    if isinstance(error, httpx.TransportError):
        return "connection_error"
    return "unknown"


def describe_error(error: BaseException) -> str:
    message = str(error)
    return message or type(error).__name__
