"""
Provider Interface
==================
The completion capability every LLM vendor client implements, and the
tagged configuration variants used to build them.
"""

import time
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Annotated, Any, Literal, Protocol, Union, runtime_checkable

import httpx
from pydantic import BaseModel, Field

from gateway.core.errors import ProviderError, classify_http_status, describe_error, error_type_of

HEALTH_CHECK_TIMEOUT = 10.0


@dataclass(frozen=True)
class CompletionOptions:
    """Per-call generation options."""

    model: str | None = None
    temperature: float = 0.7
    max_tokens: int = 2000
    json_mode: bool = False


@dataclass(frozen=True)
class ProviderCompletion:
    """A successful provider response."""

    content: str
    model: str
    provider: str
    tokens_used: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    finish_reason: str | None = None


@dataclass(frozen=True)
class ProviderCheck:
    """Outcome of an out-of-band provider availability check."""

    provider: str
    success: bool
    latency_ms: int
    error: str | None = None
    error_type: str | None = None


@runtime_checkable
class CompletionProvider(Protocol):
    """Anything that can turn chat messages into a completion."""

    name: str
    default_model: str

    async def complete(
        self,
        messages: Sequence[Any],
        options: CompletionOptions,
    ) -> ProviderCompletion: ...

    async def aclose(self) -> None: ...


class OpenAIProviderConfig(BaseModel):
    kind: Literal["openai"] = "openai"
    api_key: str = Field(..., min_length=1)
    base_url: str = "https://api.openai.com/v1"
    model: str = "gpt-4o-mini"
    timeout: float = 120.0


class GeminiProviderConfig(BaseModel):
    kind: Literal["gemini"] = "gemini"
    api_key: str = Field(..., min_length=1)
    base_url: str = "https://generativelanguage.googleapis.com/v1"
    model: str = "gemini-1.5-flash"
    timeout: float = 120.0


ProviderConfig = Annotated[
    Union[OpenAIProviderConfig, GeminiProviderConfig],
    Field(discriminator="kind"),
]


def message_fields(message: Any) -> tuple[str, str]:
    """Read (role, content) from a mapping or a message object."""
    if isinstance(message, dict):
        return message["role"], message["content"]
    return message.role, message.content


class HTTPProvider:
    """Shared plumbing for providers that speak JSON over HTTP."""

    name: str = ""

    def __init__(
        self,
        base_url: str,
        model: str,
        timeout: float,
        client: httpx.AsyncClient | None = None,
    ):
        self.default_model = model
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    def _auth(self) -> dict[str, Any]:
        """Per-request keyword arguments carrying credentials."""
        return {}

    async def _post(self, url: str, payload: dict[str, Any], **kwargs: Any) -> dict[str, Any]:
        response = await self._client.post(url, json=payload, **kwargs)
        if response.status_code >= 400:
            raise classify_http_status(
                response.status_code,
                f"{self.name} API error: {response.status_code} - {response.text[:500]}",
                provider=self.name,
            )
        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(
                f"{self.name} returned a non-JSON body",
                provider=self.name,
                status_code=response.status_code,
            ) from e

    async def check_health(self, timeout: float = HEALTH_CHECK_TIMEOUT) -> ProviderCheck:
        """
        List models as a cheap authenticated round trip.
        Never raises; failures are reported in the result.
        """
        start = time.perf_counter()
        try:
            response = await self._client.get("/models", timeout=timeout, **self._auth())
        except httpx.HTTPError as e:
            return ProviderCheck(
                provider=self.name,
                success=False,
                latency_ms=int((time.perf_counter() - start) * 1000),
                error=describe_error(e),
                error_type=error_type_of(e),
            )

        latency_ms = int((time.perf_counter() - start) * 1000)
        if response.status_code >= 400:
            error = classify_http_status(
                response.status_code,
                f"HTTP {response.status_code}: {response.text[:500]}",
                provider=self.name,
            )
            return ProviderCheck(
                provider=self.name,
                success=False,
                latency_ms=latency_ms,
                error=str(error),
                error_type=error.error_type,
            )
        return ProviderCheck(provider=self.name, success=True, latency_ms=latency_ms)

    async def aclose(self) -> None:
        await self._client.aclose()
