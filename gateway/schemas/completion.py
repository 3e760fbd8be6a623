"""
Completion Schemas
==================
Pydantic models for the completion API.
"""

from typing import Literal

from pydantic import BaseModel, Field


class Message(BaseModel):
    """A single chat message."""

    role: Literal["system", "user", "assistant"]
    content: str


class CompletionRequest(BaseModel):
    """
    A completion request.
    Provider and model default to the healthiest configured provider.
    """

    messages: list[Message] = Field(..., min_length=1)
    provider: Literal["openai", "gemini"] | None = None
    model: str | None = Field(default=None, min_length=1, max_length=255)
    temperature: float | None = Field(default=None, ge=0, le=2)
    max_tokens: int | None = Field(default=None, gt=0)
    json_mode: bool = False

    # Attribution
    user_id: str | None = Field(default=None, min_length=1, max_length=255)
    document_id: str | None = None
    matter_id: str | None = None
    endpoint: str = Field(default="completion", max_length=100)

    # Feature switches
    use_cache: bool = True
    use_retry: bool = True
    use_dedupe: bool = True
    enforce_budget: bool | None = None


class CompletionResponse(BaseModel):
    """A completion with details of how it was served."""

    content: str
    provider: str
    model: str
    tokens_used: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    finish_reason: str | None = None
    cached: bool = False
    deduplicated: bool = False
    fallback_used: bool = False
    retry_attempts: int = 0
    total_duration_ms: int = 0
