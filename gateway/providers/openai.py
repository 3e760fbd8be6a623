"""
OpenAI Provider
===============
Chat completions over the OpenAI REST API.
"""

from collections.abc import Sequence
from typing import Any

import httpx
import structlog

from gateway.core.errors import ProviderError
from gateway.providers.base import (
    CompletionOptions,
    HTTPProvider,
    OpenAIProviderConfig,
    ProviderCompletion,
    message_fields,
)

logger = structlog.get_logger()


class OpenAIProvider(HTTPProvider):
    name = "openai"

    def __init__(self, config: OpenAIProviderConfig, client: httpx.AsyncClient | None = None):
        super().__init__(config.base_url, config.model, config.timeout, client)
        self._headers = {"Authorization": f"Bearer {config.api_key}"}

    def _auth(self) -> dict[str, Any]:
        return {"headers": self._headers}

    async def complete(
        self,
        messages: Sequence[Any],
        options: CompletionOptions,
    ) -> ProviderCompletion:
        model = options.model or self.default_model
        payload: dict[str, Any] = {
            "model": model,
            "messages": [
                {"role": role, "content": content}
                for role, content in map(message_fields, messages)
            ],
            "temperature": options.temperature,
            "max_tokens": options.max_tokens,
        }
        if options.json_mode:
            payload["response_format"] = {"type": "json_object"}

        data = await self._post("/chat/completions", payload, **self._auth())

        try:
            choice = data["choices"][0]
            content = choice["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError("OpenAI response has no choices", provider=self.name) from e

        usage = data.get("usage") or {}
        finish_reason = choice.get("finish_reason")
        if finish_reason == "length":
            logger.warning("OpenAI response truncated by max_tokens", model=model)

        return ProviderCompletion(
            content=content or "",
            model=data.get("model", model),
            provider=self.name,
            tokens_used=usage.get("total_tokens", 0),
            prompt_tokens=usage.get("prompt_tokens", 0),
            completion_tokens=usage.get("completion_tokens", 0),
            finish_reason=finish_reason,
        )
