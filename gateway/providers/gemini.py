"""
Gemini Provider
===============
Content generation over the Google Generative Language REST API.
"""

from collections.abc import Sequence
from typing import Any

import httpx
import structlog

from gateway.core.errors import ProviderError
from gateway.providers.base import (
    CompletionOptions,
    GeminiProviderConfig,
    HTTPProvider,
    ProviderCompletion,
    message_fields,
)

logger = structlog.get_logger()


def to_gemini_contents(messages: Sequence[Any]) -> list[dict[str, Any]]:
    """
    Convert chat messages to Gemini ``contents``.

    Gemini has no system role: the system prompt becomes the first user turn
    and assistant turns are sent with the ``model`` role.
    """
    system_parts: list[str] = []
    contents: list[dict[str, Any]] = []
    for role, content in map(message_fields, messages):
        if role == "system":
            system_parts.append(content)
            continue
        contents.append({
            "role": "model" if role == "assistant" else "user",
            "parts": [{"text": content}],
        })

    if system_parts:
        contents.insert(0, {"role": "user", "parts": [{"text": "\n\n".join(system_parts)}]})
    return contents


class GeminiProvider(HTTPProvider):
    name = "gemini"

    def __init__(self, config: GeminiProviderConfig, client: httpx.AsyncClient | None = None):
        super().__init__(config.base_url, config.model, config.timeout, client)
        self._api_key = config.api_key

    def _auth(self) -> dict[str, Any]:
        return {"params": {"key": self._api_key}}

    async def complete(
        self,
        messages: Sequence[Any],
        options: CompletionOptions,
    ) -> ProviderCompletion:
        model = options.model or self.default_model
        generation_config: dict[str, Any] = {
            "temperature": options.temperature,
            "maxOutputTokens": options.max_tokens,
        }
        if options.json_mode:
            generation_config["responseMimeType"] = "application/json"

        data = await self._post(
            f"/models/{model}:generateContent",
            {"contents": to_gemini_contents(messages), "generationConfig": generation_config},
            **self._auth(),
        )

        try:
            candidate = data["candidates"][0]
            content = "".join(part.get("text", "") for part in candidate["content"]["parts"])
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError("Gemini response has no candidates", provider=self.name) from e

        usage = data.get("usageMetadata") or {}
        finish_reason = candidate.get("finishReason")
        if finish_reason == "MAX_TOKENS":
            logger.warning("Gemini response truncated by max_tokens", model=model)

        return ProviderCompletion(
            content=content,
            model=model,
            provider=self.name,
            tokens_used=usage.get("totalTokenCount", 0),
            prompt_tokens=usage.get("promptTokenCount", 0),
            completion_tokens=usage.get("candidatesTokenCount", 0),
            finish_reason=finish_reason,
        )
