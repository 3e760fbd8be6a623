"""
Provider Client Tests
=====================
Tests for the OpenAI and Gemini HTTP clients against mocked transports.
"""

import json

import httpx
import pytest

from gateway.config import Settings
from gateway.core.errors import (
    PermanentRequestError,
    ProviderAuthError,
    ProviderError,
    TransientProviderError,
)
from gateway.providers import (
    CompletionOptions,
    CompletionProvider,
    GeminiProvider,
    GeminiProviderConfig,
    OpenAIProvider,
    OpenAIProviderConfig,
    build_provider,
    build_providers,
)
from gateway.providers.gemini import to_gemini_contents

OPENAI_RESPONSE = {
    "model": "gpt-4o-mini-2024-07-18",
    "choices": [{"message": {"role": "assistant", "content": "Hello!"}, "finish_reason": "stop"}],
    "usage": {"prompt_tokens": 12, "completion_tokens": 3, "total_tokens": 15},
}

GEMINI_RESPONSE = {
    "candidates": [
        {"content": {"role": "model", "parts": [{"text": "Hel"}, {"text": "lo!"}]}, "finishReason": "STOP"}
    ],
    "usageMetadata": {"promptTokenCount": 10, "candidatesTokenCount": 2, "totalTokenCount": 12},
}


class Recorder:
    """MockTransport handler that records requests and replays one response."""

    def __init__(self, status_code: int = 200, body=None, text: str | None = None):
        self.status_code = status_code
        self.body = body
        self.text = text
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.text is not None:
            return httpx.Response(self.status_code, text=self.text)
        return httpx.Response(self.status_code, json=self.body)

    @property
    def payload(self) -> dict:
        return json.loads(self.requests[-1].content)


def openai_client(recorder: Recorder) -> OpenAIProvider:
    config = OpenAIProviderConfig(api_key="sk-test", base_url="https://openai.test/v1")
    client = httpx.AsyncClient(base_url=config.base_url, transport=httpx.MockTransport(recorder))
    return OpenAIProvider(config, client=client)


def gemini_client(recorder: Recorder) -> GeminiProvider:
    config = GeminiProviderConfig(api_key="g-test", base_url="https://gemini.test/v1")
    client = httpx.AsyncClient(base_url=config.base_url, transport=httpx.MockTransport(recorder))
    return GeminiProvider(config, client=client)


class TestOpenAIProvider:
    """Tests for OpenAIProvider."""

    async def test_request_shape(self, messages):
        recorder = Recorder(body=OPENAI_RESPONSE)
        provider = openai_client(recorder)

        await provider.complete(messages, CompletionOptions(temperature=0.2, max_tokens=50))

        request = recorder.requests[0]
        assert request.method == "POST"
        assert request.url.path == "/v1/chat/completions"
        assert request.headers["authorization"] == "Bearer sk-test"
        assert recorder.payload == {
            "model": "gpt-4o-mini",
            "messages": messages,
            "temperature": 0.2,
            "max_tokens": 50,
        }

    async def test_json_mode(self, messages):
        recorder = Recorder(body=OPENAI_RESPONSE)
        await openai_client(recorder).complete(messages, CompletionOptions(model="gpt-4o", json_mode=True))

        assert recorder.payload["model"] == "gpt-4o"
        assert recorder.payload["response_format"] == {"type": "json_object"}

    async def test_response_parsing(self, messages):
        completion = await openai_client(Recorder(body=OPENAI_RESPONSE)).complete(messages, CompletionOptions())

        assert completion.content == "Hello!"
        assert completion.provider == "openai"
        assert completion.model == "gpt-4o-mini-2024-07-18"
        assert completion.tokens_used == 15
        assert completion.prompt_tokens == 12
        assert completion.completion_tokens == 3
        assert completion.finish_reason == "stop"

    @pytest.mark.parametrize(
        "status_code,error_class",
        [
            (429, TransientProviderError),
            (500, TransientProviderError),
            (503, TransientProviderError),
            (401, ProviderAuthError),
            (403, ProviderAuthError),
            (400, PermanentRequestError),
            (404, PermanentRequestError),
        ],
    )
    async def test_status_classification(self, messages, status_code, error_class):
        provider = openai_client(Recorder(status_code, {"error": {"message": "nope"}}))

        with pytest.raises(error_class) as exc_info:
            await provider.complete(messages, CompletionOptions())

        assert exc_info.value.status_code == status_code
        assert exc_info.value.provider == "openai"

    async def test_missing_choices(self, messages):
        provider = openai_client(Recorder(body={"choices": []}))
        with pytest.raises(ProviderError):
            await provider.complete(messages, CompletionOptions())

    async def test_non_json_body(self, messages):
        provider = openai_client(Recorder(text="<html>gateway</html>"))
        with pytest.raises(ProviderError):
            await provider.complete(messages, CompletionOptions())

    async def test_missing_usage_counts_zero(self, messages):
        body = {"choices": [{"message": {"content": "ok"}}]}
        completion = await openai_client(Recorder(body=body)).complete(messages, CompletionOptions())

        assert completion.tokens_used == 0
        assert completion.model == "gpt-4o-mini"


class TestGeminiProvider:
    """Tests for GeminiProvider."""

    def test_contents_mapping(self):
        contents = to_gemini_contents([
            {"role": "system", "content": "Be brief."},
            {"role": "user", "content": "Hi"},
            {"role": "assistant", "content": "Hello"},
            {"role": "user", "content": "Bye"},
        ])

        assert contents == [
            {"role": "user", "parts": [{"text": "Be brief."}]},
            {"role": "user", "parts": [{"text": "Hi"}]},
            {"role": "model", "parts": [{"text": "Hello"}]},
            {"role": "user", "parts": [{"text": "Bye"}]},
        ]

    def test_no_system_prompt(self):
        assert to_gemini_contents([{"role": "user", "content": "Hi"}]) == [
            {"role": "user", "parts": [{"text": "Hi"}]}
        ]

    async def test_request_shape(self, messages):
        recorder = Recorder(body=GEMINI_RESPONSE)
        await gemini_client(recorder).complete(
            messages, CompletionOptions(temperature=0.1, max_tokens=64, json_mode=True)
        )

        request = recorder.requests[0]
        assert request.url.path == "/v1/models/gemini-1.5-flash:generateContent"
        assert request.url.params["key"] == "g-test"
        assert recorder.payload["generationConfig"] == {
            "temperature": 0.1,
            "maxOutputTokens": 64,
            "responseMimeType": "application/json",
        }
        assert recorder.payload["contents"][0]["parts"][0]["text"] == "You are a contract analyst."

    async def test_response_parsing(self, messages):
        completion = await gemini_client(Recorder(body=GEMINI_RESPONSE)).complete(
            messages, CompletionOptions(model="gemini-1.5-pro")
        )

        assert completion.content == "Hello!"
        assert completion.provider == "gemini"
        assert completion.model == "gemini-1.5-pro"
        assert completion.tokens_used == 12
        assert completion.prompt_tokens == 10
        assert completion.completion_tokens == 2
        assert completion.finish_reason == "STOP"

    async def test_missing_candidates(self, messages):
        provider = gemini_client(Recorder(body={"promptFeedback": {"blockReason": "SAFETY"}}))
        with pytest.raises(ProviderError):
            await provider.complete(messages, CompletionOptions())

    async def test_rate_limited(self, messages):
        provider = gemini_client(Recorder(429, {"error": {"status": "RESOURCE_EXHAUSTED"}}))
        with pytest.raises(TransientProviderError):
            await provider.complete(messages, CompletionOptions())


class TestHealthChecks:
    """Tests for out-of-band availability checks."""

    async def test_openai_lists_models(self):
        recorder = Recorder(body={"data": []})
        check = await openai_client(recorder).check_health()

        request = recorder.requests[0]
        assert request.method == "GET"
        assert request.url.path == "/v1/models"
        assert request.headers["authorization"] == "Bearer sk-test"
        assert check.provider == "openai"
        assert check.success
        assert check.error is None
        assert check.latency_ms >= 0

    async def test_gemini_sends_key(self):
        recorder = Recorder(body={"models": []})
        check = await gemini_client(recorder).check_health()

        assert recorder.requests[0].url.path == "/v1/models"
        assert recorder.requests[0].url.params["key"] == "g-test"
        assert check.success

    async def test_error_status_is_reported(self):
        check = await openai_client(Recorder(401, {"error": {"message": "bad key"}})).check_health()

        assert not check.success
        assert check.error_type == "auth"
        assert "HTTP 401" in check.error

    async def test_transport_error_is_reported(self):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        config = OpenAIProviderConfig(api_key="sk-test", base_url="https://openai.test/v1")
        client = httpx.AsyncClient(base_url=config.base_url, transport=httpx.MockTransport(refuse))
        check = await OpenAIProvider(config, client=client).check_health()

        assert not check.success
        assert check.error_type == "connection_error"
        assert "connection refused" in check.error


class TestBuildProviders:
    """Tests for provider construction from configuration."""

    async def test_build_from_tagged_dict(self):
        provider = build_provider({"kind": "gemini", "api_key": "g", "model": "gemini-2.0-flash"})

        assert isinstance(provider, GeminiProvider)
        assert isinstance(provider, CompletionProvider)
        assert provider.default_model == "gemini-2.0-flash"
        await provider.aclose()

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValueError):
            build_provider({"kind": "mistral", "api_key": "x"})

    async def test_only_configured_providers_are_built(self):
        settings = Settings(_env_file=None, openai_api_key="sk", gemini_api_key=None)
        providers = build_providers(settings)

        assert list(providers) == ["openai"]
        await providers["openai"].aclose()

    def test_no_credentials(self):
        assert build_providers(Settings(_env_file=None, openai_api_key=None, gemini_api_key=None)) == {}
