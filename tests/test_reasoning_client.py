import asyncio
import json

import httpx
import pytest

from driftgate.core.errors import RateLimitError, ReasoningTransportError
from driftgate.reasoning import GeminiReasoningTransport


def _generate(handler, prompt="judge this"):
    async def run():
        async with GeminiReasoningTransport(
            "https://reasoning.example/v1beta", "test-model", transport=httpx.MockTransport(handler)
        ) as transport:
            return await transport.generate(prompt, api_key="secret-key")

    return asyncio.run(run())


def test_generate_returns_candidate_text():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["key"] = request.headers.get("x-goog-api-key")
        captured["body"] = json.loads(request.content.decode())
        return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": "<decision>"}, {"text": "{}</decision>"}]}}]})

    text = _generate(handler)

    assert text == "<decision>{}</decision>"
    assert captured["url"] == "https://reasoning.example/v1beta/models/test-model:generateContent"
    assert captured["key"] == "secret-key"
    assert captured["body"]["contents"][0]["parts"][0]["text"] == "judge this"


def test_rate_limit_is_distinguished():
    with pytest.raises(RateLimitError):
        _generate(lambda request: httpx.Response(429, text="quota exhausted"))


def test_server_error_is_a_transport_error():
    with pytest.raises(ReasoningTransportError) as excinfo:
        _generate(lambda request: httpx.Response(503, text="unavailable"))

    assert not isinstance(excinfo.value, RateLimitError)
    assert "503" in str(excinfo.value)


def test_response_without_candidates_is_a_transport_error():
    with pytest.raises(ReasoningTransportError):
        _generate(lambda request: httpx.Response(200, json={"promptFeedback": {"blockReason": "SAFETY"}}))


def test_connection_failure_is_a_transport_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ReasoningTransportError):
        _generate(handler)
