"""Unit tests for the DeepSeek chat client (tinyapp.cherry.deepseek_client).

Uses ``httpx.MockTransport`` instead of the network.

Tests cover:
- Successful completion -> LLMResponse with text and model
- Request payload and bearer auth header
- HTTP errors, empty or malformed content and connect failures -> success=False
- Unconfigured client never sends a request
- from_config wiring
"""

from __future__ import annotations

import json

import httpx
import pytest

from tinyapp.cherry.deepseek_client import DeepSeekClient
from tinyapp.config import LLMConfig

API_URL = "https://llm.test/v1/chat/completions"


def _client(handler) -> DeepSeekClient:
    return DeepSeekClient(
        api_url=API_URL,
        api_key="sk-test",
        transport=httpx.MockTransport(handler),
    )


def _completion(content: str) -> dict:
    return {
        "model": "deepseek-chat",
        "choices": [{"message": {"role": "assistant", "content": content}}],
    }


class TestChat:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_success(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=_completion('{"name": "Notes"}'))

        response = await _client(handler).chat("system text", "user text", temperature=0.2)

        assert response.success is True
        assert response.text == '{"name": "Notes"}'
        assert response.model == "deepseek-chat"
        assert response.duration_ms >= 0

        request = seen[0]
        assert request.headers["Authorization"] == "Bearer sk-test"
        body = json.loads(request.content)
        assert body["messages"] == [
            {"role": "system", "content": "system text"},
            {"role": "user", "content": "user text"},
        ]
        assert body["temperature"] == 0.2
        assert body["max_tokens"] == 2000

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_http_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, text="upstream exploded")

        response = await _client(handler).chat("s", "u")
        assert response.success is False
        assert "HTTP 500" in response.error
        assert "upstream exploded" in response.error

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_empty_content(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"choices": []})

        response = await _client(handler).chat("s", "u")
        assert response.success is False
        assert "no message content" in response.error

    @pytest.mark.unit
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [
            {"choices": [{"message": "oops"}]},
            {"choices": "oops"},
            {"choices": ["oops"]},
            {"choices": [{"message": {"content": 42}}]},
            ["not", "an", "object"],
        ],
    )
    async def test_malformed_shape(self, payload):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=payload)

        response = await _client(handler).chat("s", "u")
        assert response.success is False
        assert "no message content" in response.error

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_non_string_model_ignored(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={**_completion("hi"), "model": {"id": 1}})

        response = await _client(handler).chat("s", "u")
        assert response.success is True
        assert response.model == "deepseek-chat"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_connect_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        response = await _client(handler).chat("s", "u")
        assert response.success is False
        assert "Cannot connect" in response.error

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unconfigured(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json=_completion("x"))

        client = DeepSeekClient(api_url=API_URL, transport=httpx.MockTransport(handler))
        response = await client.chat("s", "u")

        assert client.is_configured is False
        assert response.success is False
        assert calls == []


class TestFromConfig:
    @pytest.mark.unit
    def test_from_config(self):
        client = DeepSeekClient.from_config(
            LLMConfig(api_key="sk-abc", model="deepseek-coder", timeout=30)
        )
        assert client.is_configured
        assert client.model == "deepseek-coder"
        assert client.timeout == 30
