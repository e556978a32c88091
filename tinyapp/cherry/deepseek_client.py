"""Async client for the DeepSeek chat-completions API.

Wraps ``POST /v1/chat/completions`` with timeout handling and a structured
response.  Like the rest of the service layer the client never raises for
transport problems: callers inspect ``LLMResponse.success``.

Typical usage::

    client = DeepSeekClient(api_key=os.environ["DEEPSEEK_API_KEY"])
    resp = await client.chat(system="You design apps.", user="A todo list")
    if resp.success:
        print(resp.text)
"""

from __future__ import annotations

import time

import httpx
from pydantic import BaseModel, Field

from ..config import LLMConfig


class LLMResponse(BaseModel):
    """Structured response from a chat-completions call."""

    text: str = Field(default="", description="Content of the first choice")
    model: str = Field(default="", description="Model that produced the response")
    duration_ms: float = Field(default=0.0, description="Wall-clock request time in ms")
    success: bool = Field(default=True, description="Whether the request succeeded")
    error: str | None = Field(default=None, description="Error message on failure")


class DeepSeekClient:
    """Async client for an OpenAI-compatible chat-completions endpoint.

    The client uses ``httpx.AsyncClient`` for non-blocking HTTP.  A client
    without an API key is *not configured* and fails fast without touching
    the network.
    """

    def __init__(
        self,
        api_url: str = "https://api.deepseek.com/v1/chat/completions",
        api_key: str = "",
        model: str = "deepseek-chat",
        timeout: int = 60,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_url = api_url
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_config(cls, config: LLMConfig) -> "DeepSeekClient":
        return cls(
            api_url=config.api_url,
            api_key=config.api_key,
            model=config.model,
            timeout=config.timeout,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _client(self) -> httpx.AsyncClient:
        """Return a fresh ``AsyncClient`` with auth headers and our timeout."""
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout, connect=10.0),
            headers={"Authorization": f"Bearer {self.api_key}"},
            transport=self._transport,
        )

    @staticmethod
    def _extract_text(data: object) -> str:
        """Pull the assistant message out of a chat-completions payload.

        Any level with an unexpected shape yields an empty string.
        """
        if not isinstance(data, dict):
            return ""
        choices = data.get("choices")
        if not isinstance(choices, list) or not choices:
            return ""
        first = choices[0]
        if not isinstance(first, dict):
            return ""
        message = first.get("message")
        if not isinstance(message, dict):
            return ""
        content = message.get("content")
        return content if isinstance(content, str) else ""

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def chat(
        self,
        system: str,
        user: str,
        temperature: float = 0.7,
        max_tokens: int = 2000,
    ) -> LLMResponse:
        """Send one system/user prompt pair.

        Returns:
            An ``LLMResponse`` with the generated text or an error.
        """
        if not self.is_configured:
            return LLMResponse(
                model=self.model,
                success=False,
                error="No DeepSeek API key configured",
            )

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

        start = time.monotonic()
        try:
            async with self._client() as client:
                response = await client.post(self.api_url, json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.ConnectError:
            return LLMResponse(
                model=self.model,
                success=False,
                error=f"Cannot connect to DeepSeek at {self.api_url}.",
            )
        except httpx.TimeoutException:
            return LLMResponse(
                model=self.model,
                success=False,
                error=f"Request to DeepSeek timed out after {self.timeout}s.",
            )
        except httpx.HTTPStatusError as exc:
            return LLMResponse(
                model=self.model,
                success=False,
                error=f"DeepSeek returned HTTP {exc.response.status_code}: {exc.response.text[:500]}",
            )
        except (httpx.HTTPError, ValueError) as exc:
            return LLMResponse(
                model=self.model,
                success=False,
                error=f"Unexpected error during DeepSeek request: {exc}",
            )

        text = self._extract_text(data)
        model = data.get("model") if isinstance(data, dict) else None
        if not text:
            return LLMResponse(
                model=self.model,
                success=False,
                error="DeepSeek response contained no message content",
            )
        return LLMResponse(
            text=text,
            model=model if isinstance(model, str) else self.model,
            duration_ms=(time.monotonic() - start) * 1000.0,
            success=True,
        )
