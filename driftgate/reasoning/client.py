"""HTTP transport for the external reasoning service."""

from __future__ import annotations

from typing import Dict, Protocol

import httpx

from driftgate.core.errors import RateLimitError, ReasoningTransportError


class ReasoningTransport(Protocol):
    """Sends one prompt with one credential and returns the raw model text."""

    async def generate(self, prompt: str, *, api_key: str) -> str:  # pragma: no cover - interface
        ...


class GeminiReasoningTransport:
    """Calls the ``generateContent`` endpoint of the Gemini REST API."""

    def __init__(
        self,
        base_url: str,
        model: str,
        *,
        timeout: float = 45.0,
        headers: Dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        normalized_base = base_url.rstrip("/") + "/"
        self.model = model
        self._client = httpx.AsyncClient(
            base_url=normalized_base,
            timeout=timeout,
            headers=headers,
            transport=transport,
        )

    async def __aenter__(self) -> "GeminiReasoningTransport":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def generate(self, prompt: str, *, api_key: str) -> str:
        payload = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}
        try:
            response = await self._client.post(
                f"models/{self.model}:generateContent",
                json=payload,
                headers={"x-goog-api-key": api_key},
            )
        except httpx.HTTPError as exc:
            raise ReasoningTransportError(f"{type(exc).__name__}: {exc}") from exc

        if response.status_code == 429:
            raise RateLimitError(f"rate limited (429): {response.text[:200]}")
        if response.status_code >= 400:
            raise ReasoningTransportError(f"reasoning service returned {response.status_code}: {response.text[:200]}")

        try:
            data = response.json()
            parts = data["candidates"][0]["content"]["parts"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise ReasoningTransportError("reasoning service response had no candidate text") from exc
        return "".join(part.get("text", "") for part in parts if isinstance(part, dict))
