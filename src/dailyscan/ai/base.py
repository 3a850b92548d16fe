from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any

import httpx

from dailyscan.errors import SummaryError


@dataclass(frozen=True)
class PromptSpec:
    name: str
    version: str
    system: str
    template: str

    def render(self, **values: str) -> str:
        return self.template.format(**values)


@dataclass
class OpenAIClient:
    model: str = "gpt-4o-mini"
    api_key: str | None = None
    base_url: str | None = None
    timeout: float = 30.0
    transport: httpx.AsyncBaseTransport | None = None

    def _endpoint(self) -> str:
        base = self.base_url or os.environ.get("OPENAI_BASE_URL", "https://api.openai.com")
        return f"{base.rstrip('/')}/v1/chat/completions"

    def _resolve_api_key(self) -> str:
        key = self.api_key or os.environ.get("OPENAI_API_KEY", "")
        if not key.strip():
            raise SummaryError("OPENAI_API_KEY is not configured")
        return key.strip()

    async def chat(
        self,
        system: str,
        user: str,
        temperature: float = 0.3,
        max_tokens: int = 200,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        headers = {
            "Authorization": f"Bearer {self._resolve_api_key()}",
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self._endpoint(), json=payload, headers=headers)
        except httpx.TransportError as exc:
            raise SummaryError(f"Network error: {exc}") from exc

        if not 200 <= response.status_code < 300:
            raise SummaryError(f"OpenAI HTTP error: {response.status_code}")
        try:
            data = response.json()
        except ValueError as exc:
            raise SummaryError("OpenAI response could not be decoded") from exc
        if not isinstance(data, dict):
            raise SummaryError("OpenAI response could not be decoded")
        return {"response": _extract_openai_text(data), "raw": data}


def _extract_openai_text(payload: dict[str, Any]) -> str:
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        return ""
    first = choices[0] or {}
    message = first.get("message") or {}
    content = message.get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if not isinstance(item, dict):
                continue
            text = item.get("text")
            if isinstance(text, str):
                parts.append(text)
        return "".join(parts)
    return ""
