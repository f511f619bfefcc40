from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx


class LLMError(RuntimeError):
    pass


@dataclass(frozen=True)
class ChatMessage:
    role: str
    content: str


class OllamaChatClient:
    def __init__(
        self,
        *,
        base_url: str,
        model: str,
        timeout_s: float = 120.0,
        options: dict[str, Any] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout_s = float(timeout_s)
        self.options = dict(options or {})
        # Tests inject an httpx.MockTransport here.
        self.transport = transport

    async def chat(self, messages: list[ChatMessage], *, json_mode: bool = False) -> str:
        url = f"{self.base_url}/api/chat"
        payload: dict[str, Any] = {
            "model": self.model,
            "stream": False,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
        }
        if json_mode:
            payload["format"] = "json"
        if self.options:
            payload["options"] = self.options

        try:
            async with httpx.AsyncClient(timeout=self.timeout_s, transport=self.transport) as client:
                r = await client.post(url, json=payload)
        except httpx.HTTPError as e:
            raise LLMError(
                f"Failed to connect to Ollama at {self.base_url}. Is it running? ({e})"
            ) from e

        if r.status_code != 200:
            raise LLMError(f"Ollama error {r.status_code}: {r.text}")

        data = r.json()
        msg = data.get("message") or {}
        content = msg.get("content")
        if not isinstance(content, str):
            raise LLMError(f"Unexpected Ollama response: {data}")
        return content

    async def ping(self) -> list[str]:
        """Return installed model names; raises LLMError when unreachable."""
        try:
            async with httpx.AsyncClient(timeout=5.0, transport=self.transport) as client:
                r = await client.get(f"{self.base_url}/api/tags")
                r.raise_for_status()
        except httpx.HTTPError as e:
            raise LLMError(f"Ollama not reachable at {self.base_url}: {e}") from e
        data = r.json()
        return [m.get("name") for m in (data.get("models") or []) if isinstance(m, dict)]
