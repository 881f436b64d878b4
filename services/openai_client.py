# mypy: ignore-errors
"""Single-shot calls against the OpenAI REST API.

No retries happen here. Every method performs exactly one HTTP request and
raises ``TransportError`` / ``DecodingError``; the services on top own the
retry policy and error naming.
"""
import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from core.errors import DecodingError
from services.http import endpoint, request_json, require_key

log = logging.getLogger("openai")


@dataclass(slots=True)
class ChatReply:
    content: str
    total_tokens: int = 0


def usage_tokens(data: dict) -> int:
    usage = data.get("usage")
    if not isinstance(usage, dict):
        return 0
    for key in ("total_tokens", "prompt_tokens"):
        value = usage.get(key)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return 0


class OpenAIClient:
    def __init__(
        self,
        api_key: str | None,
        base_url: str = "https://api.openai.com/v1",
        *,
        timeout: float = 30,
        client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self._client = client or httpx.AsyncClient(timeout=timeout)

    def check(self, path: str = "chat/completions") -> str:
        """Validate key and URL up front; returns the resolved endpoint."""
        require_key(self.api_key)
        return endpoint(self.base_url, path)

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {require_key(self.api_key)}"}

    async def chat(self, messages: list[dict], *, model: str = "gpt-4o", temperature: float = 0.2) -> ChatReply:
        url = self.check("chat/completions")
        payload = {"model": model, "temperature": temperature, "messages": messages}
        log.debug("chat model=%s messages=%d", model, len(messages))
        data = await request_json(self._client, "POST", url, headers=self._headers(), json_body=payload)
        choices = data.get("choices")
        if not isinstance(choices, list) or not choices:
            raise DecodingError("No choices found in GPT response.")
        message = choices[0].get("message") if isinstance(choices[0], dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str):
            raise DecodingError("GPT response has no message content.")
        return ChatReply(content=content, total_tokens=usage_tokens(data))

    async def embeddings(self, text: str, *, model: str = "text-embedding-3-large") -> dict[str, Any]:
        url = self.check("embeddings")
        payload = {"input": text, "model": model}
        return await request_json(self._client, "POST", url, headers=self._headers(), json_body=payload)

    async def transcribe(
        self,
        audio: bytes,
        *,
        filename: str = "recording.m4a",
        content_type: str = "audio/m4a",
        model: str = "gpt-4o-transcribe",
        language: Optional[str] = None,
    ) -> dict[str, Any]:
        url = self.check("audio/transcriptions")
        fields = {"model": model}
        if language:
            fields["language"] = language
        # httpx picks a fresh random multipart boundary for every request
        files = {"file": (filename, audio, content_type)}
        return await request_json(self._client, "POST", url, headers=self._headers(), files=files, data=fields)

    async def aclose(self):
        await self._client.aclose()
