"""Speech-to-text through the provider's transcription endpoint."""
from __future__ import annotations

import asyncio
from pathlib import Path
from typing import BinaryIO, Optional, Union

from core.errors import DecodingError, PipelineError, TranscriptionFailed
from core.logging import get_logger
from services.openai_client import OpenAIClient
from services.retry import TRANSCRIPTION_RETRY, NetworkRetryPolicy

log = get_logger("transcription")

AudioSource = Union[str, Path, bytes, bytearray, BinaryIO]

_MIME_BY_SUFFIX = {
    ".m4a": "audio/m4a",
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".webm": "audio/webm",
    ".ogg": "audio/ogg",
    ".mp4": "audio/mp4",
}


async def read_audio(source: AudioSource) -> tuple[bytes, str]:
    if isinstance(source, (bytes, bytearray)):
        return bytes(source), "recording.m4a"
    if isinstance(source, (str, Path)):
        path = Path(source)
        return await asyncio.to_thread(path.read_bytes), path.name
    data = await asyncio.to_thread(source.read)
    name = Path(getattr(source, "name", "") or "recording.m4a").name
    return bytes(data), name


class TranscriptionService:
    def __init__(
        self,
        client: OpenAIClient,
        *,
        model: str = "gpt-4o-transcribe",
        timeout: float = 6.0,
        policy: NetworkRetryPolicy = TRANSCRIPTION_RETRY,
    ):
        self.client = client
        self.model = model
        self.policy = policy.with_timeout(timeout)

    async def transcribe(self, audio: AudioSource, *, language: Optional[str] = None) -> str:
        try:
            self.client.check("audio/transcriptions")
            payload, filename = await read_audio(audio)
        except PipelineError as e:
            raise TranscriptionFailed(cause=e) from e
        except OSError as e:
            raise TranscriptionFailed(f"Unable to read audio: {e}", cause=e) from e

        content_type = _MIME_BY_SUFFIX.get(Path(filename).suffix.lower(), "audio/m4a")

        async def once() -> str:
            data = await self.client.transcribe(
                payload,
                filename=filename,
                content_type=content_type,
                model=self.model,
                language=language,
            )
            text = data.get("text")
            if not isinstance(text, str):
                raise DecodingError("Transcription response has no text.")
            return text.strip()

        try:
            text = await self.policy.run(once, label="transcription")
        except PipelineError as e:
            log.error("transcription.failed", error=str(e))
            raise TranscriptionFailed(cause=e) from e
        log.info("transcription.done", chars=len(text), language=language)
        return text
