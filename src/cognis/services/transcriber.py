"""Speech-to-text collaborators used by the gateway's ``/transcribe`` route."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import httpx

from cognis.core.errors import TranscriptionError
from cognis.log import get_logger

logger = get_logger(__name__)

DEFAULT_TRANSCRIBE_MODEL = "whisper-1"


class Transcriber(ABC):
    @abstractmethod
    async def transcribe(self, audio_path: Path) -> str:
        ...


class NoopTranscriber(Transcriber):
    async def transcribe(self, audio_path: Path) -> str:
        raise TranscriptionError("transcriber is not configured")


class OpenAITranscriber(Transcriber):
    """Uploads audio to an OpenAI-compatible ``/audio/transcriptions`` endpoint."""

    def __init__(
        self,
        api_base: str,
        api_key: str,
        model: str = DEFAULT_TRANSCRIBE_MODEL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        base = (api_base or "").strip().rstrip("/")
        if base and not base.endswith("/audio/transcriptions"):
            base += "/audio/transcriptions"
        self._endpoint = base
        self._api_key = api_key or ""
        self._model = model or DEFAULT_TRANSCRIBE_MODEL
        self._transport = transport

    async def transcribe(self, audio_path: Path) -> str:
        if not self._api_key.strip() or not self._endpoint:
            raise TranscriptionError("transcriber is not configured")
        if not audio_path.exists():
            raise TranscriptionError(f"audio file does not exist: {audio_path}")

        files = {"file": (audio_path.name, audio_path.read_bytes(), "application/octet-stream")}
        async with httpx.AsyncClient(timeout=90.0, transport=self._transport) as client:
            response = await client.post(
                self._endpoint,
                headers={"Authorization": f"Bearer {self._api_key}"},
                data={"model": self._model},
                files=files,
            )
        if not response.is_success:
            raise TranscriptionError(
                f"transcription failed with status {response.status_code}: {response.text}"
            )
        text = str(response.json().get("text") or "").strip()
        if not text:
            raise TranscriptionError("transcription response did not include text")
        logger.info("audio_transcribed", file=audio_path.name, chars=len(text))
        return text
