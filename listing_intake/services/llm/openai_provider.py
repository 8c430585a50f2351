from typing import List, Optional

import httpx

from listing_intake.errors import ExtractionError
from listing_intake.logging_config import get_logger
from listing_intake.services.llm.base import LLMProvider, LLMResponse

logger = get_logger("llm.openai")


class OpenAIProvider(LLMProvider):
    """OpenAI API provider."""

    def __init__(
        self,
        api_key: str,
        default_model: str = "gpt-4o-mini",
        timeout_seconds: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.api_key = api_key
        self.default_model = default_model
        self.timeout_seconds = timeout_seconds
        self.base_url = "https://api.openai.com/v1/chat/completions"
        self.audio_url = "https://api.openai.com/v1/audio/transcriptions"
        self.transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(timeout=self.timeout_seconds, transport=self.transport)

    def generate(
        self,
        messages: List[dict],
        model: Optional[str] = None,
        temperature: float = 0.1,
        max_tokens: int = 500,
        json_mode: bool = False,
    ) -> LLMResponse:
        model = model or self.default_model
        payload = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}
        logger.debug(f"OpenAI request: model={model}, messages_count={len(messages)}")

        try:
            with self._client() as client:
                response = client.post(
                    self.base_url,
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json=payload,
                )
        except httpx.HTTPError as exc:
            raise ExtractionError(f"OpenAI unreachable: {exc}") from exc

        if response.status_code != 200:
            logger.error(f"OpenAI error: {response.text[:500]}")
            raise ExtractionError(f"OpenAI API error: {response.status_code}")

        data = response.json()
        content = ""
        if data.get("choices"):
            content = (data["choices"][0].get("message") or {}).get("content") or ""
        logger.debug(f"OpenAI content: {content[:100] if content else 'EMPTY'}")

        return LLMResponse(content=content, model=data.get("model", model), usage=data.get("usage"))

    def transcribe_audio(
        self,
        *,
        audio_bytes: bytes,
        filename: str,
        mime_type: Optional[str] = None,
        model: Optional[str] = None,
    ) -> str:
        """Transcribe a voice note with OpenAI speech-to-text."""
        if not audio_bytes:
            raise ExtractionError("audio_bytes is empty")

        files = {"file": (filename or "audio", audio_bytes, mime_type or "application/octet-stream")}
        data = {"model": model or "whisper-1", "response_format": "text"}

        try:
            with self._client() as client:
                response = client.post(
                    self.audio_url,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    files=files,
                    data=data,
                )
        except httpx.HTTPError as exc:
            raise ExtractionError(f"OpenAI transcription unreachable: {exc}") from exc

        logger.debug(f"OpenAI transcription status: {response.status_code}")
        if response.status_code != 200:
            logger.error(f"OpenAI transcription error: {response.text[:500]}")
            raise ExtractionError(f"OpenAI transcription error: {response.status_code}")

        transcript = (response.text or "").strip()
        if not transcript:
            logger.warning("OpenAI transcription returned empty text")
        return transcript
