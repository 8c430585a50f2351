from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional


@dataclass
class LLMResponse:
    content: str
    model: str
    usage: Optional[dict] = None


class LLMProvider(ABC):
    """Chat completion and speech-to-text used for listing descriptions."""

    @abstractmethod
    def generate(
        self,
        messages: List[dict],
        model: Optional[str] = None,
        temperature: float = 0.1,
        max_tokens: int = 500,
        json_mode: bool = False,
    ) -> LLMResponse:
        pass

    @abstractmethod
    def transcribe_audio(
        self,
        *,
        audio_bytes: bytes,
        filename: str,
        mime_type: Optional[str] = None,
        model: Optional[str] = None,
    ) -> str:
        pass
