from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional


@dataclass
class LLMResponse:
    content: str
    model: str
    usage: Optional[dict] = None


class ProviderError(Exception):
    """Non-success response from the completion, transcription or speech API."""

    code = "provider_error"

    def __init__(self, operation: str, status_code: int, body: str = ""):
        self.operation = operation
        self.status_code = status_code
        self.body = body
        super().__init__(f"{operation} error: {status_code} - {body}")


class LLMProvider(ABC):
    """Completion, transcription and speech capabilities of one vendor."""

    @abstractmethod
    def generate(
        self,
        messages: List[dict],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> LLMResponse:
        """Generate response from LLM."""
        pass

    @abstractmethod
    def transcribe_audio(self, *, audio_bytes: bytes, filename: str, mime_type: Optional[str] = None) -> str:
        """Turn recorded speech into plain text."""
        pass

    @abstractmethod
    def synthesize_speech(self, text: str, voice: Optional[str] = None) -> bytes:
        """Render text as encoded audio bytes."""
        pass
