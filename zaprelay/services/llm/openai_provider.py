from typing import List, Optional

import httpx

from zaprelay.logging_config import get_logger
from zaprelay.services.llm.base import LLMProvider, LLMResponse, ProviderError

logger = get_logger("llm.openai")

DEFAULT_VOICE = "alloy"
SPEECH_VOICES = frozenset({"alloy", "echo", "fable", "onyx", "nova", "shimmer"})


def resolve_voice(voice: Optional[str]) -> str:
    """Map a configured voice name to a supported one; unknown names fall back to alloy."""
    name = (voice or "").strip().lower()
    return name if name in SPEECH_VOICES else DEFAULT_VOICE


class OpenAIProvider(LLMProvider):
    """OpenAI API provider."""

    def __init__(
        self,
        api_key: str,
        default_model: str = "gpt-4o-mini",
        base_url: str = "https://api.openai.com/v1",
        default_voice: str = DEFAULT_VOICE,
    ):
        self.api_key = api_key
        self.default_model = default_model
        self.default_voice = resolve_voice(default_voice)
        api_root = base_url.rstrip("/")
        self.base_url = f"{api_root}/chat/completions"
        self.audio_url = f"{api_root}/audio/transcriptions"
        self.speech_url = f"{api_root}/audio/speech"

    def generate(
        self,
        messages: List[dict],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1000,
        timeout_seconds: Optional[float] = None,
    ) -> LLMResponse:
        """Generate response from OpenAI."""

        model = model or self.default_model

        timeout = timeout_seconds if timeout_seconds is not None else 60.0
        with httpx.Client(timeout=timeout) as client:
            payload = {
                "model": model,
                "messages": messages,
                "temperature": temperature,
                "max_completion_tokens": max_tokens,
            }
            logger.debug(f"OpenAI request: model={model}, messages_count={len(messages)}")

            response = client.post(
                self.base_url,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json=payload,
            )

            logger.debug(f"OpenAI response status: {response.status_code}")

            if response.status_code != 200:
                logger.error(f"OpenAI error: {response.text}")
                raise ProviderError("chat completion", response.status_code, response.text)

            data = response.json()

            content = ""
            choices = data.get("choices") or []
            if choices:
                message = choices[0].get("message") or {}
                content = message.get("content") or ""
            logger.debug(f"OpenAI content: {content[:100] if content else 'EMPTY'}")

            return LLMResponse(
                content=content,
                model=data.get("model", model),
                usage=data.get("usage"),
            )

    def transcribe_audio(
        self,
        *,
        audio_bytes: bytes,
        filename: str,
        mime_type: Optional[str] = None,
        model: Optional[str] = None,
        prompt: Optional[str] = None,
        language: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ) -> str:
        """Transcribe audio using OpenAI speech-to-text."""
        model = model or "whisper-1"
        if not audio_bytes:
            raise ValueError("audio_bytes is empty")

        files = {"file": (filename or "audio", audio_bytes, mime_type or "application/octet-stream")}
        data = {"model": model, "response_format": "text"}
        if prompt:
            data["prompt"] = prompt
        if language:
            data["language"] = language

        timeout = timeout_seconds if timeout_seconds is not None else 30.0
        with httpx.Client(timeout=timeout) as client:
            response = client.post(
                self.audio_url,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                },
                files=files,
                data=data,
            )

        logger.debug(f"OpenAI transcription status: {response.status_code}")
        if response.status_code != 200:
            logger.error(f"OpenAI transcription error: {response.text}")
            raise ProviderError("transcription", response.status_code, response.text)

        transcript = (response.text or "").strip()
        if not transcript:
            logger.warning("OpenAI transcription returned empty text")
        return transcript

    def synthesize_speech(
        self,
        text: str,
        voice: Optional[str] = None,
        model: str = "tts-1",
        response_format: str = "mp3",
        timeout_seconds: Optional[float] = None,
    ) -> bytes:
        """Render text as speech; returns the encoded audio stream."""
        if not text or not text.strip():
            raise ValueError("text is empty")

        payload = {
            "model": model,
            "voice": resolve_voice(voice) if voice else self.default_voice,
            "input": text,
            "response_format": response_format,
        }

        timeout = timeout_seconds if timeout_seconds is not None else 30.0
        with httpx.Client(timeout=timeout) as client:
            response = client.post(
                self.speech_url,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json=payload,
            )

        logger.debug(f"OpenAI speech status: {response.status_code}")
        if response.status_code != 200:
            logger.error(f"OpenAI speech error: {response.text[:200]}")
            raise ProviderError("speech", response.status_code, response.text[:512])

        audio = response.content or b""
        if not audio:
            raise ProviderError("speech", response.status_code, "empty audio stream")
        return audio
