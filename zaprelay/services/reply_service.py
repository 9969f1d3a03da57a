"""Reply pipeline: inbound canonical message in, text (and maybe audio) reply out.

Only two things can fail a message: producing the reply (transcription or
completion) and delivering the text. History storage and the audio reply are
best-effort and only ever show up in the logs.
"""

import os
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union
from urllib.parse import urlparse

import httpx

from zaprelay.config import DEFAULT_SYSTEM_PROMPT
from zaprelay.logging_config import LoggerAdapter, get_logger
from zaprelay.models import CanonicalMessage, ConversationTurn, TurnRole
from zaprelay.services.errors import (
    DegradedAudioFailure,
    DeliveryError,
    GatewaySendError,
    UpstreamCapabilityError,
)
from zaprelay.services.evolution_service import EvolutionClient
from zaprelay.services.llm.base import LLMProvider
from zaprelay.services.normalizer import normalize_event
from zaprelay.services.session_store import SessionStore

logger = get_logger("reply_service")

AUDIO_DOWNLOAD_TIMEOUT = 15.0
AUDIO_MAX_BYTES = 25 * 1024 * 1024
DEFAULT_AUDIO_FILENAME = "audio.ogg"
TRANSCRIBABLE_EXTENSIONS = frozenset(
    {".flac", ".m4a", ".mp3", ".mp4", ".mpeg", ".mpga", ".oga", ".ogg", ".wav", ".webm"}
)
AUDIO_CONTENT_TYPES = {
    "audio/ogg": ".ogg",
    "audio/opus": ".ogg",
    "audio/mpeg": ".mp3",
    "audio/mp3": ".mp3",
    "audio/mp4": ".m4a",
    "audio/x-m4a": ".m4a",
    "audio/aac": ".m4a",
    "audio/wav": ".wav",
    "audio/x-wav": ".wav",
    "audio/webm": ".webm",
    "audio/flac": ".flac",
}


class ReplyStatus(str, Enum):
    REPLIED = "replied"
    NO_REPLY = "no_reply"
    SKIPPED = "skipped"
    REJECTED = "rejected"


@dataclass
class ReplyOutcome:
    status: ReplyStatus
    sender: Optional[str] = None
    reply: Optional[str] = None
    audio_sent: bool = False
    error_code: Optional[str] = None


def _audio_filename(url: str, content_type: Optional[str]) -> str:
    name = os.path.basename(urlparse(url).path or "")
    if os.path.splitext(name)[1].lower() in TRANSCRIBABLE_EXTENSIONS:
        return name
    ext = AUDIO_CONTENT_TYPES.get((content_type or "").split(";")[0].strip().lower())
    if ext:
        return f"audio{ext}"
    return DEFAULT_AUDIO_FILENAME


class ReplyOrchestrator:
    def __init__(
        self,
        provider: LLMProvider,
        gateway: EvolutionClient,
        store: SessionStore,
        *,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        model: Optional[str] = None,
        voice: Optional[str] = None,
        reply_with_audio: bool = True,
    ):
        self.provider = provider
        self.gateway = gateway
        self.store = store
        self.system_prompt = system_prompt
        self.model = model
        self.voice = voice
        self.reply_with_audio = reply_with_audio

    def process_event(self, raw: Union[bytes, str, dict]) -> list[ReplyOutcome]:
        """Normalize one webhook body and reply to every usable entry.

        Raises:
            MalformedPayloadError: body is not decodable.
            UpstreamCapabilityError, DeliveryError: first fatal failure, raised
                after the remaining entries have been handled.
        """
        outcomes: list[ReplyOutcome] = []
        first_error: Optional[Exception] = None

        for result in normalize_event(raw):
            if not result.ok:
                logger.warning(
                    "Unusable inbound message",
                    extra={"context": {"error_code": result.error_code, "error": result.error}},
                )
                outcomes.append(ReplyOutcome(status=ReplyStatus.REJECTED, error_code=result.error_code))
                continue
            try:
                outcomes.append(self.handle_message(result.value))
            except (UpstreamCapabilityError, DeliveryError) as exc:
                if first_error is None:
                    first_error = exc

        if first_error is not None:
            raise first_error
        return outcomes

    def handle_message(self, message: CanonicalMessage) -> ReplyOutcome:
        log = LoggerAdapter(logger, {"sender": message.sender, "kind": message.kind.value})

        working_text = message.text.strip() if message.has_text else ""
        if message.is_audio:
            working_text = self._transcribe(message, log)

        if not working_text:
            log.info("Nothing to answer")
            return ReplyOutcome(status=ReplyStatus.SKIPPED, sender=message.sender)

        loaded = self.store.load(message.sender)
        if not loaded.ok:
            log.warning(
                "History unavailable, continuing without it",
                context={"error_code": loaded.error_code, "error": loaded.error},
            )
        history = list(loaded.unwrap_or([]) or [])
        history.append(ConversationTurn(role=TurnRole.USER, content=working_text))

        reply = self._complete(history, log)
        if not reply:
            log.info("Completion returned no reply")
            return ReplyOutcome(status=ReplyStatus.NO_REPLY, sender=message.sender)

        history.append(ConversationTurn(role=TurnRole.ASSISTANT, content=reply))
        saved = self.store.save(message.sender, history)
        if not saved.ok:
            log.warning("History not saved", context={"error_code": saved.error_code, "error": saved.error})

        try:
            self.gateway.send_text(message.sender, reply)
        except GatewaySendError as exc:
            log.error("Text reply not delivered", context={"error": str(exc), "status": exc.status_code})
            raise DeliveryError(f"send text: {exc}") from exc

        audio_sent = self.reply_with_audio and self._send_audio_reply(message.sender, reply, log)
        return ReplyOutcome(
            status=ReplyStatus.REPLIED,
            sender=message.sender,
            reply=reply,
            audio_sent=audio_sent,
        )

    def build_messages(self, history: list[ConversationTurn]) -> list[dict]:
        messages = [{"role": "system", "content": self.system_prompt}]
        messages.extend(turn.to_dict() for turn in history)
        return messages

    def _complete(self, history: list[ConversationTurn], log: LoggerAdapter) -> str:
        try:
            response = self.provider.generate(self.build_messages(history), model=self.model)
        except Exception as exc:
            log.error("Completion failed", context={"error": str(exc)})
            raise UpstreamCapabilityError("completion", str(exc)) from exc
        return (response.content or "").strip() if response else ""

    def _transcribe(self, message: CanonicalMessage, log: LoggerAdapter) -> str:
        try:
            audio_bytes, content_type = self.fetch_audio(message.audio_url)
            transcript = self.provider.transcribe_audio(
                audio_bytes=audio_bytes,
                filename=_audio_filename(message.audio_url, content_type),
                mime_type=content_type,
            )
        except Exception as exc:
            log.error("Transcription failed", context={"error": str(exc)})
            raise UpstreamCapabilityError("transcription", str(exc)) from exc

        transcript = (transcript or "").strip()
        log.info("Audio transcribed", context={"text_len": len(transcript)})
        return transcript

    def fetch_audio(self, url: str) -> tuple[bytes, Optional[str]]:
        """Download the voice note the gateway points at."""
        data = bytearray()
        with httpx.Client(timeout=AUDIO_DOWNLOAD_TIMEOUT, follow_redirects=True) as client:
            with client.stream("GET", url) as response:
                response.raise_for_status()
                content_type = response.headers.get("content-type")
                for chunk in response.iter_bytes():
                    data.extend(chunk)
                    if len(data) > AUDIO_MAX_BYTES:
                        raise ValueError(f"audio exceeds {AUDIO_MAX_BYTES} bytes")
        if not data:
            raise ValueError("downloaded audio is empty")
        return bytes(data), content_type

    def _send_audio_reply(self, sender: str, reply: str, log: LoggerAdapter) -> bool:
        try:
            audio = self.provider.synthesize_speech(reply, voice=self.voice)
            self.gateway.send_audio(sender, audio)
        except Exception as exc:
            log.warning(
                "Audio reply skipped",
                context={"error_code": DegradedAudioFailure.code, "error": str(exc), "error_type": type(exc).__name__},
            )
            return False
        return True

    def close(self) -> None:
        self.store.close()
        self.gateway.close()
