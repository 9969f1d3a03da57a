from dataclasses import dataclass
from enum import Enum
from typing import Optional


class MessageKind(str, Enum):
    TEXT = "text"
    AUDIO = "audio"


@dataclass(frozen=True)
class CanonicalMessage:
    """One inbound chat event, independent of the webhook shape it arrived in.

    `sender` is already a normalized sender key. An AUDIO message always carries
    a non-empty `audio_url`; its `text` is filled in only after transcription.
    """

    sender: str
    text: str
    kind: MessageKind = MessageKind.TEXT
    audio_url: Optional[str] = None

    def __post_init__(self):
        if self.kind == MessageKind.AUDIO and not self.audio_url:
            raise ValueError("audio message requires audio_url")

    @property
    def is_audio(self) -> bool:
        return self.kind == MessageKind.AUDIO

    @property
    def has_text(self) -> bool:
        return bool(self.text and self.text.strip())
