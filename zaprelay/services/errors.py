"""Error taxonomy for the relay pipeline.

Every error carries a short machine code so it can be logged, returned inside a
`Result`, or mapped to an HTTP status at the webhook boundary.
"""

from enum import Enum
from typing import Optional


class RelayError(Exception):
    code = "relay_error"


class MalformedPayloadError(RelayError):
    """Envelope or data blob is not decodable as structured data."""

    code = "malformed_payload"


class MissingSenderError(RelayError):
    code = "missing_sender"


class MissingAudioReferenceError(RelayError):
    code = "missing_audio_reference"


class UpstreamCapabilityError(RelayError):
    """Completion or transcription failed; no reply can be produced."""

    code = "upstream_failure"

    def __init__(self, stage: str, message: str):
        self.stage = stage
        super().__init__(f"{stage}: {message}")


class DeliveryError(RelayError):
    """The mandatory text reply could not be delivered."""

    code = "delivery_failure"


class DegradedAudioFailure(RelayError):
    code = "degraded_audio"


class SessionStoreError(RelayError):
    code = "store_unavailable"


class GatewayErrorKind(str, Enum):
    UNACCEPTABLE_MEDIA = "unacceptable_media"
    HTTP_STATUS = "http_status"
    TRANSPORT = "transport"


class GatewaySendError(RelayError):
    code = "gateway_error"

    def __init__(
        self,
        message: str,
        *,
        kind: GatewayErrorKind = GatewayErrorKind.HTTP_STATUS,
        status_code: Optional[int] = None,
        body: str = "",
    ):
        self.kind = kind
        self.status_code = status_code
        self.body = body
        super().__init__(message)

    @property
    def is_unacceptable_media(self) -> bool:
        return self.kind == GatewayErrorKind.UNACCEPTABLE_MEDIA


class SessionDecodeError(SessionStoreError):
    code = "decode_error"
