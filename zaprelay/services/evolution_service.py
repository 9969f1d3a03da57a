"""Outbound WhatsApp messaging via Evolution API."""

import base64
from dataclasses import dataclass
from typing import Any, Callable, Optional

import httpx

from zaprelay.logging_config import get_logger
from zaprelay.services.errors import GatewayErrorKind, GatewaySendError

logger = get_logger("evolution_service")

HTTP_TIMEOUT = 10.0
MAX_ERROR_BODY = 512
AUDIO_MIME_TYPE = "audio/mpeg"
AUDIO_FILE_NAME = "reply.mp3"

# Evolution answers 4xx with one of these when it does not accept the media
# field it was given; any of them means "try the next payload shape".
UNACCEPTABLE_MEDIA_MARKERS = (
    "owned media must be a url or base64",
    "media must be a url or base64",
    "invalid media",
)


def truncate(text: str, limit: int = MAX_ERROR_BODY) -> str:
    text = (text or "").strip()
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


def classify_failure(status_code: int, body: str) -> GatewayErrorKind:
    if not 400 <= status_code < 500:
        return GatewayErrorKind.HTTP_STATUS
    lowered = (body or "").lower()
    if any(marker in lowered for marker in UNACCEPTABLE_MEDIA_MARKERS):
        return GatewayErrorKind.UNACCEPTABLE_MEDIA
    return GatewayErrorKind.HTTP_STATUS


@dataclass(frozen=True)
class AudioPayloadShape:
    """One way of asking the gateway to deliver the same audio."""

    name: str
    endpoint: str
    build: Callable[[str, str], dict]


def _whatsapp_audio(to: str, audio_b64: str) -> dict:
    return {"number": to, "audio": audio_b64}


def _media_fields(audio_b64: str) -> dict:
    return {
        "mediatype": "audio",
        "mimetype": AUDIO_MIME_TYPE,
        "media": audio_b64,
        "fileName": AUDIO_FILE_NAME,
    }


def _flat_media(to: str, audio_b64: str) -> dict:
    return {"number": to, **_media_fields(audio_b64)}


def _nested_media(to: str, audio_b64: str) -> dict:
    return {"number": to, "mediaMessage": _media_fields(audio_b64)}


def _data_uri_media(to: str, audio_b64: str) -> dict:
    return {"number": to, **_media_fields(f"data:{AUDIO_MIME_TYPE};base64,{audio_b64}")}


AUDIO_PAYLOAD_SHAPES: tuple[AudioPayloadShape, ...] = (
    AudioPayloadShape("whatsapp_audio", "sendWhatsAppAudio", _whatsapp_audio),
    AudioPayloadShape("media_flat", "sendMedia", _flat_media),
    AudioPayloadShape("media_nested", "sendMedia", _nested_media),
    AudioPayloadShape("media_data_uri", "sendMedia", _data_uri_media),
)


class EvolutionClient:
    """Client for one Evolution API instance.

    Holds a pooled httpx client for the lifetime of the process; call close()
    on shutdown.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        instance: str,
        *,
        timeout: float = HTTP_TIMEOUT,
        http_client: Optional[httpx.Client] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.instance = instance
        self._client = http_client or httpx.Client(timeout=timeout)

    def _url(self, group: str, action: str) -> str:
        return f"{self.base_url}/{group}/{action}/{self.instance}"

    def _headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json", "apikey": self.api_key}

    def _post_json(self, url: str, payload: dict) -> httpx.Response:
        """POST and turn every failure into a classified GatewaySendError."""
        try:
            response = self._client.post(url, json=payload, headers=self._headers())
        except httpx.HTTPError as exc:
            raise GatewaySendError(
                f"evolution API request failed: {exc}",
                kind=GatewayErrorKind.TRANSPORT,
            ) from exc

        body = truncate(response.text)
        logger.debug(
            "Evolution API response",
            extra={"context": {"url": url, "status": response.status_code, "body": body}},
        )
        if not 200 <= response.status_code < 300:
            raise GatewaySendError(
                f"evolution API error: {response.status_code} - {body}",
                kind=classify_failure(response.status_code, response.text),
                status_code=response.status_code,
                body=body,
            )
        return response

    def send_text(self, to: str, text: str) -> None:
        """Send a text message. Raises GatewaySendError on any non-2xx answer."""
        self._post_json(self._url("message", "sendText"), {"number": to, "text": text})
        logger.info("Text message sent", extra={"context": {"to": to, "text_len": len(text)}})

    def send_audio(self, to: str, audio: bytes) -> str:
        """Send audio, trying each known payload shape in order.

        Moves on to the next shape only when the gateway rejects the media
        field itself; any other failure, or a failure on the last shape, is
        raised. Returns the name of the shape that was accepted.
        """
        audio_b64 = base64.b64encode(audio).decode("ascii")
        last_index = len(AUDIO_PAYLOAD_SHAPES) - 1

        for index, shape in enumerate(AUDIO_PAYLOAD_SHAPES):
            try:
                self._post_json(self._url("message", shape.endpoint), shape.build(to, audio_b64))
            except GatewaySendError as exc:
                if exc.is_unacceptable_media and index < last_index:
                    logger.info(
                        "Audio shape rejected, trying next",
                        extra={"context": {"shape": shape.name, "status": exc.status_code}},
                    )
                    continue
                raise
            logger.info(
                "Audio message sent",
                extra={"context": {"to": to, "shape": shape.name, "base64_len": len(audio_b64)}},
            )
            return shape.name

        raise GatewaySendError("no audio payload shape configured")

    def get_connection_state(self) -> str:
        """Return the instance connection state reported by Evolution ("open", "close", ...)."""
        url = self._url("instance", "connectionState")
        try:
            response = self._client.get(url, headers={"apikey": self.api_key})
        except httpx.HTTPError as exc:
            raise GatewaySendError(
                f"evolution API request failed: {exc}",
                kind=GatewayErrorKind.TRANSPORT,
            ) from exc

        if not 200 <= response.status_code < 300:
            raise GatewaySendError(
                f"evolution API error: {response.status_code} - {truncate(response.text)}",
                status_code=response.status_code,
                body=truncate(response.text),
            )

        try:
            data: Any = response.json()
        except ValueError:
            return "unknown"
        instance = data.get("instance") if isinstance(data, dict) else None
        if isinstance(instance, dict) and instance.get("state"):
            return str(instance["state"])
        if isinstance(data, dict) and data.get("state"):
            return str(data["state"])
        return "unknown"

    def close(self) -> None:
        self._client.close()
