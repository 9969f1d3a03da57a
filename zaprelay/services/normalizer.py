"""Turn inbound webhook payloads into canonical messages.

Gateways deliver the same logical message in several shapes: a single message
per event, Evolution's `messages.upsert` batches, and vendor payloads that nest
text and media differently. Every lookup here is an ordered tuple of extractor
functions over the decoded document; the first non-empty result wins, so the
priority order stays declarative.
"""

import json
from typing import Any, Callable, Iterable, Optional, Union

from pydantic import ValidationError

from zaprelay.logging_config import get_logger
from zaprelay.models import CanonicalMessage, MessageKind
from zaprelay.schemas.webhook import UpsertBatch, WebhookData, WebhookEnvelope
from zaprelay.services.errors import (
    MalformedPayloadError,
    MissingAudioReferenceError,
    MissingSenderError,
)
from zaprelay.services.result import Result

logger = get_logger("normalizer")

BATCH_EVENTS = frozenset({"messages.upsert"})
SINGLE_MESSAGE_EVENTS = frozenset({"message", "message.create", "message.received"})
AUDIO_TYPES = frozenset({"audio", "ptt"})


def normalize_sender_id(raw: Any) -> str:
    """Map any participant id to its sender key: no domain suffix, no leading '+'."""
    if raw is None or isinstance(raw, (dict, list, tuple, bool)):
        return ""
    value = str(raw).strip()
    if "@" in value:
        value = value.split("@", 1)[0].strip()
    return value.lstrip("+").strip()


def normalize_event_name(event: Optional[str]) -> str:
    return (event or "").strip().lower().replace("_", ".").replace("-", ".")


def _path(*keys: str) -> Callable[[dict], Any]:
    def extract(doc: dict) -> Any:
        current: Any = doc
        for key in keys:
            if not isinstance(current, dict):
                return None
            current = current.get(key)
        return current

    return extract


def _text_field(message: dict) -> Any:
    value = message.get("text")
    if isinstance(value, dict):
        return value.get("body")
    return value


def _first_non_blank(extractors: Iterable[Callable[[Any], Any]], doc: Any) -> str:
    for extract in extractors:
        value = extract(doc)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


TEXT_EXTRACTORS: tuple[Callable[[dict], Any], ...] = (
    _path("body"),
    _path("conversation"),
    _text_field,
    _path("extendedText"),
    _path("extendedTextMessage", "text"),
    _path("buttonsResponseMessage", "selectedDisplayText"),
    _path("buttonsResponseMessage", "selectedButtonId"),
    _path("interactiveResponseMessage", "body", "text"),
)

SENDER_EXTRACTORS: tuple[Callable[[WebhookData], Any], ...] = (
    lambda data: data.message.get("from"),
    lambda data: data.sender,
    lambda data: data.message.get("remoteJid"),
    lambda data: data.message.get("chatId"),
    lambda data: data.key.remoteJid,
    lambda data: data.remoteJid,
    lambda data: data.chatId,
)

AUDIO_URL_EXTRACTORS: tuple[Callable[[WebhookData], Any], ...] = (
    lambda data: _path("audio", "url")(data.message),
    lambda data: _path("audioMessage", "url")(data.message),
    lambda data: data.mediaUrl,
    lambda data: data.message.get("mediaUrl"),
)


def extract_text(message: dict) -> str:
    return _first_non_blank(TEXT_EXTRACTORS, message)


def resolve_sender(data: WebhookData) -> str:
    for extract in SENDER_EXTRACTORS:
        sender = normalize_sender_id(extract(data))
        if sender:
            return sender
    return ""


def resolve_kind(data: WebhookData) -> MessageKind:
    raw_type = data.message.get("type")
    if not isinstance(raw_type, str) or not raw_type.strip():
        raw_type = data.messageType or ""
    if raw_type.strip().lower() in AUDIO_TYPES:
        return MessageKind.AUDIO
    return MessageKind.TEXT


def resolve_audio_url(data: WebhookData) -> str:
    return _first_non_blank(AUDIO_URL_EXTRACTORS, data)


def normalize_message(data: WebhookData) -> Result[CanonicalMessage]:
    """Normalize one decoded message record.

    Empty text on a text message is a success with empty text; the caller
    decides that there is nothing to do.
    """
    sender = resolve_sender(data)
    if not sender:
        return Result.from_error(MissingSenderError("no sender id in payload"))

    kind = resolve_kind(data)
    if kind == MessageKind.AUDIO:
        audio_url = resolve_audio_url(data)
        if not audio_url:
            return Result.from_error(MissingAudioReferenceError("audio message missing url"))
        return Result.success(CanonicalMessage(sender=sender, text="", kind=kind, audio_url=audio_url))

    return Result.success(CanonicalMessage(sender=sender, text=extract_text(data.message)))


def parse_envelope(raw: Union[bytes, str, dict]) -> WebhookEnvelope:
    if isinstance(raw, dict):
        payload = raw
    else:
        try:
            payload = json.loads(raw)
        except (TypeError, ValueError) as exc:
            raise MalformedPayloadError(f"invalid JSON: {exc}") from exc

    if not isinstance(payload, dict):
        raise MalformedPayloadError("envelope is not a JSON object")

    try:
        envelope = WebhookEnvelope.model_validate(payload)
    except ValidationError as exc:
        raise MalformedPayloadError(f"invalid envelope: {exc.error_count()} errors") from exc

    # Direct shape: {"message": {...}} with no data blob. Envelope-level ids
    # belong to the gateway, so only message and key make up the record.
    if envelope.data is None and isinstance(envelope.message, dict):
        record = {"message": envelope.message}
        if isinstance(payload.get("key"), dict):
            record["key"] = payload["key"]
        envelope.data = record
    return envelope


def _decode_blob(data: Any) -> Union[dict, list]:
    if isinstance(data, (str, bytes)):
        try:
            data = json.loads(data)
        except ValueError as exc:
            raise MalformedPayloadError(f"data blob is not JSON: {exc}") from exc
    if not isinstance(data, (dict, list)):
        raise MalformedPayloadError("data blob is not structured data")
    return data


def _decode_single(data: Any) -> list[WebhookData]:
    blob = _decode_blob(data)
    if not isinstance(blob, dict):
        raise MalformedPayloadError("message event data must be an object")
    try:
        return [WebhookData.model_validate(blob)]
    except ValidationError as exc:
        raise MalformedPayloadError(f"invalid message data: {exc.error_count()} errors") from exc


def _decode_batch(data: Any) -> list[WebhookData]:
    blob = _decode_blob(data)
    try:
        if isinstance(blob, list):
            return UpsertBatch.model_validate({"messages": blob}).messages
        if isinstance(blob.get("messages"), list):
            return UpsertBatch.model_validate(blob).messages
        return [WebhookData.model_validate(blob)]
    except ValidationError as exc:
        raise MalformedPayloadError(f"invalid upsert batch: {exc.error_count()} errors") from exc


def decode_entries(envelope: WebhookEnvelope) -> list[WebhookData]:
    event = normalize_event_name(envelope.event)
    if event in BATCH_EVENTS:
        return _decode_batch(envelope.data)
    if not event or event in SINGLE_MESSAGE_EVENTS:
        return _decode_single(envelope.data)
    logger.debug("Ignoring non-message event", extra={"context": {"event": envelope.event}})
    return []


def normalize_event(raw: Union[bytes, str, dict]) -> list[Result[CanonicalMessage]]:
    """Decode a webhook body into one Result per actionable entry.

    Raises:
        MalformedPayloadError: if the envelope or its data blob is not decodable.
    """
    envelope = parse_envelope(raw)
    results: list[Result[CanonicalMessage]] = []
    for entry in decode_entries(envelope):
        if entry.is_from_me:
            logger.debug("Skipping self-sent message", extra={"context": {"message_id": entry.key.id}})
            continue
        results.append(normalize_message(entry))
    return results
