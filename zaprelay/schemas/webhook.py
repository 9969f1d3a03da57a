from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


def _coerce_scalar(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list, tuple)):
        return None
    if isinstance(value, bool):
        return None
    return str(value)


def _truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes"}
    return bool(value)


class WebhookKey(BaseModel):
    """Delivery key of one message as Evolution reports it."""

    model_config = ConfigDict(extra="allow")

    remoteJid: Optional[str] = None
    fromMe: bool = False
    id: Optional[str] = None

    @field_validator("remoteJid", "id", mode="before")
    @classmethod
    def _scalar(cls, value: Any) -> Optional[str]:
        return _coerce_scalar(value)

    @field_validator("fromMe", mode="before")
    @classmethod
    def _flag(cls, value: Any) -> bool:
        return _truthy(value)


class WebhookData(BaseModel):
    """Message record: the `data` blob of a single-message event or one upsert entry.

    `message` stays a plain dict because vendors nest text and media in many
    different ways; the normalizer runs its extractors over it.
    """

    model_config = ConfigDict(extra="allow")

    sender: Optional[str] = None
    remoteJid: Optional[str] = None
    chatId: Optional[str] = None
    messageType: Optional[str] = None
    mediaUrl: Optional[str] = None
    pushName: Optional[str] = None
    key: WebhookKey = Field(default_factory=WebhookKey)
    message: dict = Field(default_factory=dict)

    @field_validator("sender", "remoteJid", "chatId", "messageType", "mediaUrl", "pushName", mode="before")
    @classmethod
    def _scalar(cls, value: Any) -> Optional[str]:
        return _coerce_scalar(value)

    @field_validator("key", mode="before")
    @classmethod
    def _key(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else {}

    @field_validator("message", mode="before")
    @classmethod
    def _message(cls, value: Any) -> dict:
        if isinstance(value, dict):
            return value
        if isinstance(value, str):
            return {"body": value}
        return {}

    @property
    def is_from_me(self) -> bool:
        return self.key.fromMe or _truthy(self.message.get("fromMe"))


class UpsertBatch(BaseModel):
    model_config = ConfigDict(extra="allow")

    messages: list[WebhookData] = Field(default_factory=list)
    type: Optional[str] = None
    instanceId: Optional[str] = None


class WebhookEnvelope(BaseModel):
    """Generic webhook envelope: an event discriminator plus an opaque data blob."""

    model_config = ConfigDict(extra="allow")

    event: Optional[str] = None
    data: Any = None
    instance: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("instance", "instanceId", "instance_id"),
    )
    sender: Optional[str] = None
    destination: Optional[str] = None
    date_time: Optional[str] = None
    server_url: Optional[str] = None
    message: Any = None

    @field_validator("event", "instance", "sender", "destination", "date_time", "server_url", mode="before")
    @classmethod
    def _scalar(cls, value: Any) -> Optional[str]:
        return _coerce_scalar(value)
