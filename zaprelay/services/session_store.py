"""Per-sender conversation history in Redis.

Each sender key maps to one JSON list of turns under `conversation:<key>`.
Every save rewrites the whole list with a fresh TTL, so a history expires
`ttl_seconds` after the last exchange.

There is no locking around load/save: two concurrent requests for the same
sender both read, both append, and the last writer wins. Keys are per end user,
so this is rare and accepted.
"""

import json
from typing import Optional

from redis.exceptions import RedisError

from zaprelay.logging_config import get_logger
from zaprelay.models import ConversationTurn
from zaprelay.services.errors import SessionDecodeError, SessionStoreError
from zaprelay.services.result import Result

logger = get_logger("session_store")

DEFAULT_MAX_TURNS = 20
DEFAULT_TTL_SECONDS = 24 * 60 * 60
KEY_PREFIX = "conversation"


def conversation_key(sender_key: str) -> str:
    return f"{KEY_PREFIX}:{sender_key}"


def cap_history(history: list[ConversationTurn], max_turns: int) -> list[ConversationTurn]:
    """Keep only the most recent `max_turns` turns, dropping the oldest first."""
    if max_turns <= 0:
        return []
    if len(history) > max_turns:
        return list(history[-max_turns:])
    return list(history)


class SessionStore:
    def __init__(
        self,
        redis_client,
        *,
        max_turns: int = DEFAULT_MAX_TURNS,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
    ):
        self._client = redis_client
        self.max_turns = max_turns
        self.ttl_seconds = ttl_seconds
        self._closed = False

    def load(self, sender_key: str) -> Result[list[ConversationTurn]]:
        """Load history; an absent key is an empty history, not an error."""
        key = conversation_key(sender_key)
        try:
            raw: Optional[str] = self._client.get(key)
        except RedisError as exc:
            logger.warning("History load failed", extra={"context": {"key": key, "error": str(exc)}})
            return Result.from_error(SessionStoreError(f"load {key}: {exc}"))

        if not raw:
            return Result.success([])

        try:
            if isinstance(raw, bytes):
                raw = raw.decode("utf-8")
            items = json.loads(raw)
            history = [ConversationTurn.from_dict(item) for item in items]
        except (ValueError, TypeError, KeyError) as exc:
            logger.warning("History decode failed", extra={"context": {"key": key, "error": str(exc)}})
            return Result.from_error(SessionDecodeError(f"decode {key}: {exc}"))

        return Result.success(history)

    def save(self, sender_key: str, history: list[ConversationTurn]) -> Result[None]:
        """Persist the capped history with a refreshed TTL. Never raises."""
        key = conversation_key(sender_key)
        capped = cap_history(history, self.max_turns)
        payload = json.dumps([turn.to_dict() for turn in capped], ensure_ascii=False)
        try:
            self._client.set(key, payload, ex=self.ttl_seconds)
        except RedisError as exc:
            logger.warning("History save failed", extra={"context": {"key": key, "error": str(exc)}})
            return Result.from_error(SessionStoreError(f"save {key}: {exc}"))

        logger.debug("History saved", extra={"context": {"key": key, "turns": len(capped)}})
        return Result.success(None)

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except RedisError as exc:
            logger.warning("Redis ping failed", extra={"context": {"error": str(exc)}})
            return False

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._client.close()
        except RedisError as exc:
            logger.warning("Redis close failed", extra={"context": {"error": str(exc)}})
